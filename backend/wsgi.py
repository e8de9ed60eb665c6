from teomarket import create_app

app = create_app()
