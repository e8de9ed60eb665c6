# Overview: Shared Flask-SQLAlchemy handle and Flask-Migrate instance for the order core.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Bound to the app in create_app(); services use db.session directly
db = SQLAlchemy()
migrate = Migrate()
