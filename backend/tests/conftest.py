"""
Pytest fixtures for Teomarket backend tests.

Provides test database setup, reference data (currencies, customer groups),
catalog factories and a test client.
"""

from decimal import Decimal

import pytest
from teomarket import create_app
from teomarket.extensions import db
from teomarket.models import Currency, CustomerGroup, Customer, Product, ProductGroupPrice
from teomarket.models.enums import OrderStatus
from teomarket.services import cart_service, order_service
from teomarket.services.order_service import CheckoutRequest
from teomarket.services.pricing_service import PricingContext


ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def currencies(db_session):
    """RON base plus EUR and USD at fixed rates (RON per unit)."""
    rows = {
        "RON": Currency(code="RON", value=Decimal("1"), symbol_right=" lei", is_active=True),
        "EUR": Currency(code="EUR", value=Decimal("4.97"), symbol_left="€", is_active=True),
        "USD": Currency(code="USD", value=Decimal("4.58"), symbol_left="$", is_active=True),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def b2c_group(db_session):
    group = CustomerGroup(code="B2C", name="Retail customers")
    db_session.add(group)
    db_session.commit()
    return group


@pytest.fixture(scope='function')
def b2b_group(db_session):
    group = CustomerGroup(code="B2B_STANDARD", name="Business customers")
    db_session.add(group)
    db_session.commit()
    return group


@pytest.fixture(scope='function')
def customer(db_session, b2c_group):
    c = Customer(email="ana@example.com", name="Ana Pop", customer_group_id=b2c_group.id)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory for catalog products.

    tiers: list of (min_quantity, price) for `tier_group_id` (None = generic tiers).
    """
    counter = {"n": 0}

    def _make(*, price="100.00", stock=10, type="simple", tiers=None, tier_group_id=None,
              is_active=True, parent=None, name=None, sku=None):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            type=type,
            parent_id=parent.id if parent else None,
            price_ron=Decimal(price),
            stock_quantity=stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.flush()
        for min_quantity, tier_price in tiers or []:
            db_session.add(ProductGroupPrice(
                product_id=product.id,
                customer_group_id=tier_group_id,
                min_quantity=min_quantity,
                price_ron=Decimal(tier_price),
            ))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def place_order(db_session, currencies, b2c_group):
    """
    Factory: put (product, quantity) lines in a fresh session cart and check out.

    Returns the placed order.
    """
    counter = {"n": 0}

    def _place(lines, *, payment_method="card", currency="RON", status=None, session_id=None):
        counter["n"] += 1
        cart = cart_service.get_or_create_cart(session_id=session_id or f"sess-order-{counter['n']}")
        for product, quantity in lines:
            cart_service.add_item(cart.id, product.id, quantity)
        order = order_service.submit_order(
            cart.id,
            CheckoutRequest(payment_method=payment_method, contact_email="ana@example.com"),
            PricingContext(currency_code=currency),
        )
        if status is not None:
            order = order_service.update_order_status(order.id, status)
        return order

    return _place


@pytest.fixture(scope='function')
def delivered_order(make_product, place_order):
    """Delivered card order: 10 units of one product (stock left: 40)."""
    product = make_product(price="50.00", stock=50)
    order = place_order([(product, 10)], status=OrderStatus.DELIVERED)
    return order, order.products[0], product


@pytest.fixture(scope='function')
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
