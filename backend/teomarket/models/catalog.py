from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import ProductType


def money_str(value):
    """Decimal columns serialize as strings so JSON never rounds them."""
    return str(value) if value is not None else None


class Currency(db.Model):
    """
    Display currency with its exchange rate against the base currency (RON).

    ``value`` reads as "1 unit of this currency = value RON"; the base
    currency row always carries 1.
    """
    __tablename__ = "currencies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(3), nullable=False, unique=True, index=True)
    value = db.Column(db.Numeric(15, 6), nullable=False, default=1)
    symbol_left = db.Column(db.String(12), nullable=True)
    symbol_right = db.Column(db.String(12), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Currency code={self.code!r} value={self.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "value": money_str(self.value),
            "symbol_left": self.symbol_left,
            "symbol_right": self.symbol_right,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerGroup(db.Model):
    """Pricing bucket (B2C, B2B_STANDARD, ...) selecting a tier list."""
    __tablename__ = "customer_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name}


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    customer_group_id = db.Column(db.Integer, db.ForeignKey("customer_groups.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer_group = db.relationship("CustomerGroup")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "customer_group_id": self.customer_group_id,
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default=ProductType.SIMPLE.value)

    # Only variants point at their configurable parent
    parent_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Base price in RON; whether it already carries VAT is governed by vat_included
    price_ron = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    vat_included = db.Column(db.Boolean, nullable=False, default=True)
    # Informational only, never used to recompute prices
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False, default=19)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    parent = db.relationship("Product", remote_side=[id], backref=db.backref("variants", lazy=True))
    group_prices = db.relationship(
        "ProductGroupPrice",
        backref="product",
        lazy=True,
        order_by="ProductGroupPrice.min_quantity",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} type={self.type}>"

    @property
    def product_type(self) -> ProductType:
        return ProductType(self.type)

    @property
    def is_purchasable(self) -> bool:
        return self.product_type.is_purchasable and bool(self.is_active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "parent_id": self.parent_id,
            "sku": self.sku,
            "name": self.name,
            "price_ron": money_str(self.price_ron),
            "vat_included": self.vat_included,
            "vat_rate": money_str(self.vat_rate),
            "stock_quantity": self.stock_quantity,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductGroupPrice(db.Model):
    """
    Quantity tier. A null customer_group_id makes the tier generic: it applies
    to every group that has no tiers of its own.
    """
    __tablename__ = "product_group_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "customer_group_id", "min_quantity", name="uq_group_prices_product_group_min"),
        db.CheckConstraint("min_quantity >= 1", name="ck_group_prices_min_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_group_id = db.Column(db.Integer, db.ForeignKey("customer_groups.id"), nullable=True, index=True)
    min_quantity = db.Column(db.Integer, nullable=False, default=1)
    price_ron = db.Column(db.Numeric(12, 2), nullable=False)

    customer_group = db.relationship("CustomerGroup")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "customer_group_id": self.customer_group_id,
            "min_quantity": self.min_quantity,
            "price_ron": money_str(self.price_ron),
        }
