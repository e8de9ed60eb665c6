from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z
from .catalog import money_str
from .enums import OrderStatus


class Order(db.Model):
    """
    Placed order.

    Immutable once created except for ``status`` and the payment flag.
    Totals and the exchange rate are frozen at placement and never
    recomputed from live prices.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TM-000123")
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cart_id = db.Column(db.Integer, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    customer_group_id = db.Column(db.Integer, db.ForeignKey("customer_groups.id"), nullable=True)

    # Currency snapshot: 1 unit of `currency` = exchange_rate RON at placement time
    currency = db.Column(db.String(3), nullable=False)
    exchange_rate = db.Column(db.Numeric(15, 6), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    shipping_method = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    total = db.Column(db.Numeric(12, 2), nullable=False)
    total_ron = db.Column(db.Numeric(12, 2), nullable=False)

    # Client-supplied key so a retried checkout returns the first order
    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    products = db.relationship("OrderProduct", backref="order", lazy=True, order_by="OrderProduct.id")
    history = db.relationship("OrderHistory", backref="order", lazy=True, order_by="OrderHistory.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def to_dict(self, include_products: bool = True) -> dict:
        status = self.order_status
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "contact_email": self.contact_email,
            "customer_group_id": self.customer_group_id,
            "currency": self.currency,
            "exchange_rate": money_str(self.exchange_rate),
            "payment_method": self.payment_method,
            "shipping_method": self.shipping_method,
            "status": status.value,
            "status_label": status.label,
            "status_color": status.color_code,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "total": money_str(self.total),
            "total_ron": money_str(self.total_ron),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_products:
            data["products"] = [line.to_dict() for line in self.products]
        return data


class OrderProduct(db.Model):
    """Order line snapshot, decoupled from live product and price data."""
    __tablename__ = "order_products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Nullable so a deleted product does not take its order history with it
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    currency = db.Column(db.String(3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price_ron = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    total_ron = db.Column(db.Numeric(12, 2), nullable=False)
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False)
    vat_included = db.Column(db.Boolean, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "currency": self.currency,
            "unit_price": money_str(self.unit_price),
            "unit_price_ron": money_str(self.unit_price_ron),
            "total": money_str(self.total),
            "total_ron": money_str(self.total_ron),
            "vat_rate": money_str(self.vat_rate),
            "vat_included": self.vat_included,
        }


class OrderHistory(db.Model):
    """
    Append-only audit trail for an order.

    Rows are written in the same transaction as the change they record and
    are never updated or deleted.
    """
    __tablename__ = "order_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    # JSON-encoded snapshots
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "action": self.action,
            "old_value": json.loads(self.old_value) if self.old_value else None,
            "new_value": json.loads(self.new_value) if self.new_value else None,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
