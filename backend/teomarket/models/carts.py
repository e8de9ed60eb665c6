from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import CartStatus


class Cart(db.Model):
    """
    Shopping cart owned by an anonymous session and/or a customer.

    Prices are never stored here; lines are priced live at render and
    checkout time. ``active -> converted`` is one-way and happens in the same
    transaction that creates the order.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.Index("ix_carts_customer_status", "customer_id", "status"),
        db.Index("ix_carts_session_status", "session_id", "status"),
        db.Index("ix_carts_status_updated", "status", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(128), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    customer_group_id = db.Column(db.Integer, db.ForeignKey("customer_groups.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=CartStatus.ACTIVE.value)

    # Plain reference: converted carts are purged while their orders live on
    order_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("CartItem", backref="cart", lazy=True, order_by="CartItem.id", cascade="all, delete-orphan")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return CartStatus(self.status) is CartStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "customer_id": self.customer_id,
            "customer_group_id": self.customer_group_id,
            "status": self.status,
            "order_id": self.order_id,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
