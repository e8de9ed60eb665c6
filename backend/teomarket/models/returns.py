from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .catalog import money_str
from .enums import ReturnReason, ReturnStatus


class ProductReturn(db.Model):
    """
    Customer return request against a single order line.

    LIFECYCLE:
    pending -> {received, rejected} -> inspecting -> {completed, rejected}
    Admins may move a return between any two statuses; only entering or
    leaving ``completed`` has a stock side effect.

    ``restocked_at`` is set exactly while a restock increment is applied and
    not yet reversed. It is the only guard against double-incrementing stock.
    """
    __tablename__ = "product_returns"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_product_returns_quantity"),
        db.Index("ix_product_returns_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "RET-000042")
    return_number = db.Column(db.String(32), nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    order_product_id = db.Column(db.Integer, db.ForeignKey("order_products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    return_reason = db.Column(db.String(32), nullable=False)
    return_reason_details = db.Column(db.Text, nullable=True)
    is_product_opened = db.Column(db.Boolean, nullable=False, default=False)

    # Refund destination for cash-on-delivery orders
    iban = db.Column(db.String(34), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ReturnStatus.PENDING.value, index=True)
    restock_item = db.Column(db.Boolean, nullable=False, default=False)
    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))
    order_product = db.relationship("OrderProduct", backref=db.backref("returns", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def return_status(self) -> ReturnStatus:
        return ReturnStatus(self.status)

    @property
    def reason(self) -> ReturnReason:
        return ReturnReason(self.return_reason)

    def to_dict(self) -> dict:
        status = self.return_status
        return {
            "id": self.id,
            "return_number": self.return_number,
            "order_id": self.order_id,
            "order_product_id": self.order_product_id,
            "quantity": self.quantity,
            "return_reason": self.return_reason,
            "return_reason_details": self.return_reason_details,
            "is_product_opened": self.is_product_opened,
            "iban": self.iban,
            "email": self.email,
            "phone": self.phone,
            "status": status.value,
            "status_label": status.label,
            "status_color": status.color_code,
            "restock_item": self.restock_item,
            "restocked_at": to_utc_z(self.restocked_at),
            "refund_amount": money_str(self.refund_amount),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
