"""
Closed status/type vocabularies for the order core.

Columns store the string value; services convert with ``OrderStatus(row.status)``
so an unknown value fails loudly instead of falling through. Every mapping
below is checked for completeness at import time.
"""

from __future__ import annotations

from enum import Enum


class ProductType(str, Enum):
    SIMPLE = "simple"
    CONFIGURABLE = "configurable"
    VARIANT = "variant"

    @property
    def is_purchasable(self) -> bool:
        # Configurable products only group variants; stock lives on the variants
        return _PRODUCT_TYPE_PURCHASABLE[self]


class CartStatus(str, Enum):
    ACTIVE = "active"
    CONVERTED = "converted"


class OrderStatus(str, Enum):
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def label(self) -> str:
        return _ORDER_STATUS_META[self][0]

    @property
    def color_code(self) -> str:
        return _ORDER_STATUS_META[self][1]


class ReturnStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    INSPECTING = "inspecting"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return _RETURN_STATUS_META[self][0]

    @property
    def color_code(self) -> str:
        return _RETURN_STATUS_META[self][1]


class ReturnReason(str, Enum):
    OTHER = "other"
    WRONG_PRODUCT = "wrong_product"
    DEFECT = "defect"
    ORDER_ERROR = "order_error"
    SEALED_RETURN = "sealed_return"

    @property
    def requires_details(self) -> bool:
        return _RETURN_REASON_NEEDS_DETAILS[self]


class PaymentMethod(str, Enum):
    CARD = "card"
    ONLINE = "online"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cod"

    @property
    def initial_order_status(self) -> OrderStatus:
        return _PAYMENT_INITIAL_STATUS[self]

    @property
    def is_paid_on_checkout(self) -> bool:
        return _PAYMENT_PAID_ON_CHECKOUT[self]

    @property
    def is_cash_on_delivery(self) -> bool:
        return self is PaymentMethod.CASH_ON_DELIVERY


_PRODUCT_TYPE_PURCHASABLE = {
    ProductType.SIMPLE: True,
    ProductType.CONFIGURABLE: False,
    ProductType.VARIANT: True,
}

_ORDER_STATUS_META = {
    OrderStatus.PENDING: ("Pending", "#F59E0B"),
    OrderStatus.AWAITING_PAYMENT: ("Awaiting Payment", "#F97316"),
    OrderStatus.CONFIRMED: ("Confirmed", "#0EA5E9"),
    OrderStatus.PROCESSING: ("Processing", "#6366F1"),
    OrderStatus.SHIPPED: ("Shipped", "#3B82F6"),
    OrderStatus.DELIVERED: ("Delivered", "#10B981"),
    OrderStatus.CANCELLED: ("Cancelled", "#EF4444"),
    OrderStatus.REFUNDED: ("Refunded", "#64748B"),
}

_RETURN_STATUS_META = {
    ReturnStatus.PENDING: ("Pending", "#F59E0B"),
    ReturnStatus.RECEIVED: ("Received", "#8B5CF6"),
    ReturnStatus.INSPECTING: ("Inspecting", "#EC4899"),
    ReturnStatus.REJECTED: ("Rejected", "#EF4444"),
    ReturnStatus.COMPLETED: ("Completed", "#6B7280"),
}

_RETURN_REASON_NEEDS_DETAILS = {
    ReturnReason.OTHER: True,
    ReturnReason.WRONG_PRODUCT: False,
    ReturnReason.DEFECT: True,
    ReturnReason.ORDER_ERROR: False,
    ReturnReason.SEALED_RETURN: False,
}

# Card payments wait for the gateway confirmation; cash on delivery is
# confirmed immediately and marked paid by an admin later.
_PAYMENT_INITIAL_STATUS = {
    PaymentMethod.CARD: OrderStatus.AWAITING_PAYMENT,
    PaymentMethod.ONLINE: OrderStatus.AWAITING_PAYMENT,
    PaymentMethod.PAYPAL: OrderStatus.PENDING,
    PaymentMethod.BANK_TRANSFER: OrderStatus.PENDING,
    PaymentMethod.CASH_ON_DELIVERY: OrderStatus.CONFIRMED,
}

# Online payments are captured at checkout; bank transfer and cash on
# delivery are marked paid by an admin once the money arrives.
_PAYMENT_PAID_ON_CHECKOUT = {
    PaymentMethod.CARD: True,
    PaymentMethod.ONLINE: True,
    PaymentMethod.PAYPAL: True,
    PaymentMethod.BANK_TRANSFER: False,
    PaymentMethod.CASH_ON_DELIVERY: False,
}


def _check_exhaustive(enum_cls, mapping, name):
    missing = [member for member in enum_cls if member not in mapping]
    if missing:
        raise RuntimeError(f"{name} is missing entries for: {', '.join(m.value for m in missing)}")


_check_exhaustive(ProductType, _PRODUCT_TYPE_PURCHASABLE, "_PRODUCT_TYPE_PURCHASABLE")
_check_exhaustive(OrderStatus, _ORDER_STATUS_META, "_ORDER_STATUS_META")
_check_exhaustive(ReturnStatus, _RETURN_STATUS_META, "_RETURN_STATUS_META")
_check_exhaustive(ReturnReason, _RETURN_REASON_NEEDS_DETAILS, "_RETURN_REASON_NEEDS_DETAILS")
_check_exhaustive(PaymentMethod, _PAYMENT_INITIAL_STATUS, "_PAYMENT_INITIAL_STATUS")
_check_exhaustive(PaymentMethod, _PAYMENT_PAID_ON_CHECKOUT, "_PAYMENT_PAID_ON_CHECKOUT")
