"""
Return Service - customer return requests and the admin status workflow

LIFECYCLE:
1. Create return (pending) - customer asks to send back units of a delivered order line
2. Received / inspecting - warehouse receives and checks the parcel
3. Completed or rejected - admin decision

Admins may move a return between any two statuses. Stock only moves when a
return crosses the ``completed`` boundary:
- entering completed with restock_item set and restocked_at empty adds the
  returned units back and stamps restocked_at
- leaving completed with restocked_at set takes the units off again and
  clears restocked_at
Setting the same status twice is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderProduct, Product, ProductReturn
from ..models.enums import OrderStatus, PaymentMethod, ReturnReason, ReturnStatus
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_decimal, coerce_quantity
from .concurrency import decrement_stock, increment_stock, lock_for_update, run_in_transaction
from .document_service import next_return_number


@dataclass(frozen=True)
class ReturnRequest:
    order_id: int
    order_product_id: int
    quantity: int
    return_reason: str
    return_reason_details: str | None = None
    is_product_opened: bool = False
    iban: str | None = None
    email: str | None = None
    phone: str | None = None
    restock_item: bool = False


def _parse_return_status(value) -> ReturnStatus:
    if isinstance(value, ReturnStatus):
        return value
    try:
        return ReturnStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in ReturnStatus)
        raise ValidationError(f"Unknown return status {value!r} (expected one of: {allowed})")


def _parse_return_reason(value) -> ReturnReason:
    if isinstance(value, ReturnReason):
        return value
    try:
        return ReturnReason(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(r.value for r in ReturnReason)
        raise ValidationError(f"Invalid return reason {value!r} (expected one of: {allowed})")


def get_return(return_id: int) -> ProductReturn:
    product_return = db.session.get(ProductReturn, return_id)
    if not product_return:
        raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
    return product_return


def get_order_returns(order_id: int) -> list[ProductReturn]:
    return (
        db.session.query(ProductReturn)
        .filter_by(order_id=order_id)
        .order_by(ProductReturn.id.asc())
        .all()
    )


def _already_returned(order_product_id: int) -> int:
    # Every prior return counts, whatever its status (rejected ones included)
    total = (
        db.session.query(func.coalesce(func.sum(ProductReturn.quantity), 0))
        .filter(ProductReturn.order_product_id == order_product_id)
        .scalar()
    )
    return int(total or 0)


def get_returnable_quantity(order_product_id: int) -> int:
    line = db.session.get(OrderProduct, order_product_id)
    if not line:
        raise NotFoundError(f"Order line {order_product_id} not found", {"order_product_id": order_product_id})
    return max(line.quantity - _already_returned(order_product_id), 0)


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(request: ReturnRequest) -> ProductReturn:
    """
    Validate and record a return request (status: pending).

    Raises:
        NotFoundError: unknown order or order line
        ValidationError: order not delivered, line from another order, bad
            reason or missing details, missing IBAN on a cash-on-delivery
            order, or quantity above ordered minus already returned
    """
    quantity = coerce_quantity(request.quantity)
    reason = _parse_return_reason(request.return_reason)
    details = (request.return_reason_details or "").strip() or None
    if reason.requires_details and not details:
        raise ValidationError(
            "Details are required for this return reason",
            {"return_reason": reason.value},
        )

    def _op():
        order = db.session.get(Order, request.order_id)
        if not order:
            raise NotFoundError(f"Order {request.order_id} not found", {"order_id": request.order_id})
        if order.order_status is not OrderStatus.DELIVERED:
            raise ValidationError(
                "Return can only be requested for delivered orders",
                {"order_id": order.id, "status": order.status},
            )

        line = lock_for_update(
            db.session.query(OrderProduct).filter_by(id=request.order_product_id)
        ).first()
        if not line:
            raise NotFoundError(
                f"Order line {request.order_product_id} not found",
                {"order_product_id": request.order_product_id},
            )
        if line.order_id != order.id:
            raise ValidationError(
                f"Order line {line.id} does not belong to order {order.order_number}",
                {"order_id": order.id, "order_product_id": line.id},
            )

        iban = (request.iban or "").replace(" ", "").upper() or None
        if PaymentMethod(order.payment_method).is_cash_on_delivery and not iban:
            raise ValidationError("IBAN is required for cash on delivery orders", {"field": "iban"})

        already_returned = _already_returned(line.id)
        available = line.quantity - already_returned
        if quantity > available:
            raise ValidationError(
                f"Cannot return more than available quantity. Ordered: {line.quantity}, "
                f"already returned: {already_returned}, available: {max(available, 0)}",
                {
                    "ordered": line.quantity,
                    "already_returned": already_returned,
                    "available": max(available, 0),
                    "requested": quantity,
                },
            )

        product_return = ProductReturn(
            return_number=next_return_number(),
            order_id=order.id,
            order_product_id=line.id,
            quantity=quantity,
            return_reason=reason.value,
            return_reason_details=details,
            is_product_opened=bool(request.is_product_opened),
            iban=iban,
            email=request.email or order.contact_email,
            phone=request.phone,
            status=ReturnStatus.PENDING.value,
            restock_item=bool(request.restock_item),
        )
        db.session.add(product_return)
        db.session.commit()

        current_app.logger.info(
            "Return %s created for order %s line %s (qty %s)",
            product_return.return_number, order.order_number, line.id, quantity,
        )
        return product_return

    return run_in_transaction(_op)


# =============================================================================
# STATUS WORKFLOW
# =============================================================================

def _line_product_id(product_return: ProductReturn) -> int | None:
    line = product_return.order_product
    return line.product_id if line else None


def _apply_restock(product_return: ProductReturn) -> None:
    product_id = _line_product_id(product_return)
    if product_id is None or not increment_stock(product_id, product_return.quantity):
        current_app.logger.warning(
            "Return %s: product no longer exists, nothing restocked", product_return.return_number,
        )
        return
    product_return.restocked_at = utcnow()
    current_app.logger.info(
        "Return %s restocked %s units of product id=%s",
        product_return.return_number, product_return.quantity, product_id,
    )


def _reverse_restock(product_return: ProductReturn) -> None:
    product_id = _line_product_id(product_return)
    if product_id is None or db.session.get(Product, product_id) is None:
        # The stock went away with the product; only the marker is left to clear
        current_app.logger.warning(
            "Return %s: product no longer exists, clearing restock marker only", product_return.return_number,
        )
        product_return.restocked_at = None
        return
    if not decrement_stock(product_id, product_return.quantity):
        raise ValidationError(
            "Cannot reverse restock: the returned units have already been sold",
            {"return_id": product_return.id, "product_id": product_id, "quantity": product_return.quantity},
        )
    product_return.restocked_at = None
    current_app.logger.info(
        "Return %s restock reversed: %s units off product id=%s",
        product_return.return_number, product_return.quantity, product_id,
    )


def update_status(return_id: int, new_status) -> ProductReturn:
    """
    Move a return to `new_status`, adjusting stock on the completed boundary.

    Runs as one transaction: the stock change and the status are committed
    together or not at all.
    """
    target = _parse_return_status(new_status)

    def _op():
        product_return = lock_for_update(
            db.session.query(ProductReturn).filter_by(id=return_id)
        ).first()
        if not product_return:
            raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})

        old = product_return.return_status
        completed = ReturnStatus.COMPLETED

        if old is completed and target is not completed and product_return.restocked_at is not None:
            _reverse_restock(product_return)

        if target is completed and old is not completed:
            if product_return.restock_item and product_return.restocked_at is None:
                _apply_restock(product_return)

        if old is not target:
            product_return.status = target.value
            current_app.logger.info(
                "Return %s status %s -> %s", product_return.return_number, old.value, target.value,
            )

        db.session.commit()
        return product_return

    return run_in_transaction(_op)


def update_refund_amount(return_id: int, amount) -> ProductReturn:
    """Set or clear (None) the refund amount; negative amounts are rejected."""
    refund = None
    if amount is not None and amount != "":
        refund = coerce_decimal(amount, "refund_amount", minimum=Decimal("0"))
        refund = refund.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _op():
        product_return = get_return(return_id)
        product_return.refund_amount = refund
        db.session.commit()
        return product_return

    return run_in_transaction(_op)


def update_restock_item(return_id: int, restock_item: bool) -> ProductReturn:
    """
    Change the restock intent.

    Only future transitions into completed look at the flag; an already
    applied restock stays until the return leaves completed.
    """
    def _op():
        product_return = get_return(return_id)
        product_return.restock_item = bool(restock_item)
        db.session.commit()
        return product_return

    return run_in_transaction(_op)
