"""
Order Service - cart to order conversion and admin order edits

Checkout re-validates stock against locked product rows, prices every line
through the tier engine at submission time, and writes the order, its line
snapshots, the stock decrements and the cart conversion in one transaction.
A stock failure anywhere aborts the whole order.

After placement an order only changes through status and payment edits,
each of which appends an OrderHistory row.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, Order, OrderHistory, OrderProduct, Product
from ..models.enums import CartStatus, OrderStatus, PaymentMethod
from ..time_utils import utcnow
from ..validation import ConsistencyError, CurrencyNotFound, NotFoundError, ValidationError
from . import currency_service, pricing_service
from .concurrency import decrement_stock, lock_for_update, run_in_transaction
from .document_service import next_order_number


@dataclass(frozen=True)
class CheckoutRequest:
    payment_method: str
    shipping_method: str | None = None
    contact_email: str | None = None
    idempotency_key: str | None = None


def _parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Unknown payment method {value!r} (expected one of: {allowed})")


def _parse_order_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Unknown order status {value!r} (expected one of: {allowed})")


def _log_history(order: Order, action: str, *, old=None, new=None, description: str | None = None) -> OrderHistory:
    entry = OrderHistory(
        order_id=order.id,
        action=action,
        old_value=json.dumps(old) if old is not None else None,
        new_value=json.dumps(new) if new is not None else None,
        description=description,
    )
    db.session.add(entry)
    return entry


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if not order:
        raise NotFoundError(f"Order {order_number} not found", {"order_number": order_number})
    return order


def find_by_idempotency_key(key: str | None) -> Order | None:
    if not key:
        return None
    return db.session.query(Order).filter_by(idempotency_key=key).first()


def _replay_for_cart(key: str | None, cart_id: int) -> Order | None:
    """
    Order a previous submit of the same cart created under `key`.

    A key already spent on another cart is a client error, never a replay.
    """
    existing = find_by_idempotency_key(key)
    if existing is None:
        return None
    if existing.cart_id != cart_id:
        current_app.logger.warning(
            "Idempotency key %s reused for cart id=%s (belongs to cart id=%s)", key, cart_id, existing.cart_id,
        )
        raise ConsistencyError(
            "Idempotency key was already used for a different cart",
            {"cart_id": cart_id},
        )
    return existing


def find_replayable_order(key: str | None, *, session_id: str | None, customer_id: int | None) -> Order | None:
    """Order placed under `key` from a cart owned by this session or customer, else None."""
    existing = find_by_idempotency_key(key)
    if existing is None:
        return None
    if customer_id and existing.customer_id == customer_id:
        return existing
    cart = db.session.get(Cart, existing.cart_id) if existing.cart_id else None
    if session_id and cart is not None and cart.session_id == session_id and cart.customer_id is None:
        return existing
    return None


def _lock_cart_products(cart: Cart) -> dict[int, Product]:
    product_ids = sorted({item.product_id for item in cart.items})
    # Stable lock order avoids deadlocks between overlapping checkouts
    products = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
    ).all()
    return {p.id: p for p in products}


def _validate_stock(cart: Cart, products: dict[int, Product]) -> None:
    problems = []
    for item in cart.items:
        product = products.get(item.product_id)
        if not product or not product.is_purchasable:
            problems.append({
                "product_id": item.product_id,
                "requested_quantity": item.quantity,
                "reason": "unavailable",
            })
        elif product.stock_quantity < item.quantity:
            problems.append({
                "product_id": item.product_id,
                "sku": product.sku,
                "requested_quantity": item.quantity,
                "stock_quantity": product.stock_quantity,
                "reason": "insufficient_stock",
            })

    if problems:
        raise ValidationError("Insufficient stock to place order", {"items": problems})


def submit_order(cart_id: int, checkout: CheckoutRequest, context: pricing_service.PricingContext) -> Order:
    """
    Convert an active cart into an order.

    A repeated idempotency key for the same cart returns the order created by
    the first call; a key already used by another cart is a ConsistencyError.
    Raises NotFoundError for an unknown cart, ConsistencyError for a cart that
    is no longer active and ValidationError for an empty cart, an unknown
    payment method or currency, or any line short on stock.
    """
    payment_method = _parse_payment_method(checkout.payment_method)

    def _op():
        existing = _replay_for_cart(checkout.idempotency_key, cart_id)
        if existing:
            current_app.logger.info(
                "Checkout replay for idempotency key %s returns order %s",
                checkout.idempotency_key, existing.order_number,
            )
            return existing

        cart = lock_for_update(db.session.query(Cart).filter_by(id=cart_id)).first()
        if not cart:
            raise NotFoundError(f"Cart {cart_id} not found", {"cart_id": cart_id})
        if not cart.is_active:
            current_app.logger.warning(
                "Checkout attempted on %s cart id=%s (order_id=%s)", cart.status, cart.id, cart.order_id,
            )
            raise ConsistencyError(
                f"Cart {cart_id} is {cart.status} and cannot be checked out",
                {"cart_id": cart_id, "status": cart.status},
            )
        if not cart.items:
            raise ValidationError("Cannot place an order with an empty cart", {"cart_id": cart_id})

        try:
            currency = currency_service.get_currency(context.currency_code)
        except CurrencyNotFound:
            raise ValidationError(f"Unknown currency {context.currency_code}", {"currency": context.currency_code})

        products = _lock_cart_products(cart)
        _validate_stock(cart, products)

        group_id = pricing_service.get_effective_customer_group_id(
            context.customer_group_id or cart.customer_group_id
        )

        # Price every line once; these values are frozen on the order
        priced = []
        total = Decimal("0")
        total_ron = Decimal("0")
        for item in cart.items:
            product = products[item.product_id]
            unit_price_ron, _tier = pricing_service.resolve_unit_price(product, item.quantity, group_id)
            unit_price = currency_service.convert_from_base(unit_price_ron, currency.code)
            line_total = currency_service.round_money(unit_price * item.quantity)
            line_total_ron = currency_service.round_money(unit_price_ron * item.quantity)
            total += line_total
            total_ron += line_total_ron
            priced.append((item, product, unit_price, unit_price_ron, line_total, line_total_ron))

        status = payment_method.initial_order_status
        now = utcnow()
        order = Order(
            order_number=next_order_number(),
            customer_id=cart.customer_id,
            cart_id=cart.id,
            contact_email=checkout.contact_email,
            customer_group_id=group_id,
            currency=currency.code,
            exchange_rate=Decimal(currency.value),
            payment_method=payment_method.value,
            shipping_method=checkout.shipping_method,
            status=status.value,
            is_paid=payment_method.is_paid_on_checkout,
            paid_at=now if payment_method.is_paid_on_checkout else None,
            total=total,
            total_ron=total_ron,
            idempotency_key=checkout.idempotency_key or None,
        )
        db.session.add(order)
        db.session.flush()

        for item, product, unit_price, unit_price_ron, line_total, line_total_ron in priced:
            db.session.add(OrderProduct(
                order_id=order.id,
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                quantity=item.quantity,
                currency=currency.code,
                unit_price=unit_price,
                unit_price_ron=unit_price_ron,
                total=line_total,
                total_ron=line_total_ron,
                vat_rate=product.vat_rate,
                vat_included=product.vat_included,
            ))
            if not decrement_stock(product.id, item.quantity):
                raise ValidationError(
                    "Insufficient stock to place order",
                    {"items": [{"product_id": product.id, "sku": product.sku, "requested_quantity": item.quantity}]},
                )

        cart.status = CartStatus.CONVERTED.value
        cart.order_id = order.id
        cart.updated_at = now

        _log_history(
            order,
            "order_created",
            new={"status": status.value, "total": str(total), "currency": currency.code},
            description=f"Order placed with {payment_method.value}",
        )

        db.session.commit()
        current_app.logger.info(
            "Order %s placed from cart id=%s: %s %s (%s RON), status=%s",
            order.order_number, cart.id, total, currency.code, total_ron, status.value,
        )
        return order

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        # Lost the race on the idempotency key to a concurrent identical submit
        existing = _replay_for_cart(checkout.idempotency_key, cart_id)
        if existing:
            return existing
        raise


def update_order_status(order_id: int, status, note: str | None = None) -> Order:
    """Admin status change; a no-op when the status is unchanged."""
    new_status = _parse_order_status(status)

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})

        old_status = order.order_status
        if old_status is new_status:
            return order

        order.status = new_status.value
        _log_history(
            order,
            "status_changed",
            old={"status": old_status.value},
            new={"status": new_status.value},
            description=note or f"Status changed from {old_status.label} to {new_status.label}",
        )
        db.session.commit()
        current_app.logger.info("Order %s status %s -> %s", order.order_number, old_status.value, new_status.value)
        return order

    return run_in_transaction(_op)


def set_order_paid(order_id: int, is_paid: bool) -> Order:
    """Mark an order paid/unpaid (cash on delivery, bank transfer)."""
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})

        if bool(order.is_paid) == bool(is_paid):
            return order

        order.is_paid = bool(is_paid)
        order.paid_at = utcnow() if is_paid else None
        _log_history(
            order,
            "payment_status_changed",
            old={"is_paid": not is_paid},
            new={"is_paid": bool(is_paid)},
            description="Marked as paid" if is_paid else "Marked as unpaid",
        )
        db.session.commit()
        return order

    return run_in_transaction(_op)
