# Overview: Session/customer carts, line edits, live-priced summaries and merge on login.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Cart, CartItem, Customer, Product
from ..models.enums import CartStatus
from ..time_utils import utcnow
from ..validation import ConsistencyError, NotFoundError, ValidationError, coerce_int, coerce_quantity
from . import currency_service, pricing_service
from .concurrency import run_in_transaction


def find_active_cart(*, session_id: str | None = None, customer_id: int | None = None) -> Cart | None:
    query = db.session.query(Cart).filter_by(status=CartStatus.ACTIVE.value)
    if customer_id:
        query = query.filter_by(customer_id=customer_id)
    else:
        query = query.filter(Cart.session_id == session_id, Cart.customer_id.is_(None))
    return query.order_by(Cart.id.desc()).first()


def get_cart(cart_id: int) -> Cart:
    cart = db.session.get(Cart, cart_id)
    if not cart:
        raise NotFoundError(f"Cart {cart_id} not found", {"cart_id": cart_id})
    return cart


def _get_active_cart(cart_id: int) -> Cart:
    cart = get_cart(cart_id)
    if not cart.is_active:
        current_app.logger.warning("Edit attempted on %s cart id=%s", cart.status, cart.id)
        raise ConsistencyError(
            f"Cart {cart_id} is {cart.status} and can no longer be changed",
            {"cart_id": cart_id, "status": cart.status},
        )
    return cart


def _touch(cart: Cart) -> None:
    # Bumps version_id so concurrent edits of the same cart conflict
    cart.updated_at = utcnow()


def get_or_create_cart(session_id: str | None = None, customer_id: int | None = None) -> Cart:
    """
    Active cart for a customer, else for an anonymous session.

    Customer carts inherit the customer's group so tier prices follow the
    account.
    """
    if not session_id and not customer_id:
        raise ValidationError("session_id or customer_id is required")

    def _op():
        customer = None
        if customer_id:
            customer = db.session.get(Customer, customer_id)
            if not customer:
                raise NotFoundError(f"Customer {customer_id} not found", {"customer_id": customer_id})

        cart = find_active_cart(session_id=session_id, customer_id=customer_id)
        if cart:
            return cart

        cart = Cart(
            session_id=session_id,
            customer_id=customer_id,
            customer_group_id=customer.customer_group_id if customer else None,
            status=CartStatus.ACTIVE.value,
        )
        db.session.add(cart)
        db.session.commit()
        return cart

    return run_in_transaction(_op)


def add_item(cart_id: int, product_id: int, quantity: int) -> CartItem:
    """
    Add `quantity` units to the cart, merging into an existing line.

    Only active simple/variant products with stock left can be added;
    configurable products must be bought through a variant.
    """
    quantity = coerce_quantity(quantity)

    def _op():
        cart = _get_active_cart(cart_id)

        product = db.session.get(Product, product_id)
        if not product or not product.is_active:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        if not product.product_type.is_purchasable:
            raise ConsistencyError(
                "Configurable products cannot be added to the cart directly; choose a variant",
                {"product_id": product_id, "type": product.type},
            )
        if product.stock_quantity <= 0:
            raise ValidationError(f"{product.name} is out of stock", {"product_id": product_id})

        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()
        if item:
            item.quantity = item.quantity + quantity
        else:
            item = CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity)
            db.session.add(item)

        _touch(cart)
        db.session.commit()
        return item

    return run_in_transaction(_op)


def update_item_quantity(cart_id: int, product_id: int, quantity) -> CartItem | None:
    """Set a line's quantity; zero or less removes the line (returns None)."""
    quantity = coerce_int(quantity, "quantity")
    if quantity <= 0:
        remove_item(cart_id, product_id)
        return None
    quantity = coerce_quantity(quantity)

    def _op():
        cart = _get_active_cart(cart_id)
        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()
        if not item:
            raise NotFoundError(f"Product {product_id} is not in the cart", {"product_id": product_id})
        item.quantity = quantity
        _touch(cart)
        db.session.commit()
        return item

    return run_in_transaction(_op)


def remove_item(cart_id: int, product_id: int) -> None:
    def _op():
        cart = _get_active_cart(cart_id)
        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()
        if not item:
            raise NotFoundError(f"Product {product_id} is not in the cart", {"product_id": product_id})
        db.session.delete(item)
        _touch(cart)
        db.session.commit()

    run_in_transaction(_op)


def clear_cart(cart_id: int) -> None:
    def _op():
        cart = _get_active_cart(cart_id)
        db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session="fetch")
        _touch(cart)
        db.session.commit()

    run_in_transaction(_op)


def get_cart_summary(cart_id: int, context: pricing_service.PricingContext) -> dict:
    """
    Cart lines priced at current tier prices in the context currency.

    Nothing here is persisted; checkout re-prices independently.
    """
    cart = get_cart(cart_id)
    if context.customer_group_id is None and cart.customer_group_id:
        context = pricing_service.PricingContext(
            currency_code=context.currency_code,
            customer_group_id=cart.customer_group_id,
        )
    currency = currency_service.resolve_display_currency(context.currency_code)

    lines = []
    subtotal_ron = Decimal("0")
    subtotal = Decimal("0")
    item_count = 0
    for item in cart.items:
        product = item.product
        info = pricing_service.get_price_info(product, item.quantity, context)
        subtotal_ron += info["total_price_ron"]
        subtotal += info["total_price"]
        item_count += item.quantity
        lines.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "quantity": item.quantity,
            "in_stock": bool(product.is_active) and product.stock_quantity >= item.quantity,
            "unit_price": str(info["unit_price"]),
            "unit_price_display": info["unit_price_display"],
            "unit_price_ron": str(info["unit_price_ron"]),
            "total_price": str(info["total_price"]),
            "total_price_display": info["total_price_display"],
            "vat_included": info["vat_included"],
            "vat_rate": str(info["vat_rate"]),
        })

    return {
        "cart_id": cart.id,
        "status": cart.status,
        "currency_code": currency.code,
        "items": lines,
        "item_count": item_count,
        "subtotal_ron": str(currency_service.round_money(subtotal_ron)),
        "subtotal": str(currency_service.round_money(subtotal)),
        "subtotal_display": currency_service.format_amount(subtotal, currency),
    }


def merge_carts_on_login(session_id: str, customer_id: int) -> Cart | None:
    """
    Fold the anonymous session cart into the customer's cart after login.

    Quantities add per product; the session cart is deleted afterwards, so
    calling this again for the same login changes nothing. Must be called
    once, synchronously, by the login workflow.
    """
    def _op():
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found", {"customer_id": customer_id})

        customer_cart = find_active_cart(customer_id=customer_id)
        session_cart = find_active_cart(session_id=session_id) if session_id else None
        if not session_cart:
            return customer_cart

        if not customer_cart:
            # Nothing to merge into: the session cart simply becomes the customer's
            session_cart.customer_id = customer_id
            session_cart.customer_group_id = customer.customer_group_id
            _touch(session_cart)
            db.session.commit()
            return session_cart

        existing = {item.product_id: item for item in customer_cart.items}
        merged = 0
        for session_item in list(session_cart.items):
            target = existing.get(session_item.product_id)
            if target:
                target.quantity = target.quantity + session_item.quantity
            else:
                db.session.add(CartItem(
                    cart_id=customer_cart.id,
                    product_id=session_item.product_id,
                    quantity=session_item.quantity,
                ))
            merged += 1

        db.session.delete(session_cart)
        customer_cart.customer_group_id = customer.customer_group_id
        if session_id and not customer_cart.session_id:
            customer_cart.session_id = session_id
        _touch(customer_cart)
        db.session.commit()

        current_app.logger.info(
            "Merged %s session cart lines into cart id=%s for customer id=%s",
            merged, customer_cart.id, customer_id,
        )
        return customer_cart

    return run_in_transaction(_op)
