# Overview: Quantity-tier price resolution per customer group, rendered in a display currency.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CustomerGroup, Product, ProductGroupPrice
from ..validation import ConsistencyError, ValidationError
from . import currency_service


@dataclass(frozen=True)
class PricingContext:
    """
    Who is buying and what currency they see.

    Passed explicitly into every pricing call instead of being read from the
    request/session.
    """
    currency_code: str = currency_service.BASE_CURRENCY
    customer_group_id: int | None = None


def get_effective_customer_group_id(customer_group_id: int | None) -> int | None:
    """Anonymous visitors and customers without a group price as the default group (B2C)."""
    if customer_group_id:
        return customer_group_id
    code = current_app.config.get("DEFAULT_CUSTOMER_GROUP", "B2C")
    return db.session.query(CustomerGroup.id).filter_by(code=code).scalar()


def _ensure_purchasable_type(product: Product) -> None:
    if not product.product_type.is_purchasable:
        current_app.logger.warning(
            "Price requested for non-purchasable product id=%s sku=%s type=%s",
            product.id, product.sku, product.type,
        )
        raise ConsistencyError(
            f"Product {product.sku} is {product.type} and cannot be priced directly",
            {"product_id": product.id, "type": product.type},
        )


def get_quantity_tiers(product: Product, customer_group_id: int | None) -> list[dict]:
    """
    Tier list for (product, group), ascending by min_quantity.

    A group without tiers of its own uses the generic tiers (no group). Each
    tier carries a derived max_quantity: next tier's min - 1, or None for the
    open-ended last tier.
    """
    group_id = get_effective_customer_group_id(customer_group_id)

    rows = []
    if group_id is not None:
        rows = (
            db.session.query(ProductGroupPrice)
            .filter_by(product_id=product.id, customer_group_id=group_id)
            .order_by(ProductGroupPrice.min_quantity.asc())
            .all()
        )
    if not rows:
        rows = (
            db.session.query(ProductGroupPrice)
            .filter(
                ProductGroupPrice.product_id == product.id,
                ProductGroupPrice.customer_group_id.is_(None),
            )
            .order_by(ProductGroupPrice.min_quantity.asc())
            .all()
        )

    tiers = []
    for index, row in enumerate(rows):
        next_row = rows[index + 1] if index + 1 < len(rows) else None
        tiers.append({
            "id": row.id,
            "customer_group_id": row.customer_group_id,
            "min_quantity": row.min_quantity,
            "max_quantity": next_row.min_quantity - 1 if next_row else None,
            "price_ron": Decimal(row.price_ron),
        })
    return tiers


def select_tier(tiers: list[dict], quantity: int) -> dict | None:
    """
    Last tier whose min_quantity <= quantity.

    Quantities below the first breakpoint use the first tier (floor).
    """
    if not tiers:
        return None
    active = tiers[0]
    for tier in tiers:
        if tier["min_quantity"] <= quantity:
            active = tier
        else:
            break
    return active


def resolve_unit_price(product: Product, quantity: int, customer_group_id: int | None) -> tuple[Decimal, dict | None]:
    """Base-currency unit price for `quantity` units and the tier it came from (None = base price)."""
    _ensure_purchasable_type(product)
    if quantity < 1:
        raise ValidationError("quantity must be >= 1", {"quantity": quantity})

    tier = select_tier(get_quantity_tiers(product, customer_group_id), quantity)
    if tier is None:
        return Decimal(product.price_ron), None
    return tier["price_ron"], tier


def get_price_info(product: Product, quantity: int, context: PricingContext) -> dict:
    """
    Unit and line prices for `quantity` units, in RON and in the display currency.

    ``vat_included`` tells the caller whether the stored price already carries
    VAT; nothing is recomputed from ``vat_rate``.
    """
    group_id = get_effective_customer_group_id(context.customer_group_id)
    unit_price_ron, tier = resolve_unit_price(product, quantity, group_id)
    currency = currency_service.resolve_display_currency(context.currency_code)

    unit_price = currency_service.convert_from_base(unit_price_ron, currency.code)
    total_price_ron = currency_service.round_money(unit_price_ron * quantity)
    total_price = currency_service.round_money(unit_price * quantity)

    return {
        "product_id": product.id,
        "quantity": quantity,
        "min_quantity": tier["min_quantity"] if tier else None,
        "customer_group_id": group_id,
        "currency_code": currency.code,
        "unit_price_ron": unit_price_ron,
        "unit_price": unit_price,
        "unit_price_display": currency_service.format_amount(unit_price, currency),
        "total_price_ron": total_price_ron,
        "total_price": total_price,
        "total_price_display": currency_service.format_amount(total_price, currency),
        "vat_included": bool(product.vat_included),
        "vat_rate": Decimal(product.vat_rate),
    }


def get_price_tiers(product: Product, context: PricingContext) -> list[dict]:
    """Full tier table for display, with a "{min}-{max}" / "{min}+" range label per tier."""
    _ensure_purchasable_type(product)
    currency = currency_service.resolve_display_currency(context.currency_code)

    result = []
    for tier in get_quantity_tiers(product, context.customer_group_id):
        price_display = currency_service.convert_from_base(tier["price_ron"], currency.code)
        if tier["max_quantity"] is None:
            quantity_range = f"{tier['min_quantity']}+"
        else:
            quantity_range = f"{tier['min_quantity']}-{tier['max_quantity']}"
        result.append({
            "min_quantity": tier["min_quantity"],
            "max_quantity": tier["max_quantity"],
            "quantity_range": quantity_range,
            "price_raw": tier["price_ron"],
            "price_display": price_display,
            "price_display_formatted": currency_service.format_amount(price_display, currency),
            "currency_code": currency.code,
        })
    return result
