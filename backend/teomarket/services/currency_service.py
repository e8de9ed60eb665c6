# Overview: Currency conversion through the RON pivot, display formatting and exchange-rate refresh.

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import Currency
from ..validation import CurrencyNotFound, ValidationError


BASE_CURRENCY = "RON"


def _quantum(precision: int) -> Decimal:
    return Decimal(1).scaleb(-precision)


def round_money(amount, precision: int = 2) -> Decimal:
    """Half-up rounding (the commercial rule, not banker's rounding)."""
    try:
        return Decimal(str(amount)).quantize(_quantum(precision), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Amount {amount} is out of range", {"amount": str(amount)})


def get_currency(code: str, *, active_only: bool = True) -> Currency:
    if not code:
        raise CurrencyNotFound("Currency code is required")
    query = db.session.query(Currency).filter_by(code=code.upper())
    if active_only:
        query = query.filter_by(is_active=True)
    currency = query.first()
    if not currency:
        raise CurrencyNotFound(f"Currency {code} not found", {"currency": code})
    return currency


def resolve_display_currency(code: str | None) -> Currency:
    """
    Currency to render prices in.

    Unknown or inactive codes fall back to the base currency, which must exist.
    """
    if code:
        currency = (
            db.session.query(Currency)
            .filter_by(code=code.upper(), is_active=True)
            .first()
        )
        if currency:
            return currency
        current_app.logger.info("Display currency %s unavailable, falling back to %s", code, BASE_CURRENCY)
    return get_currency(BASE_CURRENCY, active_only=False)


def convert(amount, from_code: str, to_code: str, precision: int = 2) -> Decimal:
    """
    Convert `amount` between two currencies.

    Every rate is "1 unit = value RON", so conversion always pivots through
    RON: to the base multiplies by the source rate, from the base divides by
    the target rate. Identical codes still round.

    Raises CurrencyNotFound when either code is missing.
    """
    amount = Decimal(str(amount))
    if from_code.upper() == to_code.upper():
        return round_money(amount, precision)

    source = get_currency(from_code, active_only=False)
    target = get_currency(to_code, active_only=False)

    if source.code == BASE_CURRENCY:
        result = amount / Decimal(target.value)
    elif target.code == BASE_CURRENCY:
        result = amount * Decimal(source.value)
    else:
        result = amount * Decimal(source.value) / Decimal(target.value)

    return round_money(result, precision)


def convert_from_base(amount, to_code: str, precision: int = 2) -> Decimal:
    return convert(amount, BASE_CURRENCY, to_code, precision)


def convert_to_base(amount, from_code: str, precision: int = 2) -> Decimal:
    return convert(amount, from_code, BASE_CURRENCY, precision)


def format_amount(amount, currency: Currency, precision: int = 2) -> str:
    """Fixed-point amount with the currency symbol; a left symbol wins over a right one."""
    text = f"{round_money(amount, precision):.{precision}f}"
    if currency.symbol_left:
        return f"{currency.symbol_left}{text}"
    if currency.symbol_right:
        return f"{text}{currency.symbol_right}"
    return text


# =============================================================================
# EXCHANGE RATE REFRESH (national bank feed)
# =============================================================================

def parse_bnr_rates(xml_bytes: bytes) -> tuple[date, dict[str, Decimal]]:
    """
    Parse the national bank daily feed (nbrfxrates.xml).

    Rates are RON per unit; ``multiplier`` marks quotes given per 100 units
    (HUF, JPY, ...) and is divided out.
    """
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as exc:
        raise ValidationError(f"Invalid exchange rate feed: {exc}")

    for cube in root.iter():
        if not cube.tag.endswith("Cube") or not cube.get("date"):
            continue
        try:
            rate_date = datetime.strptime(cube.get("date"), "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(f"Invalid feed date: {cube.get('date')}")

        rates: dict[str, Decimal] = {}
        for rate in cube:
            if not rate.tag.endswith("Rate"):
                continue
            code = (rate.get("currency") or "").upper()
            try:
                multiplier = int(rate.get("multiplier", "1"))
                value = Decimal((rate.text or "").strip()) / multiplier
            except (InvalidOperation, ValueError, ZeroDivisionError):
                current_app.logger.warning("Skipping unparseable rate for %s: %r", code, rate.text)
                continue
            if code and value > 0:
                rates[code] = value
        return rate_date, rates

    raise ValidationError("No exchange rate data found in feed")


def apply_exchange_rates(rates: dict[str, Decimal]) -> int:
    """
    Store fresh rates for currencies already configured.

    Unknown codes are skipped, the base currency is never taken from the feed
    and is upserted with rate 1. Returns the number of currencies updated.
    """
    updated = 0
    for code, value in rates.items():
        if code == BASE_CURRENCY:
            continue
        currency = db.session.query(Currency).filter_by(code=code).first()
        if not currency:
            current_app.logger.info("Exchange rate for unconfigured currency %s skipped", code)
            continue
        currency.value = value
        updated += 1

    base = db.session.query(Currency).filter_by(code=BASE_CURRENCY).first()
    if not base:
        base = Currency(code=BASE_CURRENCY, symbol_right=" lei", is_active=True)
        db.session.add(base)
    base.value = Decimal("1")

    db.session.commit()
    current_app.logger.info("Exchange rates applied: %s currencies updated", updated)
    return updated
