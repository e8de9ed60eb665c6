from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Upper bound on a single cart/return quantity; rejects obviously bogus input
MAX_LINE_QUANTITY = 100_000

# Largest amount a Numeric(12, 2) money column holds
MAX_MONEY_AMOUNT = Decimal("9999999999.99")


class TeomarketError(Exception):
    """Base for every error the order core surfaces to callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(TeomarketError):
    """422-level user-correctable problem (stock, quantity caps, bad input)."""
    status_code = 422


class NotFoundError(TeomarketError):
    """404-level unknown product/currency/order/return."""
    status_code = 404


class CurrencyNotFound(NotFoundError):
    """Currency code missing from the currencies table."""


class ConsistencyError(TeomarketError):
    """409-level business-rule violation (converted cart, configurable product)."""
    status_code = 409


class TransientInfraError(TeomarketError):
    """503-level database unavailability after retries are exhausted."""
    status_code = 503


def require_fields(payload: Any, *fields: str) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """Strict integer parsing: rejects floats, bools and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return result


def coerce_quantity(value: Any, field: str = "quantity") -> int:
    return coerce_int(value, field, minimum=1, maximum=MAX_LINE_QUANTITY)


def coerce_decimal(value: Any, field: str, *, minimum: Decimal | None = None,
                   maximum: Decimal | None = MAX_MONEY_AMOUNT) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats keep their printed value instead of binary noise
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and abs(result) > maximum:
        raise ValidationError(f"{field} must be between -{maximum} and {maximum}")
    return result


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no"):
        return False
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean")
