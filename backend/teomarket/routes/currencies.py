# Overview: Flask API routes for currency listing and conversion.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Currency
from ..services import currency_service
from ..validation import TeomarketError, coerce_decimal, coerce_int


currencies_bp = Blueprint("currencies", __name__, url_prefix="/api/currencies")


@currencies_bp.get("")
def list_currencies_route():
    currencies = db.session.query(Currency).filter_by(is_active=True).order_by(Currency.code).all()
    return jsonify({"currencies": [c.to_dict() for c in currencies]}), 200


@currencies_bp.get("/convert")
def convert_route():
    """
    Convert an amount between two currencies.

    Query params: amount, from, to, precision (optional, default 2, max 6)

    Returns:
        200: {"amount", "from", "to", "result", "formatted"}
        404: Unknown currency
        422: Invalid amount/precision
    """
    try:
        amount = coerce_decimal(request.args.get("amount"), "amount")
        from_code = (request.args.get("from") or currency_service.BASE_CURRENCY).upper()
        to_code = (request.args.get("to") or currency_service.BASE_CURRENCY).upper()
        precision = coerce_int(request.args.get("precision", "2"), "precision", minimum=0, maximum=6)

        result = currency_service.convert(amount, from_code, to_code, precision)
        target = currency_service.get_currency(to_code, active_only=False)
        return jsonify({
            "amount": str(amount),
            "from": from_code,
            "to": to_code,
            "result": str(result),
            "formatted": currency_service.format_amount(result, target, precision),
        }), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Currency conversion failed")
        return jsonify({"error": "Internal server error"}), 500
