# Overview: Flask API route for customer return requests; parses input and returns JSON responses.

"""
Return Request API Routes

Customers ask to send back units of a delivered order line. The request is
validated against the order (delivered, payment method) and the quantity
already returned on that line, then recorded as a pending return. Status
changes are admin-only (see routes/admin.py).
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import return_service
from ..services.return_service import ReturnRequest
from ..validation import TeomarketError, coerce_bool, coerce_int, require_fields


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def create_return_route():
    """
    Create a return request (status: pending).

    Request body:
    {
        "order_id": 10,
        "order_product_id": 31,
        "quantity": 1,
        "return_reason": "defect",
        "return_reason_details": "Screen cracked",  (required for other/defect)
        "is_product_opened": true,  (optional)
        "iban": "RO49AAAA1B31007593840000",  (required for cash on delivery orders)
        "email": "client@example.com",  (optional)
        "phone": "0712345678",  (optional)
        "restock_item": true  (optional)
    }

    Returns:
        201: Return created
        404: Unknown order or order line
        422: Validation failure (details in response)
    """
    try:
        data = require_fields(
            request.get_json(silent=True),
            "order_id", "order_product_id", "quantity", "return_reason",
        )
        return_request = ReturnRequest(
            order_id=coerce_int(data["order_id"], "order_id", minimum=1),
            order_product_id=coerce_int(data["order_product_id"], "order_product_id", minimum=1),
            quantity=data["quantity"],
            return_reason=data["return_reason"],
            return_reason_details=data.get("return_reason_details"),
            is_product_opened=coerce_bool(data.get("is_product_opened", False), "is_product_opened"),
            iban=data.get("iban"),
            email=data.get("email"),
            phone=data.get("phone"),
            restock_item=coerce_bool(data.get("restock_item", False), "restock_item"),
        )
        product_return = return_service.create_return(return_request)
        return jsonify({"return": product_return.to_dict()}), 201
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500
