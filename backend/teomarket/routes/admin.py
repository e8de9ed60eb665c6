# Overview: Back-office API routes for order and return administration.

"""
Admin API Routes

SECURITY:
- Every route requires the X-Admin-Token shared secret
- Order edits append OrderHistory rows; return status changes drive stock
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_admin_token
from ..services import order_service, return_service
from ..validation import TeomarketError, coerce_bool, require_fields


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders/<int:order_id>")
@require_admin_token
def get_order_route(order_id: int):
    """Order with line snapshots, history and returns."""
    try:
        order = order_service.get_order(order_id)
        data = order.to_dict()
        data["history"] = [entry.to_dict() for entry in order.history]
        data["returns"] = [r.to_dict() for r in return_service.get_order_returns(order.id)]
        for line in data["products"]:
            line["returnable_quantity"] = return_service.get_returnable_quantity(line["id"])
        return jsonify({"order": data}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/status")
@require_admin_token
def update_order_status_route(order_id: int):
    """
    Request body:
    {
        "status": "shipped",
        "note": "AWB 123"  (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "status")
        order = order_service.update_order_status(order_id, data["status"], note=data.get("note"))
        return jsonify({"order": order.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/paid")
@require_admin_token
def set_order_paid_route(order_id: int):
    """Request body: {"is_paid": true}"""
    try:
        data = require_fields(request.get_json(silent=True), "is_paid")
        order = order_service.set_order_paid(order_id, coerce_bool(data["is_paid"], "is_paid"))
        return jsonify({"order": order.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@admin_bp.get("/returns/<int:return_id>")
@require_admin_token
def get_return_route(return_id: int):
    try:
        product_return = return_service.get_return(return_id)
        return jsonify({"return": product_return.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load return")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/returns/<int:return_id>/status")
@require_admin_token
def update_return_status_route(return_id: int):
    """
    Move a return to a new status.

    Request body: {"status": "completed"}

    Entering completed restocks when restock_item is set; leaving completed
    reverses an applied restock.

    Returns:
        200: Updated return
        404: Unknown return
        422: Unknown status, or restock reversal impossible (units sold since)
    """
    try:
        data = require_fields(request.get_json(silent=True), "status")
        product_return = return_service.update_status(return_id, data["status"])
        return jsonify({"return": product_return.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update return status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/returns/<int:return_id>/refund-amount")
@require_admin_token
def update_refund_amount_route(return_id: int):
    """Request body: {"refund_amount": "149.99"} (null clears it)"""
    try:
        data = request.get_json(silent=True) or {}
        product_return = return_service.update_refund_amount(return_id, data.get("refund_amount"))
        return jsonify({"return": product_return.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update refund amount")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/returns/<int:return_id>/restock-item")
@require_admin_token
def update_restock_item_route(return_id: int):
    """Request body: {"restock_item": true}"""
    try:
        data = require_fields(request.get_json(silent=True), "restock_item")
        product_return = return_service.update_restock_item(
            return_id, coerce_bool(data["restock_item"], "restock_item"),
        )
        return jsonify({"return": product_return.to_dict()}), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update restock flag")
        return jsonify({"error": "Internal server error"}), 500
