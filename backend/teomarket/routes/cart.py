# Overview: Flask API routes for the storefront cart; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_storefront_context
from ..services import cart_service
from ..validation import TeomarketError, ValidationError, coerce_int, coerce_quantity, require_fields


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _current_cart():
    return cart_service.get_or_create_cart(session_id=g.session_id, customer_id=g.customer_id)


def _summary(cart):
    return {"cart": cart_service.get_cart_summary(cart.id, g.pricing_context)}


@cart_bp.get("")
@with_storefront_context
def get_cart_route():
    """Current cart with live prices in the X-Currency currency."""
    try:
        return jsonify(_summary(_current_cart())), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@with_storefront_context
def add_item_route():
    """
    Add a product to the cart (quantities add up on an existing line).

    Request body:
    {
        "product_id": 12,
        "quantity": 2  (optional, default: 1)
    }

    Returns:
        201: Updated cart summary
        404: Unknown or inactive product
        409: Configurable product or converted cart
        422: Out of stock / invalid quantity
    """
    try:
        data = require_fields(request.get_json(silent=True), "product_id")
        quantity = coerce_quantity(data.get("quantity", 1))
        product_id = coerce_int(data["product_id"], "product_id", minimum=1)
        cart = _current_cart()
        cart_service.add_item(cart.id, product_id, quantity)
        return jsonify(_summary(cart)), 201
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/items/<int:product_id>")
@with_storefront_context
def update_item_route(product_id: int):
    """Set a line quantity; 0 removes the line."""
    try:
        data = require_fields(request.get_json(silent=True), "quantity")
        cart = _current_cart()
        cart_service.update_item_quantity(cart.id, product_id, data["quantity"])
        return jsonify(_summary(cart)), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:product_id>")
@with_storefront_context
def remove_item_route(product_id: int):
    try:
        cart = _current_cart()
        cart_service.remove_item(cart.id, product_id)
        return jsonify(_summary(cart)), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@with_storefront_context
def clear_cart_route():
    try:
        cart = _current_cart()
        cart_service.clear_cart(cart.id)
        return jsonify(_summary(cart)), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/merge")
@with_storefront_context
def merge_cart_route():
    """
    Post-login hook: fold the anonymous cart into the customer's cart.

    Called once by the login workflow with both X-Session-Id (the anonymous
    session being closed) and X-Customer-Id (the account just logged in).
    """
    try:
        if not g.customer_id or not g.session_id:
            raise ValidationError("Both X-Session-Id and X-Customer-Id are required to merge carts")
        cart = cart_service.merge_carts_on_login(g.session_id, g.customer_id)
        if cart is None:
            cart = _current_cart()
        return jsonify(_summary(cart)), 200
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to merge carts")
        return jsonify({"error": "Internal server error"}), 500
