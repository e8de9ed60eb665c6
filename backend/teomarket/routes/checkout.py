# Overview: Flask API route for placing an order from the current cart.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_storefront_context
from ..services import cart_service, order_service
from ..services.order_service import CheckoutRequest
from ..validation import NotFoundError, TeomarketError, require_fields


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
@with_storefront_context
def checkout_route():
    """
    Convert the current cart into an order.

    Request body:
    {
        "payment_method": "card" | "online" | "paypal" | "bank_transfer" | "cod",
        "shipping_method": "courier",  (optional)
        "contact_email": "client@example.com",  (optional)
        "idempotency_key": "..."  (optional, or Idempotency-Key header)
    }

    Returns:
        201: Order placed (or the order a previous call with the same key placed)
        404: No active cart
        409: Cart already converted
        422: Empty cart, insufficient stock, unknown payment method or currency
    """
    try:
        data = require_fields(request.get_json(silent=True), "payment_method")

        idempotency_key = data.get("idempotency_key") or request.headers.get("Idempotency-Key")

        cart = cart_service.find_active_cart(session_id=g.session_id, customer_id=g.customer_id)
        if not cart:
            # A retried submit finds its cart already converted
            existing = order_service.find_replayable_order(
                idempotency_key, session_id=g.session_id, customer_id=g.customer_id,
            )
            if existing:
                return jsonify({"order": existing.to_dict()}), 201
            raise NotFoundError("No active cart")

        checkout = CheckoutRequest(
            payment_method=data["payment_method"],
            shipping_method=data.get("shipping_method"),
            contact_email=data.get("contact_email"),
            idempotency_key=idempotency_key,
        )
        order = order_service.submit_order(cart.id, checkout, g.pricing_context)
        return jsonify({"order": order.to_dict()}), 201
    except TeomarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500
