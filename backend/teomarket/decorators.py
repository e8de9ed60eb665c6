# Overview: Request decorators for API routes (admin token, storefront identity and pricing context).

import hmac
from functools import wraps

from flask import request, jsonify, g, current_app

from .extensions import db
from .models import Customer
from .services.pricing_service import PricingContext
from .validation import ValidationError, coerce_int


def require_admin_token(f):
    """
    Require the back-office shared secret in X-Admin-Token.

    Returns 403 when no ADMIN_API_TOKEN is configured and 401 when the
    header is missing or wrong.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN") or ""
        if not expected:
            return jsonify({"error": "Admin API disabled"}), 403

        supplied = request.headers.get("X-Admin-Token", "")
        if not supplied or not hmac.compare_digest(supplied, expected):
            current_app.logger.warning("Rejected admin request to %s from %s", request.path, request.remote_addr)
            return jsonify({"error": "Admin token required"}), 401

        return f(*args, **kwargs)

    return decorated_function


def with_storefront_context(f):
    """
    Resolve who is shopping and how prices are shown.

    Sets the following Flask g attributes:
    - g.session_id: anonymous cart key from X-Session-Id (may be None)
    - g.customer_id: logged-in customer from X-Customer-Id (may be None)
    - g.pricing_context: PricingContext from X-Currency and the customer's group

    Returns 400 if neither identity header is present, 404 for an unknown customer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session_id = (request.headers.get("X-Session-Id") or "").strip() or None
        raw_customer_id = request.headers.get("X-Customer-Id")

        customer = None
        if raw_customer_id:
            try:
                customer_id = coerce_int(raw_customer_id, "X-Customer-Id", minimum=1)
            except ValidationError as e:
                return jsonify(e.to_dict()), 400
            customer = db.session.get(Customer, customer_id)
            if not customer:
                return jsonify({"error": f"Customer {customer_id} not found"}), 404

        if not session_id and not customer:
            return jsonify({"error": "X-Session-Id or X-Customer-Id header required"}), 400

        g.session_id = session_id
        g.customer_id = customer.id if customer else None
        g.pricing_context = PricingContext(
            currency_code=(request.headers.get("X-Currency") or current_app.config["BASE_CURRENCY"]).strip().upper(),
            customer_group_id=customer.customer_group_id if customer else None,
        )
        return f(*args, **kwargs)

    return decorated_function
