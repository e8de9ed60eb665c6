# Overview: Pytest coverage for the HTTP API and CLI commands.

"""
API Route Tests

Exercises the blueprints through the Flask test client:
- storefront headers (X-Session-Id / X-Customer-Id / X-Currency)
- cart -> checkout -> admin status -> return flow
- admin token enforcement
- CLI commands through the test CLI runner
"""

from datetime import timedelta
from decimal import Decimal

from teomarket.extensions import db
from teomarket.models import Cart, Currency, CustomerGroup, Order, Product, ProductReturn
from teomarket.models.enums import CartStatus
from teomarket.time_utils import utcnow


SESSION = {"X-Session-Id": "sess-web-1"}


def _add(client, product_id, quantity=1, headers=SESSION):
    return client.post("/api/cart/items", json={"product_id": product_id, "quantity": quantity}, headers=headers)


class TestHealth:
    def test_healthy_with_base_currency(self, client, currencies):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_degraded_without_base_currency(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"]["details"]["base_currency_configured"] is False


class TestCartRoutes:
    def test_identity_header_required(self, client, currencies):
        response = client.get("/api/cart")
        assert response.status_code == 400

    def test_unknown_customer(self, client, currencies):
        response = client.get("/api/cart", headers={"X-Customer-Id": "9999"})
        assert response.status_code == 404

    def test_add_update_remove(self, client, currencies, b2c_group, make_product):
        product = make_product(price="10.00")

        response = _add(client, product.id, 2)
        assert response.status_code == 201
        cart = response.get_json()["cart"]
        assert cart["item_count"] == 2
        assert cart["subtotal_display"] == "20.00 lei"

        response = client.patch(f"/api/cart/items/{product.id}", json={"quantity": 5}, headers=SESSION)
        assert response.get_json()["cart"]["item_count"] == 5

        response = client.delete(f"/api/cart/items/{product.id}", headers=SESSION)
        assert response.status_code == 200
        assert response.get_json()["cart"]["items"] == []

    def test_currency_header(self, client, currencies, b2c_group, make_product):
        product = make_product(price="49.70")
        _add(client, product.id, 1)

        response = client.get("/api/cart", headers={**SESSION, "X-Currency": "eur"})

        cart = response.get_json()["cart"]
        assert cart["currency_code"] == "EUR"
        assert cart["subtotal_display"] == "€10.00"

    def test_error_status_codes(self, client, currencies, b2c_group, make_product):
        configurable = make_product(type="configurable", stock=0)
        sold_out = make_product(stock=0)

        assert _add(client, 999999).status_code == 404
        assert _add(client, configurable.id).status_code == 409
        assert _add(client, sold_out.id).status_code == 422
        assert client.post("/api/cart/items", json={}, headers=SESSION).status_code == 422

    def test_merge_on_login(self, client, currencies, customer, make_product):
        product = make_product()
        _add(client, product.id, 2, headers={"X-Customer-Id": str(customer.id)})
        _add(client, product.id, 1, headers={"X-Session-Id": "sess-anon"})

        response = client.post("/api/cart/merge", headers={
            "X-Session-Id": "sess-anon",
            "X-Customer-Id": str(customer.id),
        })

        assert response.status_code == 200
        assert response.get_json()["cart"]["item_count"] == 3


class TestCheckoutRoute:
    def test_checkout_places_order(self, client, currencies, b2c_group, make_product):
        product = make_product(price="10.00", stock=5)
        _add(client, product.id, 2)

        response = client.post("/api/checkout", json={"payment_method": "cod"}, headers=SESSION)

        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["order_number"] == "TM-000001"
        assert order["status"] == "confirmed"
        assert order["total"] == "20.00"
        assert db.session.get(Product, product.id).stock_quantity == 3

    def test_retry_with_same_key_returns_first_order(self, client, currencies, b2c_group, make_product):
        product = make_product(stock=5)
        _add(client, product.id, 1)
        headers = {**SESSION, "Idempotency-Key": "abc-1"}

        first = client.post("/api/checkout", json={"payment_method": "card"}, headers=headers)
        second = client.post("/api/checkout", json={"payment_method": "card"}, headers=headers)

        assert first.status_code == second.status_code == 201
        assert first.get_json()["order"]["id"] == second.get_json()["order"]["id"]
        assert db.session.query(Order).count() == 1

    def test_key_of_another_session_is_not_replayed(self, client, currencies, b2c_group, make_product):
        product = make_product(stock=5)
        _add(client, product.id, 1)
        client.post("/api/checkout", json={"payment_method": "card"}, headers={**SESSION, "Idempotency-Key": "abc-1"})
        other = {"X-Session-Id": "sess-web-2", "Idempotency-Key": "abc-1"}

        # No cart of its own: nothing to replay, and the first order stays private
        response = client.post("/api/checkout", json={"payment_method": "card"}, headers=other)
        assert response.status_code == 404
        assert "order" not in response.get_json()

        _add(client, product.id, 2, headers={"X-Session-Id": "sess-web-2"})
        response = client.post("/api/checkout", json={"payment_method": "card"}, headers=other)
        assert response.status_code == 409
        assert db.session.query(Order).count() == 1
        assert db.session.get(Product, product.id).stock_quantity == 4

    def test_no_active_cart(self, client, currencies):
        response = client.post("/api/checkout", json={"payment_method": "card"}, headers=SESSION)
        assert response.status_code == 404

    def test_insufficient_stock(self, client, currencies, b2c_group, make_product):
        product = make_product(stock=5)
        _add(client, product.id, 4)
        db.session.get(Product, product.id).stock_quantity = 2
        db.session.commit()

        response = client.post("/api/checkout", json={"payment_method": "card"}, headers=SESSION)

        assert response.status_code == 422
        assert response.get_json()["details"]["items"][0]["product_id"] == product.id
        cart = db.session.query(Cart).filter_by(session_id="sess-web-1").one()
        assert cart.status == CartStatus.ACTIVE.value


class TestReturnRoutes:
    def test_create_return(self, client, delivered_order):
        order, line, _product = delivered_order

        response = client.post("/api/returns", json={
            "order_id": order.id,
            "order_product_id": line.id,
            "quantity": 2,
            "return_reason": "sealed_return",
        })

        assert response.status_code == 201
        assert response.get_json()["return"]["return_number"] == "RET-000001"

    def test_quantity_over_cap(self, client, delivered_order):
        order, line, _product = delivered_order

        response = client.post("/api/returns", json={
            "order_id": order.id,
            "order_product_id": line.id,
            "quantity": 11,
            "return_reason": "wrong_product",
        })

        assert response.status_code == 422
        assert response.get_json()["details"]["available"] == 10


class TestAdminRoutes:
    def test_token_required(self, client, delivered_order):
        order, _line, _product = delivered_order

        assert client.get(f"/api/admin/orders/{order.id}").status_code == 401
        assert client.get(f"/api/admin/orders/{order.id}", headers={"X-Admin-Token": "wrong"}).status_code == 401

    def test_disabled_without_configured_token(self, app, client, delivered_order, admin_headers):
        order, _line, _product = delivered_order
        app.config["ADMIN_API_TOKEN"] = ""
        try:
            assert client.get(f"/api/admin/orders/{order.id}", headers=admin_headers).status_code == 403
        finally:
            app.config["ADMIN_API_TOKEN"] = admin_headers["X-Admin-Token"]

    def test_order_detail(self, client, delivered_order, admin_headers):
        order, line, _product = delivered_order

        response = client.get(f"/api/admin/orders/{order.id}", headers=admin_headers)

        assert response.status_code == 200
        body = response.get_json()["order"]
        assert [h["action"] for h in body["history"]] == ["order_created", "status_changed"]
        assert body["products"][0]["returnable_quantity"] == 10

    def test_order_status_and_payment(self, client, make_product, place_order, admin_headers):
        order = place_order([(make_product(), 1)], payment_method="cod")

        response = client.post(f"/api/admin/orders/{order.id}/status", json={"status": "shipped"}, headers=admin_headers)
        assert response.get_json()["order"]["status"] == "shipped"

        response = client.post(f"/api/admin/orders/{order.id}/paid", json={"is_paid": True}, headers=admin_headers)
        assert response.get_json()["order"]["is_paid"] is True

        response = client.post(f"/api/admin/orders/{order.id}/status", json={"status": "nope"}, headers=admin_headers)
        assert response.status_code == 422

    def test_return_workflow(self, client, delivered_order, admin_headers):
        order, line, product = delivered_order
        created = client.post("/api/returns", json={
            "order_id": order.id,
            "order_product_id": line.id,
            "quantity": 3,
            "return_reason": "wrong_product",
            "restock_item": True,
        }).get_json()["return"]

        response = client.post(f"/api/admin/returns/{created['id']}/status",
                               json={"status": "completed"}, headers=admin_headers)
        assert response.status_code == 200
        assert db.session.get(Product, product.id).stock_quantity == 43

        response = client.post(f"/api/admin/returns/{created['id']}/refund-amount",
                               json={"refund_amount": "150"}, headers=admin_headers)
        assert response.get_json()["return"]["refund_amount"] == "150.00"

        response = client.get(f"/api/admin/returns/{created['id']}", headers=admin_headers)
        assert response.get_json()["return"]["status"] == "completed"

    def test_refund_amount_out_of_range(self, client, delivered_order, admin_headers):
        order, line, _product = delivered_order
        created = client.post("/api/returns", json={
            "order_id": order.id,
            "order_product_id": line.id,
            "quantity": 1,
            "return_reason": "wrong_product",
        }).get_json()["return"]

        response = client.post(f"/api/admin/returns/{created['id']}/refund-amount",
                               json={"refund_amount": "1e30"}, headers=admin_headers)

        assert response.status_code == 422
        assert db.session.get(ProductReturn, created["id"]).refund_amount is None

    def test_unknown_return(self, client, db_session, admin_headers):
        response = client.get("/api/admin/returns/4242", headers=admin_headers)
        assert response.status_code == 404


class TestCurrencyRoutes:
    def test_list(self, client, currencies):
        response = client.get("/api/currencies")
        assert [c["code"] for c in response.get_json()["currencies"]] == ["EUR", "RON", "USD"]

    def test_convert(self, client, currencies):
        response = client.get("/api/currencies/convert?amount=20&from=EUR&to=RON")

        assert response.status_code == 200
        body = response.get_json()
        assert body["result"] == "99.40"
        assert body["formatted"] == "99.40 lei"

    def test_convert_unknown_currency(self, client, currencies):
        response = client.get("/api/currencies/convert?amount=20&from=EUR&to=GBP")
        assert response.status_code == 404

    def test_convert_amount_out_of_range(self, client, currencies):
        response = client.get("/api/currencies/convert?amount=1e30&from=EUR&to=RON")
        assert response.status_code == 422

    def test_convert_bad_amount(self, client, currencies):
        response = client.get("/api/currencies/convert?amount=abc&from=EUR&to=RON")
        assert response.status_code == 422


class TestCli:
    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        second = runner.invoke(args=["system", "init"])

        assert first.exit_code == 0
        assert "PASS Created currency RON" in first.output
        assert "WARN  Currency RON already exists" in second.output
        assert db.session.query(Currency).count() == 3
        assert db.session.query(CustomerGroup).count() == 2

    def test_carts_cleanup(self, app, db_session):
        db.session.add(Cart(session_id="old", status=CartStatus.CONVERTED.value,
                            updated_at=utcnow() - timedelta(days=60)))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["carts", "cleanup", "--days", "30"])

        assert result.exit_code == 0
        assert "Deleted 1 converted carts" in result.output
        assert db.session.query(Cart).count() == 0

    def test_update_rates_from_file(self, app, currencies, tmp_path):
        feed = tmp_path / "nbrfxrates.xml"
        feed.write_bytes(
            b'<?xml version="1.0" encoding="utf-8"?>'
            b'<DataSet xmlns="http://www.bnr.ro/xsd"><Body>'
            b'<Cube date="2026-10-16"><Rate currency="EUR">5.0800</Rate><Rate currency="USD">4.3600</Rate></Cube>'
            b'</Body></DataSet>'
        )

        result = app.test_cli_runner().invoke(args=["currencies", "update-rates", "--file", str(feed)])

        assert result.exit_code == 0, result.output
        assert "2 currencies updated" in result.output
        eur = db.session.query(Currency).filter_by(code="EUR").one()
        db.session.refresh(eur)
        assert eur.value == Decimal("5.08")

    def test_convert(self, app, currencies):
        result = app.test_cli_runner().invoke(args=["currencies", "convert", "100", "EUR", "RON"])

        assert result.exit_code == 0
        assert "497.00 lei" in result.output
