# Overview: Pytest coverage for return creation limits and the restock state machine.

"""
Return Service Tests

Covers:
- Quantity cap: ordered minus everything already returned (any status)
- Eligibility (delivered orders only, line ownership, details, IBAN for cash on delivery)
- Restock applied once on entering completed and reversed on leaving it
- Refund amount / restock flag edits
"""

from decimal import Decimal

import pytest
from teomarket.extensions import db
from teomarket.models import Product, ProductReturn
from teomarket.models.enums import OrderStatus, ReturnStatus
from teomarket.services import return_service
from teomarket.services.return_service import ReturnRequest
from teomarket.validation import NotFoundError, ValidationError


def _request(order, line, quantity, **overrides):
    fields = {
        "order_id": order.id,
        "order_product_id": line.id,
        "quantity": quantity,
        "return_reason": "wrong_product",
    }
    fields.update(overrides)
    return ReturnRequest(**fields)


def _stock(product):
    return db.session.get(Product, product.id).stock_quantity


class TestCreateReturn:
    def test_return_number_and_defaults(self, delivered_order):
        order, line, _product = delivered_order

        product_return = return_service.create_return(_request(order, line, 2))

        assert product_return.return_number == "RET-000001"
        assert product_return.status == ReturnStatus.PENDING.value
        assert product_return.email == "ana@example.com"
        assert product_return.restocked_at is None

    def test_quantity_cap(self, delivered_order):
        """Ordered 10: returning 4 leaves 6, so 7 is rejected and 6 accepted."""
        order, line, _product = delivered_order

        return_service.create_return(_request(order, line, 4))
        with pytest.raises(ValidationError) as exc:
            return_service.create_return(_request(order, line, 7))
        assert "Cannot return more than available quantity" in exc.value.message
        assert exc.value.details["available"] == 6

        return_service.create_return(_request(order, line, 6))
        assert return_service.get_returnable_quantity(line.id) == 0

    def test_rejected_returns_still_count(self, delivered_order):
        order, line, _product = delivered_order
        rejected = return_service.create_return(_request(order, line, 8))
        return_service.update_status(rejected.id, "rejected")

        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, line, 3))
        assert return_service.get_returnable_quantity(line.id) == 2

    def test_order_must_be_delivered(self, make_product, place_order):
        order = place_order([(make_product(), 2)], status=OrderStatus.SHIPPED)

        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, order.products[0], 1))

    def test_details_required_for_defect(self, delivered_order):
        order, line, _product = delivered_order

        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, line, 1, return_reason="defect"))

        product_return = return_service.create_return(
            _request(order, line, 1, return_reason="defect", return_reason_details="Cracked lid")
        )
        assert product_return.return_reason_details == "Cracked lid"

    def test_unknown_reason(self, delivered_order):
        order, line, _product = delivered_order
        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, line, 1, return_reason="changed_mind"))

    def test_cash_on_delivery_requires_iban(self, make_product, place_order):
        order = place_order([(make_product(), 2)], payment_method="cod", status=OrderStatus.DELIVERED)
        line = order.products[0]

        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, line, 1))

        product_return = return_service.create_return(_request(order, line, 1, iban="ro49 aaaa 1b31 0075 9384 0000"))
        assert product_return.iban == "RO49AAAA1B31007593840000"

    def test_line_must_belong_to_order(self, delivered_order, make_product, place_order):
        order, _line, _product = delivered_order
        other = place_order([(make_product(), 1)], status=OrderStatus.DELIVERED)

        with pytest.raises(ValidationError):
            return_service.create_return(_request(order, other.products[0], 1))

    def test_unknown_order_and_line(self, delivered_order):
        order, line, _product = delivered_order

        with pytest.raises(NotFoundError):
            return_service.create_return(ReturnRequest(
                order_id=999999, order_product_id=line.id, quantity=1, return_reason="wrong_product",
            ))
        with pytest.raises(NotFoundError):
            return_service.create_return(ReturnRequest(
                order_id=order.id, order_product_id=999999, quantity=1, return_reason="wrong_product",
            ))

    def test_order_returns_listing(self, delivered_order):
        order, line, _product = delivered_order
        first = return_service.create_return(_request(order, line, 1))
        second = return_service.create_return(_request(order, line, 2))

        assert [r.id for r in return_service.get_order_returns(order.id)] == [first.id, second.id]


class TestRestockStateMachine:
    def test_completing_twice_restocks_once(self, delivered_order):
        order, line, product = delivered_order
        product_return = return_service.create_return(_request(order, line, 3, restock_item=True))

        return_service.update_status(product_return.id, "received")
        return_service.update_status(product_return.id, "completed")
        return_service.update_status(product_return.id, "completed")

        assert _stock(product) == 43
        assert db.session.get(ProductReturn, product_return.id).restocked_at is not None

    def test_leaving_completed_reverses_restock(self, delivered_order):
        order, line, product = delivered_order
        product_return = return_service.create_return(_request(order, line, 3, restock_item=True))

        return_service.update_status(product_return.id, ReturnStatus.COMPLETED)
        assert _stock(product) == 43

        rejected = return_service.update_status(product_return.id, ReturnStatus.REJECTED)
        assert _stock(product) == 40
        assert rejected.restocked_at is None

        return_service.update_status(product_return.id, ReturnStatus.COMPLETED)
        assert _stock(product) == 43

    def test_no_restock_without_flag(self, delivered_order):
        order, line, product = delivered_order
        product_return = return_service.create_return(_request(order, line, 3))

        completed = return_service.update_status(product_return.id, "completed")

        assert completed.status == ReturnStatus.COMPLETED.value
        assert completed.restocked_at is None
        assert _stock(product) == 40

    def test_reversal_fails_when_units_sold(self, delivered_order):
        order, line, product = delivered_order
        product_return = return_service.create_return(_request(order, line, 3, restock_item=True))
        return_service.update_status(product_return.id, "completed")
        db.session.get(Product, product.id).stock_quantity = 1
        db.session.commit()

        with pytest.raises(ValidationError):
            return_service.update_status(product_return.id, "inspecting")

        unchanged = db.session.get(ProductReturn, product_return.id)
        assert unchanged.status == ReturnStatus.COMPLETED.value
        assert unchanged.restocked_at is not None
        assert _stock(product) == 1

    def test_clearing_flag_keeps_applied_restock(self, delivered_order):
        order, line, product = delivered_order
        product_return = return_service.create_return(_request(order, line, 2, restock_item=True))
        return_service.update_status(product_return.id, "completed")

        updated = return_service.update_restock_item(product_return.id, False)

        assert updated.restock_item is False
        assert updated.restocked_at is not None
        assert _stock(product) == 42

    def test_unknown_status(self, delivered_order):
        order, line, _product = delivered_order
        product_return = return_service.create_return(_request(order, line, 1))
        with pytest.raises(ValidationError):
            return_service.update_status(product_return.id, "lost_in_mail")


class TestRefundAmount:
    def test_set_and_clear(self, delivered_order):
        order, line, _product = delivered_order
        product_return = return_service.create_return(_request(order, line, 1))

        assert return_service.update_refund_amount(product_return.id, "49.995").refund_amount == Decimal("50.00")
        assert return_service.update_refund_amount(product_return.id, None).refund_amount is None

    def test_negative_rejected(self, delivered_order):
        order, line, _product = delivered_order
        product_return = return_service.create_return(_request(order, line, 1))

        with pytest.raises(ValidationError):
            return_service.update_refund_amount(product_return.id, "-5")

    def test_out_of_range_rejected(self, delivered_order):
        order, line, _product = delivered_order
        product_return = return_service.create_return(_request(order, line, 1))

        with pytest.raises(ValidationError):
            return_service.update_refund_amount(product_return.id, "1e30")

    def test_unknown_return(self, db_session):
        with pytest.raises(NotFoundError):
            return_service.update_refund_amount(31337, "10")
