"""Tests for order status transitions."""

import pytest

from storefront.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storefront.lifecycle import (
    OUTCOME_ALREADY_SETTLED,
    OUTCOME_CONFIRMED,
    OUTCOME_PAYMENT_RECORDED,
    apply_payment,
    by_id,
    can_transition,
    transition,
)
from storefront.orders import OrderLine


def _stock(services, product_id):
    return services.catalog.get_product(product_id).stock


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "confirmed"),
            ("pending", "cancelled"),
            ("confirmed", "shipped"),
            ("confirmed", "cancelled"),
            ("shipped", "delivered"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "shipped"),
            ("shipped", "cancelled"),
            ("delivered", "cancelled"),
            ("cancelled", "confirmed"),
            ("cancelled", "cancelled"),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_invalid_transition_leaves_order_unchanged(self, place_order):
        order = place_order()

        with pytest.raises(InvalidTransitionError):
            transition(order, "delivered")

        assert order.status == "pending"
        assert len(order.status_history) == 1

    def test_transition_appends_one_entry(self, place_order):
        order = place_order()

        transition(order, "confirmed", "ok")

        assert [e.status for e in order.status_history] == ["pending", "confirmed"]
        assert order.status_history[-1].note == "ok"


class TestApplyPayment:
    def test_pending_order_is_confirmed(self, place_order):
        order = place_order()

        outcome = apply_payment(order, "stripe", "pi_1", "paid")

        assert outcome == OUTCOME_CONFIRMED
        assert order.status == "confirmed"
        assert order.payment.status == "completed"
        assert order.payment.paid_at is not None

    def test_already_confirmed_order_records_payment(self, place_order):
        order = place_order()
        transition(order, "confirmed")

        outcome = apply_payment(order, "stripe", "pi_1", "paid")

        assert outcome == OUTCOME_PAYMENT_RECORDED
        assert len(order.status_history) == 2

    def test_second_payment_is_a_no_op(self, place_order):
        order = place_order()
        apply_payment(order, "stripe", "pi_1", "paid")

        outcome = apply_payment(order, "stripe", "pi_2", "paid again")

        assert outcome == OUTCOME_ALREADY_SETTLED
        assert order.payment.transaction_id == "pi_1"
        assert len(order.status_history) == 2

    def test_refunded_payment_is_not_applied_again(self, place_order):
        order = place_order()
        apply_payment(order, "stripe", "pi_1", "paid")
        order.payment.status = "refunded"
        paid_at = order.payment.paid_at

        outcome = apply_payment(order, "stripe", "pi_1", "paid")

        assert outcome == OUTCOME_ALREADY_SETTLED
        assert order.payment.status == "refunded"
        assert order.payment.paid_at == paid_at

    def test_cancelled_order_rejects_payment(self, place_order):
        order = place_order()
        transition(order, "cancelled")

        with pytest.raises(InvalidTransitionError):
            apply_payment(order, "stripe", "pi_1", "paid")
        assert order.payment.status == "pending"


class TestCancel:
    def test_stock_scenario(self, services, make_product, place_order):
        product = make_product(stock=5)

        order = place_order(lines=[OrderLine(product.id, 2)])
        assert _stock(services, product.id) == 3
        assert order.status == "pending"

        confirmed = services.lifecycle.confirm_payment(
            by_id(order.id), order.id, "cod", None, "Paid on delivery"
        )
        assert confirmed.status == "confirmed"
        assert len(confirmed.status_history) == len(order.status_history) + 1

        cancelled = services.lifecycle.cancel(order.id, "user-1")
        assert cancelled.status == "cancelled"
        assert _stock(services, product.id) == 5

        with pytest.raises(InvalidTransitionError):
            services.lifecycle.cancel(order.id, "user-1")
        assert _stock(services, product.id) == 5

    def test_cancel_restores_every_line(self, services, make_product, place_order):
        kettle = make_product("Kettle", stock=4)
        towel = make_product("Towel", stock=6)
        order = place_order(lines=[OrderLine(kettle.id, 1), OrderLine(towel.id, 3)])

        services.lifecycle.cancel(order.id, "user-1", reason="Changed my mind")

        assert _stock(services, kettle.id) == 4
        assert _stock(services, towel.id) == 6
        stored = services.orders.get_order(order.id, "user-1")
        assert stored.status_history[-1].note == "Cancelled by customer: Changed my mind"

    def test_only_owner_can_cancel(self, services, make_product, place_order):
        product = make_product(stock=5)
        order = place_order(lines=[OrderLine(product.id, 2)])

        with pytest.raises(ForbiddenError):
            services.lifecycle.cancel(order.id, "user-2")

        assert _stock(services, product.id) == 3
        assert services.orders.get_order(order.id, "user-1").status == "pending"

    def test_shipped_order_cannot_be_cancelled(self, services, place_order):
        order = place_order()
        services.lifecycle.advance(order.id, "confirmed")
        services.lifecycle.advance(order.id, "shipped")

        with pytest.raises(InvalidTransitionError):
            services.lifecycle.cancel(order.id, "user-1")

    def test_cancel_missing_order_raises(self, services):
        with pytest.raises(NotFoundError):
            services.lifecycle.cancel("missing", "user-1")

    def test_cancel_sends_notification(self, services, place_order):
        order = place_order()

        services.lifecycle.cancel(order.id, "user-1")

        types = [n.type for n in services.notifications.list_for_user("user-1")]
        assert "order_cancelled" in types


class TestAdvance:
    def test_full_fulfilment(self, services, place_order):
        order = place_order()

        for status in ("confirmed", "shipped", "delivered"):
            order = services.lifecycle.advance(order.id, status)

        assert order.status == "delivered"
        assert [e.status for e in order.status_history] == [
            "pending",
            "confirmed",
            "shipped",
            "delivered",
        ]

    def test_admin_cannot_cancel(self, services, place_order):
        order = place_order()

        with pytest.raises(ForbiddenError):
            services.lifecycle.advance(order.id, "cancelled")

    def test_unknown_status_raises(self, services, place_order):
        order = place_order()

        with pytest.raises(ValidationError):
            services.lifecycle.advance(order.id, "lost")

    def test_skipping_a_step_raises(self, services, place_order):
        order = place_order()

        with pytest.raises(InvalidTransitionError):
            services.lifecycle.advance(order.id, "delivered")


class TestConfirmPayment:
    def test_repeat_confirm_keeps_history(self, services, place_order):
        order = place_order()
        first = services.lifecycle.confirm_payment(by_id(order.id), order.id, "cod", "t1", "paid")

        second = services.lifecycle.confirm_payment(by_id(order.id), order.id, "cod", "t2", "paid")

        assert len(second.status_history) == len(first.status_history)
        stored = services.orders.get_order(order.id, "user-1")
        assert len(stored.status_history) == 2
        assert stored.payment.transaction_id == "t1"

    def test_owner_check(self, services, place_order):
        order = place_order()

        with pytest.raises(ForbiddenError):
            services.lifecycle.confirm_payment(
                by_id(order.id), order.id, "cod", None, "paid", owner="user-2"
            )
        assert services.orders.get_order(order.id, "user-1").status == "pending"

    def test_records_refs(self, services, place_order):
        order = place_order()

        confirmed = services.lifecycle.confirm_payment(
            by_id(order.id), order.id, "razorpay", "pay_1", "paid", razorpay_payment_id="pay_1"
        )

        assert confirmed.payment.razorpay_payment_id == "pay_1"
        assert confirmed.payment.method == "razorpay"


class TestManualPayment:
    def test_submit_then_approve(self, services, place_order):
        order = place_order(payment="upi")

        submitted = services.lifecycle.submit_manual_payment(
            order.id, "user-1", "upi", "TXN_1", upi_transaction_id="UTR123"
        )
        assert submitted.status == "pending"
        assert submitted.payment.status == "awaiting_verification"
        assert submitted.payment.upi_transaction_id == "UTR123"

        approved = services.lifecycle.approve_manual_payment(order.id)
        assert approved.status == "confirmed"
        assert approved.payment.status == "completed"
        assert "UTR123" in approved.status_history[-1].note

    def test_approve_without_submission_raises(self, services, place_order):
        order = place_order()

        with pytest.raises(ValidationError):
            services.lifecycle.approve_manual_payment(order.id)

    def test_submit_for_other_user_raises(self, services, place_order):
        order = place_order()

        with pytest.raises(ForbiddenError):
            services.lifecycle.submit_manual_payment(order.id, "user-2", "upi", "TXN_1")


class TestFailAndRefund:
    def test_fail_payment_keeps_status(self, services, place_order):
        order = place_order()

        failed = services.lifecycle.fail_payment(by_id(order.id), order.id)

        assert failed.status == "pending"
        assert failed.payment.status == "failed"

    def test_fail_after_completion_is_ignored(self, services, place_order):
        order = place_order()
        services.lifecycle.confirm_payment(by_id(order.id), order.id, "cod", None, "paid")

        result = services.lifecycle.fail_payment(by_id(order.id), order.id)

        assert result.payment.status == "completed"

    def test_partial_refund_keeps_payment_completed(self, services, place_order):
        order = place_order()
        services.lifecycle.confirm_payment(by_id(order.id), order.id, "cod", None, "paid")

        partial = services.lifecycle.record_refund(order.id, "re_1", full=False)
        assert partial.payment.status == "completed"

        full = services.lifecycle.record_refund(order.id, "re_2", full=True)
        assert full.payment.status == "refunded"
        assert full.status == "confirmed"
