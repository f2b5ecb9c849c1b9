"""Payment orchestration: gateway calls on one side, order transitions on the other."""

from typing import Any, Mapping

import structlog

from ..errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PaymentNotCompletedError,
    UnsupportedPaymentOperation,
    ValidationError,
)
from ..lifecycle import OrderLifecycle, by_id, by_payment_ref
from ..models import (
    CANCELLED,
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_COMPLETED,
    PENDING,
    Order,
)
from ..pricing import to_minor_units
from ..store import DocumentStore
from .protocol import (
    ASSURANCE_MANUAL,
    EVENT_CHECKOUT_COMPLETED,
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_SUCCEEDED,
    HostedSession,
    PaymentInitiation,
)
from .registry import GatewayRegistry
from .upi import new_transaction_ref, qr_data_uri

logger = structlog.get_logger(__name__)


class PaymentService:
    """Runs payment flows for orders.

    Gateway calls happen outside store transactions. Order state only
    changes through OrderLifecycle, and only after a gateway answer (or a
    verified signature) says the payment went through.
    """

    def __init__(
        self,
        store: DocumentStore,
        lifecycle: OrderLifecycle,
        gateways: GatewayRegistry,
        manual_requires_approval: bool = True,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.gateways = gateways
        self.manual_requires_approval = manual_requires_approval

    def _owned_order(self, order_id: str, user_id: str) -> Order:
        order = Order.from_dict(self.store.read().require("orders", order_id, "Order"))
        if order.customer != user_id:
            raise ForbiddenError("Not authorized to access this order")
        return order

    def _payable_order(self, order_id: str, user_id: str) -> Order:
        order = self._owned_order(order_id, user_id)
        if order.status != PENDING:
            raise ValidationError(f"Order is {order.status} and cannot be paid")
        if order.payment.status in (PAYMENT_COMPLETED, PAYMENT_AWAITING_VERIFICATION):
            raise ValidationError("Order payment has already been submitted")
        if order.pricing.total <= 0:
            raise ValidationError("Invalid order amount")
        return order

    def initiate(self, method: str, order_id: str, user_id: str) -> PaymentInitiation:
        """
        Start a payment for one of the caller's pending orders.

        The returned reference is stored on the order so that later
        confirmations and webhooks can find it.
        """
        gateway = self.gateways.get(method)
        order = self._payable_order(order_id, user_id)
        initiation = gateway.initiate(order)
        self.lifecycle.record_payment_refs(
            order.id, method=method, **{initiation.reference_field: initiation.reference}
        )
        logger.info(
            "payment_initiated",
            order_id=order.id,
            method=method,
            reference=initiation.reference,
            amount=initiation.amount,
        )
        return initiation

    def create_hosted_session(self, method: str, order_id: str, user_id: str) -> HostedSession:
        gateway = self.gateways.get(method)
        order = self._payable_order(order_id, user_id)
        session = gateway.create_hosted_session(order)
        self.lifecycle.record_payment_refs(
            order.id, method=method, **{session.reference_field: session.session_id}
        )
        return session

    def get_session(
        self, method: str, session_id: str, user_id: str, is_admin: bool = False
    ) -> dict[str, Any]:
        """
        Look up a hosted checkout session stored on one of the caller's orders.

        Raises:
            UnsupportedPaymentOperation: If the gateway has no hosted sessions.
            NotFoundError: If no order carries the session id.
            ForbiddenError: If the order belongs to another customer.
        """
        gateway = self.gateways.get(method)
        get_session = getattr(gateway, "get_session", None)
        if get_session is None:
            raise UnsupportedPaymentOperation(method, "session lookups")
        doc = by_payment_ref(gateway.session_reference_field, session_id)(self.store.read())
        if doc is None:
            raise NotFoundError("Checkout session", session_id)
        if doc["customer"] != user_id and not is_admin:
            raise ForbiddenError("Not authorized to access this order")
        return get_session(session_id)

    def confirm(
        self,
        method: str,
        reference: str,
        user_id: str,
        evidence: Mapping[str, str] | None = None,
        order_id: str | None = None,
    ) -> Order:
        """
        Confirm a payment the client says has completed.

        Verified confirmations resolve the order by the gateway reference and
        confirm it. Manual ones (UPI) need `order_id`; unless auto-approval is
        configured they only mark the payment as awaiting verification.

        Raises:
            PaymentNotCompletedError: If the provider says the payment has not succeeded.
            InvalidSignatureError: If the client evidence does not verify.
            NotFoundError: If no order carries the reference.
            ForbiddenError: If the order belongs to someone else.
            ValidationError: If the reference belongs to a different order
                than `order_id`, or the paid amount differs from the total.
        """
        gateway = self.gateways.get(method)
        confirmation = gateway.confirm(reference, evidence)
        if not confirmation.succeeded:
            raise PaymentNotCompletedError(method, confirmation.status)

        if confirmation.assurance == ASSURANCE_MANUAL:
            return self._confirm_manual(method, reference, user_id, order_id, confirmation.refs)

        doc = self.store.read().find_one(
            "orders", lambda d: d["payment"].get(gateway.reference_field) == reference
        )
        if doc is None:
            raise NotFoundError("Order", reference)
        order = Order.from_dict(doc)
        if order_id is not None and order.id != order_id:
            raise ValidationError("Payment reference does not belong to this order")
        if order.customer != user_id:
            raise ForbiddenError("Unauthorized access to order")
        if confirmation.amount is not None and confirmation.amount != to_minor_units(
            order.pricing.total
        ):
            logger.error(
                "payment_amount_mismatch",
                order_id=order.id,
                expected=to_minor_units(order.pricing.total),
                received=confirmation.amount,
            )
            raise ValidationError("Paid amount does not match the order total")

        return self.lifecycle.confirm_payment(
            by_payment_ref(gateway.reference_field, reference),
            reference,
            method,
            confirmation.transaction_id,
            f"Payment confirmed via {method}",
            owner=user_id,
            **confirmation.refs,
        )

    def _confirm_manual(
        self,
        method: str,
        reference: str,
        user_id: str,
        order_id: str | None,
        refs: dict[str, str],
    ) -> Order:
        if not order_id:
            raise ValidationError("Order id is required", field="order_id")
        order = self._owned_order(order_id, user_id)
        if order.payment.transaction_id and order.payment.transaction_id != reference:
            raise ValidationError("Transaction id does not match the payment request")

        if self.manual_requires_approval:
            return self.lifecycle.submit_manual_payment(
                order_id, user_id, method, reference, **refs
            )
        upi_ref = refs.get("upi_transaction_id", reference)
        return self.lifecycle.confirm_payment(
            by_id(order_id),
            order_id,
            method,
            reference,
            f"Payment verified via {method.upper()} (Transaction ID: {upi_ref})",
            owner=user_id,
            **refs,
        )

    def handle_webhook(self, method: str, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and apply a provider webhook.

        Events that cannot be applied (unknown reference, cancelled order)
        are logged and acknowledged so the provider stops redelivering.

        Raises:
            InvalidSignatureError: If the signature does not verify. Nothing is changed.
        """
        gateway = self.gateways.get(method)
        event = gateway.verify_webhook(payload, signature)
        log = logger.bind(provider=method, event_type=event.raw_type, reference=event.reference)

        if event.reference is None or event.reference_field is None:
            log.info("webhook_unhandled")
            return {"received": True, "handled": False}

        locate = by_payment_ref(event.reference_field, event.reference)
        try:
            if event.kind in (EVENT_PAYMENT_SUCCEEDED, EVENT_CHECKOUT_COMPLETED):
                order = self.lifecycle.confirm_payment(
                    locate,
                    event.reference,
                    method,
                    event.transaction_id,
                    f"Payment confirmed via {method} webhook",
                    **event.refs,
                )
            elif event.kind == EVENT_PAYMENT_FAILED:
                order = self.lifecycle.fail_payment(locate, event.reference)
            else:
                log.info("webhook_unhandled")
                return {"received": True, "handled": False}
        except (NotFoundError, InvalidTransitionError) as exc:
            log.warning("webhook_ignored", reason=str(exc))
            return {"received": True, "handled": False}

        log.info("webhook_applied", order_id=order.id, status=order.status)
        return {"received": True, "handled": True, "order_id": order.id}

    def refund(self, order_id: str, amount: float | None = None) -> dict[str, Any]:
        """
        Refund an order's completed payment through its gateway.

        Raises:
            ValidationError: If the payment is not completed or the amount is
                out of range.
            UnsupportedPaymentOperation: If the gateway cannot refund.
        """
        order = Order.from_dict(self.store.read().require("orders", order_id, "Order"))
        if order.payment.status != PAYMENT_COMPLETED:
            raise ValidationError("Only completed payments can be refunded")
        if amount is not None and not 0 < amount <= order.pricing.total:
            raise ValidationError(
                "Refund amount must be between 0 and the order total", field="amount"
            )

        gateway = self.gateways.get(order.payment.method)
        if gateway.refund_reference_field is None:
            raise UnsupportedPaymentOperation(gateway.name, "refunds")
        reference = getattr(order.payment, gateway.refund_reference_field)
        if not reference:
            raise ValidationError("Order has no gateway payment to refund")

        result = gateway.refund(reference, amount)
        full = amount is None or amount >= order.pricing.total
        self.lifecycle.record_refund(order.id, result["refund_id"], full=full)
        return result

    def collect_qr(self, order_id: str, user_id: str, payer_upi_id: str) -> dict[str, str]:
        """Build a UPI collect link and QR code for one of the caller's orders."""
        gateway = self.gateways.get("upi")
        order = self._owned_order(order_id, user_id)
        if order.status == CANCELLED:
            raise ValidationError("Order was cancelled")
        reference = order.payment.transaction_id or new_transaction_ref(order.id)
        link = gateway.build_collect_link(payer_upi_id, order.pricing.total, order.id, reference)
        return {"upi_url": link, "qr_code": qr_data_uri(link), "transaction_id": reference}
