"""Razorpay payment gateway."""

import hashlib
import hmac
import json
from typing import Any, Mapping

import requests
import structlog

from ..errors import (
    GatewayUnavailableError,
    InvalidSignatureError,
    PaymentGatewayError,
    UnsupportedPaymentOperation,
    ValidationError,
)
from ..models import Order
from ..pricing import to_minor_units
from .protocol import (
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_SUCCEEDED,
    EVENT_UNHANDLED,
    HostedSession,
    PaymentConfirmation,
    PaymentInitiation,
    WebhookEvent,
)

logger = structlog.get_logger(__name__)

SUCCESS_EVENTS = frozenset({"payment.captured", "order.paid"})
FAILURE_EVENTS = frozenset({"payment.failed"})

# requests failures that mean the provider was not reached in time
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class _TimeoutSession(requests.Session):
    """A requests session that applies a default timeout to every call."""

    def __init__(self, timeout: float):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


class RazorpayGateway:
    """Razorpay orders, checkout signature checks and webhooks.

    The razorpay SDK client is injected so tests can use a fake; use
    from_credentials() to build one from API keys.
    """

    name = "razorpay"
    reference_field = "razorpay_order_id"
    refund_reference_field = "razorpay_payment_id"

    def __init__(
        self,
        client: Any,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        currency: str = "INR",
        provider_errors: tuple[type[Exception], ...] = (),
    ):
        """
        Args:
            client: razorpay.Client (or an object with `order` and `payment`).
            key_id: Public key id, handed to the checkout widget.
            key_secret: Secret used for checkout signatures.
            webhook_secret: Secret of the webhook endpoint.
            provider_errors: SDK exception types meaning the provider
                rejected the request.
        """
        self.client = client
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.provider_errors = provider_errors

    @classmethod
    def from_credentials(
        cls,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        timeout: float = 10.0,
    ) -> "RazorpayGateway":
        import razorpay
        from razorpay import errors as rzp_errors

        client = razorpay.Client(
            auth=(key_id, key_secret), session=_TimeoutSession(timeout)
        )
        return cls(
            client,
            key_id=key_id,
            key_secret=key_secret,
            webhook_secret=webhook_secret,
            provider_errors=(
                rzp_errors.BadRequestError,
                rzp_errors.GatewayError,
                rzp_errors.ServerError,
            ),
        )

    def _call(self, fn):
        try:
            return fn()
        except TRANSPORT_ERRORS as exc:
            raise GatewayUnavailableError(self.name, str(exc)) from exc
        except self.provider_errors as exc:
            raise PaymentGatewayError(self.name, str(exc)) from exc

    def create_order(
        self, amount: int, receipt: str, notes: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Create a Razorpay order for `amount` minor units."""
        order = self._call(
            lambda: self.client.order.create(
                data={
                    "amount": amount,
                    "currency": self.currency,
                    "receipt": receipt,
                    "notes": notes or {},
                }
            )
        )
        logger.info("razorpay_order_created", razorpay_order_id=order["id"], amount=amount)
        return order

    def initiate(self, order: Order) -> PaymentInitiation:
        amount = to_minor_units(order.pricing.total)
        rzp_order = self.create_order(
            amount,
            receipt=order.order_number,
            notes={"order_id": order.id, "customer_name": order.customer_info.name},
        )
        return PaymentInitiation(
            provider=self.name,
            reference=rzp_order["id"],
            reference_field=self.reference_field,
            amount=amount,
            currency=self.currency,
            extra={"key_id": self.key_id},
        )

    def create_hosted_session(self, order: Order) -> HostedSession:
        raise UnsupportedPaymentOperation(self.name, "hosted checkout sessions")

    def expected_signature(self, razorpay_order_id: str, razorpay_payment_id: str) -> str:
        message = f"{razorpay_order_id}|{razorpay_payment_id}".encode("utf-8")
        return _hmac_sha256(self.key_secret, message)

    def verify_payment_signature(
        self, razorpay_order_id: str, razorpay_payment_id: str, signature: str
    ) -> None:
        """
        Check a checkout signature.

        Raises:
            InvalidSignatureError: If the signature does not match.
        """
        expected = self.expected_signature(razorpay_order_id, razorpay_payment_id)
        if not hmac.compare_digest(expected, signature or ""):
            logger.warning(
                "razorpay_signature_mismatch",
                razorpay_order_id=razorpay_order_id,
                razorpay_payment_id=razorpay_payment_id,
            )
            raise InvalidSignatureError(self.name)

    def confirm(
        self, reference: str, evidence: Mapping[str, str] | None = None
    ) -> PaymentConfirmation:
        """
        Confirm a checkout using the signature the widget returned.

        `evidence` must hold `payment_id` and `signature`.
        """
        evidence = evidence or {}
        payment_id = evidence.get("payment_id")
        if not payment_id:
            raise ValidationError("Razorpay payment id is required", field="razorpay_payment_id")
        self.verify_payment_signature(reference, payment_id, evidence.get("signature", ""))
        return PaymentConfirmation(
            provider=self.name,
            reference=reference,
            status="captured",
            succeeded=True,
            transaction_id=payment_id,
            refs={"razorpay_payment_id": payment_id},
        )

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret:
            logger.error("razorpay_webhook_secret_missing")
            raise InvalidSignatureError(self.name)
        expected = _hmac_sha256(self.webhook_secret, payload)
        if not hmac.compare_digest(expected, signature or ""):
            logger.warning("webhook_rejected", provider=self.name)
            raise InvalidSignatureError(self.name)

        try:
            event = json.loads(payload)
            event_type = event["event"]
            body = event.get("payload", {})
        except (ValueError, KeyError, TypeError) as exc:
            raise ValidationError("Malformed Razorpay event payload") from exc

        payment = body.get("payment", {}).get("entity", {})
        order_id = payment.get("order_id") or body.get("order", {}).get("entity", {}).get("id")
        payment_id = payment.get("id")

        if event_type in SUCCESS_EVENTS:
            kind = EVENT_PAYMENT_SUCCEEDED
        elif event_type in FAILURE_EVENTS:
            kind = EVENT_PAYMENT_FAILED
        else:
            kind = EVENT_UNHANDLED
        return WebhookEvent(
            provider=self.name,
            kind=kind,
            raw_type=event_type,
            reference=order_id,
            reference_field=self.reference_field if order_id else None,
            transaction_id=payment_id,
            refs={"razorpay_payment_id": payment_id} if payment_id else {},
        )

    def refund(self, reference: str, amount: float | None = None) -> dict[str, Any]:
        """Refund a captured payment, fully or by `amount` (major units)."""
        data: dict[str, Any] = {}
        if amount is not None:
            data["amount"] = to_minor_units(amount)
        refund = self._call(lambda: self.client.payment.refund(reference, data))
        logger.info("razorpay_refund_created", payment_id=reference, refund_id=refund["id"])
        return {
            "refund_id": refund["id"],
            "amount": refund.get("amount"),
            "status": refund.get("status"),
            "currency": refund.get("currency", self.currency),
        }
