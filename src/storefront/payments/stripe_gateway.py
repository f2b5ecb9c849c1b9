"""Stripe payment gateway."""

import json
import uuid
from typing import Any, Mapping

import stripe
import structlog

from ..errors import (
    GatewayUnavailableError,
    InvalidSignatureError,
    PaymentGatewayError,
    ValidationError,
)
from ..models import Order
from ..pricing import to_minor_units
from .protocol import (
    EVENT_CHECKOUT_COMPLETED,
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_SUCCEEDED,
    EVENT_UNHANDLED,
    HostedSession,
    PaymentConfirmation,
    PaymentInitiation,
    WebhookEvent,
)

logger = structlog.get_logger(__name__)

# Failures left after the SDK's own network retries (stripe.max_network_retries)
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
)


class StripeGateway:
    """Payment intents, hosted checkout and signed webhooks via Stripe."""

    name = "stripe"
    reference_field = "stripe_payment_intent_id"
    refund_reference_field = "stripe_payment_intent_id"
    session_reference_field = "stripe_session_id"

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        currency: str = "inr",
        success_url: str = "",
        cancel_url: str = "",
        api: Any = stripe,
        tolerance: int = 300,
    ):
        """
        Args:
            secret_key: Stripe secret API key.
            webhook_secret: Signing secret of the webhook endpoint.
            api: Module or object exposing PaymentIntent, checkout.Session and
                Refund (the stripe module; replaced in tests).
            tolerance: Maximum webhook timestamp age in seconds.
        """
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.api = api
        self.tolerance = tolerance

    def _call(self, fn):
        """Run a Stripe call, translating the errors the SDK gives up on."""
        try:
            return fn()
        except TRANSIENT_ERRORS as exc:
            raise GatewayUnavailableError(self.name, str(exc)) from exc
        except stripe.StripeError as exc:
            raise PaymentGatewayError(self.name, exc.user_message or str(exc)) from exc

    def initiate(self, order: Order) -> PaymentInitiation:
        """Create a payment intent for the order total."""
        amount = to_minor_units(order.pricing.total)
        params: dict[str, Any] = {
            "amount": amount,
            "currency": self.currency,
            "payment_method_types": ["card"],
            "metadata": {
                "order_id": order.id,
                "order_number": order.order_number,
                "customer_email": order.customer_info.email,
                "customer_name": order.customer_info.name,
            },
            "description": f"Order payment for {order.customer_info.name or order.order_number}",
        }
        if order.customer_info.email:
            params["receipt_email"] = order.customer_info.email

        # The idempotency key makes a repeated create return the same intent
        intent = self._call(
            lambda: self.api.PaymentIntent.create(
                api_key=self.secret_key,
                idempotency_key=f"order-{order.id}-intent",
                **params,
            )
        )
        logger.info("stripe_intent_created", order_id=order.id, intent_id=intent.id, amount=amount)
        return PaymentInitiation(
            provider=self.name,
            reference=intent.id,
            reference_field=self.reference_field,
            amount=amount,
            currency=self.currency,
            client_secret=intent.client_secret,
        )

    def create_hosted_session(self, order: Order) -> HostedSession:
        """Create a Checkout session whose line items add up to the order total."""
        line_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": item.product_info.title},
                    "unit_amount": to_minor_units(item.price),
                },
                "quantity": item.quantity,
            }
            for item in order.items
        ]
        for label, amount in (
            ("Tax (GST)", order.pricing.tax),
            (f"Shipping ({order.shipping.method})", order.pricing.shipping),
        ):
            if amount > 0:
                line_items.append(
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {"name": label},
                            "unit_amount": to_minor_units(amount),
                        },
                        "quantity": 1,
                    }
                )

        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": line_items,
            "mode": "payment",
            "success_url": (
                f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}"
            ),
            "cancel_url": self.cancel_url,
            "client_reference_id": order.id,
            "metadata": {"order_id": order.id, "customer_name": order.customer_info.name},
        }
        if order.customer_info.email:
            params["customer_email"] = order.customer_info.email

        session = self._call(
            lambda: self.api.checkout.Session.create(
                api_key=self.secret_key,
                idempotency_key=f"order-{order.id}-session",
                **params,
            )
        )
        logger.info("stripe_session_created", order_id=order.id, session_id=session.id)
        return HostedSession(
            provider=self.name,
            session_id=session.id,
            reference_field=self.session_reference_field,
            url=session.url,
        )

    def confirm(
        self, reference: str, evidence: Mapping[str, str] | None = None
    ) -> PaymentConfirmation:
        """Re-fetch the payment intent and report its status."""
        intent = self._call(
            lambda: self.api.PaymentIntent.retrieve(reference, api_key=self.secret_key)
        )
        return PaymentConfirmation(
            provider=self.name,
            reference=intent.id,
            status=intent.status,
            succeeded=intent.status == "succeeded",
            transaction_id=intent.id,
            amount=intent.amount,
            currency=intent.currency,
        )

    def get_session(self, session_id: str) -> dict[str, Any]:
        session = self._call(
            lambda: self.api.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        )
        return {
            "payment_status": session.payment_status,
            "customer_email": session.customer_email,
            "amount_total": session.amount_total,
            "currency": session.currency,
        }

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify the Stripe-Signature header against the raw body, then parse.

        Raises:
            InvalidSignatureError: If the secret is unset, the header is
                malformed, the timestamp is stale or the signature differs.
            ValidationError: If a correctly signed body is not a JSON event.
        """
        if not self.webhook_secret:
            logger.error("stripe_webhook_secret_missing")
            raise InvalidSignatureError(self.name)
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature or "", self.webhook_secret, self.tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            logger.warning("webhook_rejected", provider=self.name, reason=str(exc))
            raise InvalidSignatureError(self.name) from exc

        try:
            event = json.loads(body)
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ValidationError("Malformed Stripe event payload") from exc

        if event_type == "payment_intent.succeeded":
            return WebhookEvent(
                provider=self.name,
                kind=EVENT_PAYMENT_SUCCEEDED,
                raw_type=event_type,
                reference=obj["id"],
                reference_field="stripe_payment_intent_id",
                transaction_id=obj["id"],
            )
        if event_type == "payment_intent.payment_failed":
            return WebhookEvent(
                provider=self.name,
                kind=EVENT_PAYMENT_FAILED,
                raw_type=event_type,
                reference=obj["id"],
                reference_field="stripe_payment_intent_id",
            )
        if event_type == "checkout.session.completed" and obj.get("payment_status") == "paid":
            intent_id = obj.get("payment_intent")
            return WebhookEvent(
                provider=self.name,
                kind=EVENT_CHECKOUT_COMPLETED,
                raw_type=event_type,
                reference=obj["id"],
                reference_field="stripe_session_id",
                transaction_id=intent_id,
                refs={"stripe_payment_intent_id": intent_id} if intent_id else {},
            )
        return WebhookEvent(
            provider=self.name,
            kind=EVENT_UNHANDLED,
            raw_type=event_type,
            reference=obj.get("id") if isinstance(obj, dict) else None,
            reference_field=None,
        )

    def refund(self, reference: str, amount: float | None = None) -> dict[str, Any]:
        """Refund a payment intent, fully or by `amount` (major units).

        Each call is a new refund: the idempotency key only covers the SDK's
        retries of this request.
        """
        params: dict[str, Any] = {"payment_intent": reference}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        refund = self._call(
            lambda: self.api.Refund.create(
                api_key=self.secret_key,
                idempotency_key=f"refund-{reference}-{uuid.uuid4().hex}",
                **params,
            )
        )
        logger.info("stripe_refund_created", intent_id=reference, refund_id=refund.id)
        return {
            "refund_id": refund.id,
            "amount": refund.amount,
            "status": refund.status,
            "currency": refund.currency,
        }
