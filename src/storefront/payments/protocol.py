"""Protocol definition for payment gateways."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:
    from ..models import Order

# How far a confirmation can be trusted
ASSURANCE_VERIFIED = "verified"  # checked with the provider or by signature
ASSURANCE_MANUAL = "manual"  # reported by the client, nothing to check against

# Normalized webhook event kinds
EVENT_PAYMENT_SUCCEEDED = "payment_succeeded"
EVENT_PAYMENT_FAILED = "payment_failed"
EVENT_CHECKOUT_COMPLETED = "checkout_completed"
EVENT_UNHANDLED = "unhandled"


@dataclass(frozen=True)
class PaymentInitiation:
    """A charge created with a provider, waiting for the customer to pay."""

    provider: str
    reference: str  # provider correlation id
    reference_field: str  # Payment field the reference is stored in
    amount: int  # minor units
    currency: str
    client_secret: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HostedSession:
    """A provider-hosted checkout page."""

    provider: str
    session_id: str
    reference_field: str
    url: str


@dataclass(frozen=True)
class PaymentConfirmation:
    """Normalized answer to 'has this payment gone through?'."""

    provider: str
    reference: str
    status: str  # provider's own status string
    succeeded: bool
    transaction_id: str | None
    amount: int | None = None  # minor units, when the provider reports it
    currency: str | None = None
    assurance: str = ASSURANCE_VERIFIED
    refs: dict[str, str] = field(default_factory=dict)  # extra Payment fields


@dataclass(frozen=True)
class WebhookEvent:
    """A verified provider event, reduced to what the order lifecycle needs."""

    provider: str
    kind: str
    raw_type: str
    reference: str | None  # correlation id used to find the order
    reference_field: str | None
    transaction_id: str | None = None
    refs: dict[str, str] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Protocol for provider-specific payment adapters.

    Each implementation normalizes one provider (Stripe, Razorpay, UPI)
    into the same shapes so order handlers never branch on provider name.
    Capabilities a provider lacks raise UnsupportedPaymentOperation.
    """

    name: str
    reference_field: str  # Payment field that correlates orders with this provider
    refund_reference_field: str | None

    def initiate(self, order: Order) -> PaymentInitiation:
        """Create a charge for the order total."""
        ...

    def create_hosted_session(self, order: Order) -> HostedSession:
        """Create a provider-hosted checkout page for the order."""
        ...

    def confirm(
        self, reference: str, evidence: Mapping[str, str] | None = None
    ) -> PaymentConfirmation:
        """Check whether the payment identified by `reference` succeeded.

        Args:
            reference: Provider correlation id returned by initiate().
            evidence: Client-supplied proof (signatures, transaction ids).

        Raises:
            InvalidSignatureError: If the evidence does not verify.
            GatewayUnavailableError: If the provider cannot be reached.
        """
        ...

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify a webhook signature over the raw body, then parse the event.

        Raises:
            InvalidSignatureError: If the signature does not verify.
        """
        ...

    def refund(self, reference: str, amount: float | None = None) -> dict[str, Any]:
        """Refund a completed payment in full or in part."""
        ...
