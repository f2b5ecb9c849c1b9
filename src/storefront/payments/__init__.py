"""Payment gateways for storefront."""

from .protocol import (
    ASSURANCE_MANUAL,
    ASSURANCE_VERIFIED,
    HostedSession,
    PaymentConfirmation,
    PaymentGateway,
    PaymentInitiation,
    WebhookEvent,
)
from .razorpay_gateway import RazorpayGateway
from .registry import GatewayRegistry, build_registry
from .service import PaymentService
from .stripe_gateway import StripeGateway
from .upi import UpiGateway

__all__ = [
    # Core types
    "PaymentGateway",
    "PaymentInitiation",
    "HostedSession",
    "PaymentConfirmation",
    "WebhookEvent",
    "ASSURANCE_VERIFIED",
    "ASSURANCE_MANUAL",
    # Gateways
    "StripeGateway",
    "RazorpayGateway",
    "UpiGateway",
    # Registry
    "GatewayRegistry",
    "build_registry",
    "PaymentService",
]
