"""Registry mapping payment methods to gateway adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import stripe

from ..errors import UnsupportedPaymentOperation

if TYPE_CHECKING:
    from ..config import Settings
    from .protocol import PaymentGateway


class GatewayRegistry:
    """Gateway factories keyed by payment method.

    Factories run on first use, so a provider SDK is only touched once a
    request needs it.
    """

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], PaymentGateway]] = {}
        self._cache: dict[str, PaymentGateway] = {}

    def register(self, method: str, factory: Callable[[], PaymentGateway]) -> None:
        """Register a gateway factory, replacing any earlier one for `method`."""
        self._factories[method] = factory
        self._cache.pop(method, None)

    def get(self, method: str) -> PaymentGateway:
        """Get the gateway for a payment method.

        Raises:
            UnsupportedPaymentOperation: If no gateway is configured for the method.
        """
        if method not in self._factories:
            raise UnsupportedPaymentOperation(
                method,
                "payments",
                f"Payment method '{method}' is not available. "
                f"Available: {', '.join(self.methods()) or 'none'}",
            )
        if method not in self._cache:
            self._cache[method] = self._factories[method]()
        return self._cache[method]

    def methods(self) -> list[str]:
        return sorted(self._factories.keys())

    def __contains__(self, method: str) -> bool:
        return method in self._factories


def build_registry(settings: Settings) -> GatewayRegistry:
    """Register every provider that has credentials configured."""
    from .razorpay_gateway import RazorpayGateway
    from .stripe_gateway import StripeGateway
    from .upi import UpiGateway

    registry = GatewayRegistry()

    if settings.stripe_secret_key:

        def make_stripe() -> StripeGateway:
            stripe.max_network_retries = settings.gateway_max_retries
            stripe.default_http_client = stripe.RequestsClient(
                timeout=settings.gateway_timeout
            )
            return StripeGateway(
                secret_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                currency=settings.stripe_currency,
                success_url=f"{settings.frontend_url}/order-success",
                cancel_url=f"{settings.frontend_url}/cart",
            )

        registry.register("stripe", make_stripe)

    if settings.razorpay_key_id and settings.razorpay_key_secret:
        registry.register(
            "razorpay",
            lambda: RazorpayGateway.from_credentials(
                settings.razorpay_key_id,
                settings.razorpay_key_secret,
                webhook_secret=settings.razorpay_webhook_secret,
                timeout=settings.gateway_timeout,
            ),
        )

    if settings.merchant_upi_id:
        registry.register(
            "upi",
            lambda: UpiGateway(settings.merchant_upi_id, settings.merchant_name),
        )

    return registry
