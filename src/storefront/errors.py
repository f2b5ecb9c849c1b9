"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when input is malformed or violates a business rule."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AuthenticationError(StorefrontError):
    """Raised when a bearer token is missing or cannot be verified."""

    def __init__(self, reason: str = "Not authenticated"):
        super().__init__(reason)


class ForbiddenError(StorefrontError):
    """Raised when the caller does not own the resource or lacks the role."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class SubscriptionRequiredError(ForbiddenError):
    """Raised when an admin has no subscription at all."""

    code = "SUBSCRIPTION_REQUIRED"

    def __init__(self):
        super().__init__("Subscription required to access admin features")


class SubscriptionExpiredError(ForbiddenError):
    """Raised when an admin subscription is past its grace period."""

    code = "SUBSCRIPTION_EXPIRED"

    def __init__(self, end_date: str, grace_period_end: str):
        self.end_date = end_date
        self.grace_period_end = grace_period_end
        super().__init__(
            "Subscription has expired. Please renew to continue using admin features."
        )


class NotFoundError(StorefrontError):
    """Raised when a product, order, cart or subscription doesn't exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class InsufficientStockError(StorefrontError):
    """Raised when an order line asks for more units than are in stock."""

    def __init__(self, product_id: str, title: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {title}: "
            f"requested {requested}, available {available}"
        )


class InvalidTransitionError(StorefrontError):
    """Raised when an order status change is not allowed from its current state."""

    def __init__(self, current: str, target: str, reason: str | None = None):
        self.current = current
        self.target = target
        msg = f"Cannot move order from '{current}' to '{target}'"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidSignatureError(StorefrontError):
    """Raised when a payment or webhook signature does not verify."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Invalid {provider} signature")


class UnsupportedPaymentOperation(StorefrontError):
    """Raised when a gateway lacks the requested capability."""

    def __init__(self, provider: str, operation: str, message: str | None = None):
        self.provider = provider
        self.operation = operation
        super().__init__(message or f"Payment method '{provider}' does not support {operation}")


class PaymentNotCompletedError(StorefrontError):
    """Raised when the provider reports the payment has not succeeded yet."""

    def __init__(self, provider: str, status: str):
        self.provider = provider
        self.status = status
        super().__init__(f"Payment not completed ({provider} status: {status})")


class PaymentGatewayError(StorefrontError):
    """Raised when a payment provider rejects a request."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider} error: {message}")


class GatewayUnavailableError(StorefrontError):
    """Raised when a payment provider cannot be reached in time. Retryable."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        super().__init__(f"{provider} unavailable: {reason}")


class InvalidSchemaVersionError(StorefrontError):
    """Raised when the data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )
