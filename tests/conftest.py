"""Pytest fixtures for storefront tests."""

import hashlib
import hmac
import itertools
import json
import tempfile
import time
from pathlib import Path
from types import SimpleNamespace

import pytest
from jose import jwt

from storefront.config import Settings
from storefront.models import CustomerInfo, Shipping
from storefront.orders import OrderLine
from storefront.payments import GatewayRegistry, RazorpayGateway, StripeGateway, UpiGateway
from storefront.services import build_services

JWT_SECRET = "test-jwt-secret"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
RAZORPAY_KEY_SECRET = "rzp_test_secret"
RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"


class FakeStripe:
    """Stands in for the stripe module: PaymentIntent, checkout.Session, Refund.

    Exceptions queued in `failures` are raised by the next calls, in order.
    """

    def __init__(self):
        self.intents: dict[str, SimpleNamespace] = {}
        self.sessions: dict[str, SimpleNamespace] = {}
        self.idempotency: dict[str, SimpleNamespace] = {}
        self.calls: list[tuple[str, dict]] = []
        self.failures: list[Exception] = []
        self._ids = itertools.count(1)
        self.PaymentIntent = SimpleNamespace(
            create=self._create_intent, retrieve=self._retrieve_intent
        )
        self.checkout = SimpleNamespace(
            Session=SimpleNamespace(create=self._create_session, retrieve=self._retrieve_session)
        )
        self.Refund = SimpleNamespace(create=self._create_refund)

    def _maybe_fail(self):
        if self.failures:
            raise self.failures.pop(0)

    def _create_intent(self, api_key, idempotency_key, **params):
        self.calls.append(("PaymentIntent.create", params))
        self._maybe_fail()
        if idempotency_key in self.idempotency:
            return self.idempotency[idempotency_key]
        intent = SimpleNamespace(
            id=f"pi_{next(self._ids)}",
            client_secret=f"secret_{len(self.intents)}",
            amount=params["amount"],
            currency=params["currency"],
            status="requires_payment_method",
        )
        self.intents[intent.id] = intent
        self.idempotency[idempotency_key] = intent
        return intent

    def _retrieve_intent(self, intent_id, api_key):
        self.calls.append(("PaymentIntent.retrieve", {"id": intent_id}))
        self._maybe_fail()
        return self.intents[intent_id]

    def _create_session(self, api_key, idempotency_key, **params):
        self.calls.append(("checkout.Session.create", params))
        self._maybe_fail()
        session_id = f"cs_{next(self._ids)}"
        amount = sum(
            li["price_data"]["unit_amount"] * li["quantity"] for li in params["line_items"]
        )
        session = SimpleNamespace(
            id=session_id,
            url=f"https://checkout.stripe.test/{session_id}",
            payment_status="unpaid",
            customer_email=params.get("customer_email"),
            amount_total=amount,
            currency=params["line_items"][0]["price_data"]["currency"],
        )
        self.sessions[session_id] = session
        return session

    def _retrieve_session(self, session_id, api_key):
        self._maybe_fail()
        return self.sessions[session_id]

    def _create_refund(self, api_key, idempotency_key, **params):
        self.calls.append(("Refund.create", params))
        self._maybe_fail()
        if idempotency_key in self.idempotency:
            return self.idempotency[idempotency_key]
        intent = self.intents[params["payment_intent"]]
        refund = SimpleNamespace(
            id=f"re_{next(self._ids)}",
            amount=params.get("amount", intent.amount),
            status="succeeded",
            currency=intent.currency,
        )
        self.idempotency[idempotency_key] = refund
        return refund


class FakeRazorpayClient:
    """Stands in for razorpay.Client: order.create and payment.refund."""

    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.refunds: list[tuple[str, dict]] = []
        self._ids = itertools.count(1)
        self.order = SimpleNamespace(create=self._create_order)
        self.payment = SimpleNamespace(refund=self._refund)

    def _create_order(self, data):
        order = {"id": f"order_{next(self._ids)}", "status": "created", **data}
        self.orders[order["id"]] = order
        return order

    def _refund(self, payment_id, data):
        self.refunds.append((payment_id, data))
        return {
            "id": f"rfnd_{next(self._ids)}",
            "payment_id": payment_id,
            "amount": data.get("amount"),
            "status": "processed",
            "currency": "INR",
        }


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def order_event(self, order, event):
        self.events.append((order.id, event))


def razorpay_signature(order_id: str, payment_id: str, secret: str = RAZORPAY_KEY_SECRET) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def stripe_signature_header(
    payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None
) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook bodies."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def razorpay_webhook_signature(payload: bytes, secret: str = RAZORPAY_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def stripe_event(event_type: str, obj: dict) -> bytes:
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": obj}}).encode()


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    return Settings(
        _env_file=None,
        data_dir=temp_dir,
        jwt_secret=JWT_SECRET,
        stripe_secret_key="sk_test_123",
        stripe_publishable_key="pk_test_123",
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=RAZORPAY_KEY_SECRET,
        razorpay_webhook_secret=RAZORPAY_WEBHOOK_SECRET,
        merchant_upi_id="store@okbank",
        merchant_name="Test Store",
    )


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def fake_razorpay():
    return FakeRazorpayClient()


@pytest.fixture
def stripe_gateway(fake_stripe):
    return StripeGateway(
        secret_key="sk_test_123",
        webhook_secret=STRIPE_WEBHOOK_SECRET,
        success_url="http://shop.test/order-success",
        cancel_url="http://shop.test/cart",
        api=fake_stripe,
    )


@pytest.fixture
def razorpay_gateway(fake_razorpay):
    return RazorpayGateway(
        fake_razorpay,
        key_id="rzp_test_key",
        key_secret=RAZORPAY_KEY_SECRET,
        webhook_secret=RAZORPAY_WEBHOOK_SECRET,
    )


@pytest.fixture
def upi_gateway():
    return UpiGateway("store@okbank", "Test Store")


@pytest.fixture
def gateways(stripe_gateway, razorpay_gateway, upi_gateway):
    registry = GatewayRegistry()
    registry.register("stripe", lambda: stripe_gateway)
    registry.register("razorpay", lambda: razorpay_gateway)
    registry.register("upi", lambda: upi_gateway)
    return registry


@pytest.fixture
def services(settings, gateways, razorpay_gateway):
    return build_services(
        settings, gateways=gateways, subscription_gateway=razorpay_gateway
    )


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def make_product(services):
    """Factory for catalog products."""

    def _make(title="Bath Towel", price=1000.0, stock=5, **extra):
        return services.catalog.add_product(
            title=title, description=f"{title} description", price=price, stock=stock, **extra
        )

    return _make


@pytest.fixture
def place_order(services, make_product):
    """Factory for orders: one line of a new product unless lines are given."""

    def _place(customer="user-1", quantity=2, lines=None, method="standard", payment="cod"):
        if lines is None:
            product = make_product()
            lines = [OrderLine(product_id=product.id, quantity=quantity)]
        return services.orders.create_order(
            customer_id=customer,
            customer_info=CustomerInfo(name="Asha Rao", email="asha@example.com"),
            lines=lines,
            shipping=Shipping(method=method, address={"city": "Pune"}),
            payment_method=payment,
        )

    return _place


@pytest.fixture
def token_for():
    """Factory for bearer headers signed with the test secret."""

    def _token(user_id="user-1", role="customer", **claims):
        payload = {
            "sub": user_id,
            "role": role,
            "name": claims.pop("name", "Asha Rao"),
            "email": claims.pop("email", "asha@example.com"),
            "exp": int(time.time()) + 3600,
            **claims,
        }
        return {"Authorization": f"Bearer {jwt.encode(payload, JWT_SECRET, algorithm='HS256')}"}

    return _token


@pytest.fixture
def api_client(services):
    """Test client wired to the temporary services."""
    from fastapi.testclient import TestClient

    from storefront.api import app, get_services

    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(services, token_for):
    """Headers of an admin with an active subscription."""
    services.subscriptions.grant("admin-1", "basic")
    return token_for("admin-1", role="admin")
