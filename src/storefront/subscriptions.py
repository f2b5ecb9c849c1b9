"""Admin subscriptions: plans, purchase through Razorpay and the access gate."""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from .errors import (
    ForbiddenError,
    NotFoundError,
    SubscriptionExpiredError,
    SubscriptionRequiredError,
    ValidationError,
)
from .models import (
    PAYMENT_COMPLETED,
    PaymentRecord,
    Subscription,
    _format_time,
    _generate_id,
    _parse_time,
)
from .payments.razorpay_gateway import RazorpayGateway
from .store import DocumentStore

logger = structlog.get_logger(__name__)

ACTIVE = "active"
PENDING = "pending"
CANCELLED = "cancelled"

EXPIRING_SOON_DAYS = 7
DEFAULT_GRACE_DAYS = 3

PLANS: dict[str, dict] = {
    "basic": {
        "name": "Basic Plan",
        "price": 1999,
        "currency": "INR",
        "duration": 30,
        "features": [
            "Basic Dashboard Access",
            "Product Management",
            "Order Management",
            "Customer Support",
        ],
    },
    "professional": {
        "name": "Professional Plan",
        "price": 3999,
        "currency": "INR",
        "duration": 30,
        "features": [
            "Full Dashboard Access",
            "Advanced Analytics",
            "Inventory Management",
            "Customer Management",
            "B2B Features",
            "Priority Support",
            "Data Export",
        ],
    },
    "enterprise": {
        "name": "Enterprise Plan",
        "price": 7999,
        "currency": "INR",
        "duration": 30,
        "features": [
            "Complete Business Suite",
            "Advanced Reports",
            "Multi-user Access",
            "API Access",
            "Custom Integrations",
            "24/7 Support",
            "White-label Options",
        ],
    },
}


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def is_active(sub: Subscription, now: datetime | None = None) -> bool:
    return sub.status == ACTIVE and _parse_time(sub.end_date) > _now(now)


def days_remaining(sub: Subscription, now: datetime | None = None) -> int:
    """Whole days left, rounded up. Zero once the end date has passed."""
    seconds = (_parse_time(sub.end_date) - _now(now)).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def is_expiring_soon(sub: Subscription, now: datetime | None = None) -> bool:
    return is_active(sub, now) and days_remaining(sub, now) <= EXPIRING_SOON_DAYS


@dataclass(frozen=True)
class SubscriptionAccess:
    """Result of a successful admin access check."""

    subscription: Subscription
    in_grace_period: bool


def check_with_grace(
    sub: Subscription | None,
    now: datetime | None = None,
    grace_days: int = DEFAULT_GRACE_DAYS,
) -> SubscriptionAccess:
    """
    Decide whether an admin may use admin features.

    An active subscription grants access until its end date and for
    `grace_days` after it.

    Raises:
        SubscriptionRequiredError: If there is no subscription.
        SubscriptionExpiredError: If it is not active or the grace period is over.
    """
    if sub is None:
        raise SubscriptionRequiredError()
    now = _now(now)
    end = _parse_time(sub.end_date)
    grace_end = end + timedelta(days=grace_days)
    if sub.status == ACTIVE and end > now:
        return SubscriptionAccess(sub, in_grace_period=False)
    if sub.status == ACTIVE and now <= grace_end:
        return SubscriptionAccess(sub, in_grace_period=True)
    raise SubscriptionExpiredError(sub.end_date, _format_time(grace_end))


def subscription_view(sub: Subscription, now: datetime | None = None) -> dict:
    """Subscription document plus derived status fields."""
    data = sub.to_dict()
    data["is_active"] = is_active(sub, now)
    data["is_expiring_soon"] = is_expiring_soon(sub, now)
    data["days_remaining"] = days_remaining(sub, now)
    return data


class SubscriptionService:
    """Subscription purchase and lookup for admin users."""

    def __init__(self, store: DocumentStore, gateway: RazorpayGateway | None = None):
        self.store = store
        self.gateway = gateway

    def _gateway(self) -> RazorpayGateway:
        if self.gateway is None:
            raise ValidationError("Subscription payments are not configured")
        return self.gateway

    def plans(self) -> dict[str, dict]:
        return PLANS

    def _for_user(self, user_id: str) -> list[Subscription]:
        docs = self.store.read().find("subscriptions", lambda d: d["user"] == user_id)
        subs = [Subscription.from_dict(d) for d in docs]
        return sorted(subs, key=lambda s: s.created_at, reverse=True)

    def latest(self, user_id: str) -> Subscription | None:
        """The user's most recently created subscription, in any state."""
        subs = self._for_user(user_id)
        return subs[0] if subs else None

    def for_access(self, user_id: str) -> Subscription | None:
        """
        The subscription that decides admin access: the newest one that is not
        pending. An unpaid renewal or upgrade checkout does not replace the
        plan the admin already has.
        """
        return next((s for s in self._for_user(user_id) if s.status != PENDING), None)

    def current(self, user_id: str) -> Subscription:
        """
        Raises:
            NotFoundError: If the user has never subscribed.
        """
        sub = self.latest(user_id)
        if sub is None:
            raise NotFoundError("Subscription", user_id)
        return sub

    def status(self, user_id: str, now: datetime | None = None) -> dict:
        active = next(
            (s for s in self._for_user(user_id) if s.status == ACTIVE), None
        )
        return {
            "has_active_subscription": active is not None and is_active(active, now),
            "subscription": subscription_view(active, now) if active else None,
        }

    def create_order(self, user_id: str, plan_type: str) -> tuple[Subscription, dict]:
        """
        Create a Razorpay order for a plan and a pending subscription tied to it.

        Returns the subscription and the Razorpay order.

        Raises:
            ValidationError: If the plan is unknown.
        """
        plan = PLANS.get(plan_type)
        if plan is None:
            raise ValidationError(f"Invalid plan type '{plan_type}'", field="plan_type")
        gateway = self._gateway()
        rzp_order = gateway.create_order(
            plan["price"] * 100,
            receipt=f"sub_{user_id}_{int(time.time() * 1000)}",
            notes={"plan_type": plan_type, "user_id": user_id, "plan_name": plan["name"]},
        )

        start = datetime.now(timezone.utc)
        sub = Subscription(
            id=_generate_id(),
            user=user_id,
            plan=plan_type,
            plan_details=dict(plan),
            amount=float(plan["price"]),
            currency=plan["currency"],
            start_date=_format_time(start),
            end_date=_format_time(start + timedelta(days=plan["duration"])),
            status=PENDING,
            razorpay_order_id=rzp_order["id"],
        )
        with self.store.transaction() as txn:
            txn.insert("subscriptions", sub.to_dict())
        logger.info(
            "subscription_order_created", user=user_id, plan=plan_type, subscription_id=sub.id
        )
        return sub, rzp_order

    def grant(self, user_id: str, plan_type: str, days: int | None = None) -> Subscription:
        """
        Activate a plan without payment, e.g. when seeding an installation.

        Raises:
            ValidationError: If the plan is unknown or days is not positive.
        """
        plan = PLANS.get(plan_type)
        if plan is None:
            raise ValidationError(f"Invalid plan type '{plan_type}'", field="plan_type")
        days = plan["duration"] if days is None else days
        if days < 1:
            raise ValidationError("Subscription length must be at least one day")

        start = datetime.now(timezone.utc)
        sub = Subscription(
            id=_generate_id(),
            user=user_id,
            plan=plan_type,
            plan_details=dict(plan),
            amount=0.0,
            currency=plan["currency"],
            start_date=_format_time(start),
            end_date=_format_time(start + timedelta(days=days)),
            status=ACTIVE,
            payment_status=PAYMENT_COMPLETED,
            auto_renew=False,
        )
        with self.store.transaction() as txn:
            txn.insert("subscriptions", sub.to_dict())
        logger.info("subscription_granted", subscription_id=sub.id, user=user_id, plan=plan_type)
        return sub

    def verify_payment(
        self,
        razorpay_order_id: str,
        razorpay_payment_id: str,
        signature: str,
        user_id: str | None = None,
    ) -> Subscription:
        """
        Activate a subscription after checking the checkout signature.

        The term starts at activation. Verifying the same payment again
        returns the subscription unchanged.

        Raises:
            InvalidSignatureError: If the signature does not match. Nothing is changed.
            NotFoundError: If no subscription has this Razorpay order.
            ForbiddenError: If `user_id` is given and does not own the subscription.
        """
        self._gateway().verify_payment_signature(razorpay_order_id, razorpay_payment_id, signature)

        with self.store.transaction() as txn:
            doc = txn.find_one(
                "subscriptions", lambda d: d["razorpay_order_id"] == razorpay_order_id
            )
            if doc is None:
                raise NotFoundError("Subscription", razorpay_order_id)
            sub = Subscription.from_dict(doc)
            if user_id is not None and sub.user != user_id:
                raise ForbiddenError("Subscription belongs to another user")
            if sub.payment_status == PAYMENT_COMPLETED:
                return sub

            start = datetime.now(timezone.utc)
            sub.start_date = _format_time(start)
            sub.end_date = _format_time(start + timedelta(days=sub.plan_details["duration"]))
            sub.status = ACTIVE
            sub.payment_status = PAYMENT_COMPLETED
            sub.razorpay_payment_id = razorpay_payment_id
            sub.payment_history.append(
                PaymentRecord(
                    amount=sub.amount,
                    status=PAYMENT_COMPLETED,
                    razorpay_payment_id=razorpay_payment_id,
                    description=f"Payment for {sub.plan_details['name']}",
                )
            )
            txn.put("subscriptions", sub.to_dict())

        logger.info("subscription_activated", subscription_id=sub.id, user=sub.user, plan=sub.plan)
        return sub

    def cancel(self, user_id: str) -> Subscription:
        """
        Cancel the user's active subscription and turn off auto-renew.

        Raises:
            NotFoundError: If the user has no active subscription.
        """
        with self.store.transaction() as txn:
            doc = txn.find_one(
                "subscriptions", lambda d: d["user"] == user_id and d["status"] == ACTIVE
            )
            if doc is None:
                raise NotFoundError("Active subscription", user_id)
            sub = Subscription.from_dict(doc)
            sub.status = CANCELLED
            sub.auto_renew = False
            txn.put("subscriptions", sub.to_dict())
        logger.info("subscription_cancelled", subscription_id=sub.id, user=user_id)
        return sub

    def payment_history(self, user_id: str) -> list[dict]:
        """All subscription payments of the user, newest first."""
        history = [
            {**record.to_dict(), "plan": sub.plan_details.get("name"), "subscription_id": sub.id}
            for sub in self._for_user(user_id)
            for record in sub.payment_history
        ]
        return sorted(history, key=lambda r: r["date"], reverse=True)
