"""In-app notifications emitted by order lifecycle events."""

from typing import Protocol

import structlog

from .errors import ForbiddenError
from .models import Notification, Order, _generate_id
from .store import DocumentStore

logger = structlog.get_logger(__name__)

# event -> (title, message template)
MESSAGES: dict[str, tuple[str, str]] = {
    "order_created": ("Order placed", "Your order {number} has been placed."),
    "order_confirmed": ("Order confirmed", "Your order {number} is confirmed."),
    "order_shipped": ("Order shipped", "Your order {number} is on its way."),
    "order_delivered": ("Order delivered", "Your order {number} was delivered."),
    "order_cancelled": ("Order cancelled", "Your order {number} was cancelled."),
    "payment_received": ("Payment received", "We received payment for order {number}."),
    "payment_failed": ("Payment failed", "Payment for order {number} did not go through."),
    "payment_refunded": ("Refund issued", "A refund for order {number} has been issued."),
    "payment_awaiting_verification": (
        "Payment under review",
        "Your UPI payment for order {number} is being verified.",
    ),
}


class Notifier(Protocol):
    """Receives order events after they are committed."""

    def order_event(self, order: Order, event: str) -> None:
        ...


class StoreNotifier:
    """Persists a notification for the order's customer and logs the event."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def order_event(self, order: Order, event: str) -> None:
        title, template = MESSAGES.get(event, (event, "Order {number} updated."))
        notification = Notification(
            id=_generate_id(),
            user=order.customer,
            type=event,
            title=title,
            message=template.format(number=order.order_number),
            order=order.id,
        )
        with self.store.transaction() as txn:
            txn.insert("notifications", notification.to_dict())
        logger.info(
            "notification_sent",
            notification=event,
            order_id=order.id,
            order_number=order.order_number,
            user=order.customer,
        )


def notify(notifier: Notifier, order: Order, event: str) -> None:
    """Deliver an order event once its transaction has committed.

    The change is already stored, so a delivery failure is logged and never
    reaches the caller.
    """
    try:
        notifier.order_event(order, event)
    except Exception:
        logger.exception("notification_failed", order_id=order.id, notification=event)


class NotificationService:
    """Read side of user notifications."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        docs = self.store.read().find(
            "notifications",
            lambda d: d["user"] == user_id and not (unread_only and d["read"]),
        )
        notifications = [Notification.from_dict(d) for d in docs]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        """
        Mark a notification as read.

        Raises:
            NotFoundError: If the notification doesn't exist.
            ForbiddenError: If it belongs to another user.
        """
        with self.store.transaction() as txn:
            doc = txn.require("notifications", notification_id, "Notification")
            if doc["user"] != user_id:
                raise ForbiddenError()
            doc["read"] = True
            txn.put("notifications", doc)
        return Notification.from_dict(doc)
