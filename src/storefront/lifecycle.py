"""Order lifecycle: allowed status transitions and their side effects.

    pending -> confirmed -> shipped -> delivered
    pending | confirmed -> cancelled

Every transition appends exactly one entry to the order's status history.
Past entries are never edited.
"""

from typing import Callable

import structlog

from .errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import (
    CANCELLED,
    CONFIRMED,
    DELIVERED,
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    PENDING,
    SHIPPED,
    Order,
    StatusEntry,
    _utc_now,
)
from .notifications import Notifier, notify
from .store import DocumentStore, Transaction

logger = structlog.get_logger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({DELIVERED}),
    DELIVERED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Targets an admin may set directly. Cancellation belongs to the customer.
ADMIN_TARGETS = frozenset({CONFIRMED, SHIPPED, DELIVERED})

# Outcomes of apply_payment()
OUTCOME_CONFIRMED = "confirmed"
OUTCOME_PAYMENT_RECORDED = "payment_recorded"
OUTCOME_ALREADY_SETTLED = "already_settled"

# A payment in one of these states is never applied or failed again
SETTLED_PAYMENT_STATUSES = frozenset({PAYMENT_COMPLETED, PAYMENT_REFUNDED})

Locator = Callable[[Transaction], dict | None]


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(order: Order, target: str, note: str = "", now: str | None = None) -> Order:
    """
    Move an order to `target` and append one history entry.

    Raises:
        InvalidTransitionError: If the move is not in the transitions table.
            The order is left unchanged.
    """
    if not can_transition(order.status, target):
        reason = "order is in a terminal state" if order.status in TERMINAL_STATUSES else None
        raise InvalidTransitionError(order.status, target, reason)
    now = now or _utc_now()
    order.status = target
    order.status_history.append(StatusEntry(status=target, updated_at=now, note=note))
    order.updated_at = now
    return order


def apply_payment(
    order: Order,
    method: str,
    transaction_id: str | None,
    note: str,
    now: str | None = None,
) -> str:
    """
    Record a completed payment and confirm the order if it is still pending.

    Returns one of OUTCOME_CONFIRMED, OUTCOME_PAYMENT_RECORDED (order was
    already confirmed by an admin) or OUTCOME_ALREADY_SETTLED (no-op: the payment
    already completed or was refunded).

    Raises:
        InvalidTransitionError: If the order was cancelled.
    """
    if order.payment.status in SETTLED_PAYMENT_STATUSES:
        return OUTCOME_ALREADY_SETTLED
    if order.status == CANCELLED:
        raise InvalidTransitionError(order.status, CONFIRMED, "order was cancelled")

    now = now or _utc_now()
    order.payment.method = method
    order.payment.status = PAYMENT_COMPLETED
    if transaction_id:
        order.payment.transaction_id = transaction_id
    order.payment.paid_at = now
    order.updated_at = now

    if order.status == PENDING:
        transition(order, CONFIRMED, note, now=now)
        return OUTCOME_CONFIRMED
    return OUTCOME_PAYMENT_RECORDED


def by_id(order_id: str) -> Locator:
    return lambda txn: txn.get("orders", order_id)


def by_payment_ref(field: str, value: str) -> Locator:
    """Locate an order by a gateway correlation id stored on its payment."""
    return lambda txn: txn.find_one("orders", lambda d: d["payment"].get(field) == value)


class OrderLifecycle:
    """Applies status transitions to stored orders and fires notifications."""

    def __init__(self, store: DocumentStore, notifier: Notifier):
        self.store = store
        self.notifier = notifier

    def _load(self, txn: Transaction, locate: Locator, key: str) -> Order:
        doc = locate(txn)
        if doc is None:
            raise NotFoundError("Order", key)
        return Order.from_dict(doc)

    def cancel(self, order_id: str, user_id: str, reason: str | None = None) -> Order:
        """
        Cancel an order on behalf of its owner and restore stock for every line.

        Stock restoration and the status change commit together or not at all.

        Raises:
            NotFoundError: If the order doesn't exist.
            ForbiddenError: If the caller is not the owner.
            InvalidTransitionError: If the order is not pending or confirmed.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            if order.customer != user_id:
                raise ForbiddenError("Only the customer who placed the order can cancel it")
            note = "Cancelled by customer"
            if reason:
                note = f"{note}: {reason}"
            transition(order, CANCELLED, note)
            for item in order.items:
                txn.increment_stock(item.product, item.quantity)
            txn.put("orders", order.to_dict())

        logger.info(
            "order_cancelled",
            order_id=order.id,
            restored_units=sum(i.quantity for i in order.items),
        )
        notify(self.notifier, order, "order_cancelled")
        return order

    def advance(self, order_id: str, target: str, note: str | None = None) -> Order:
        """
        Admin status update: confirm, ship or deliver.

        Raises:
            NotFoundError: If the order doesn't exist.
            ForbiddenError: If target is 'cancelled'.
            ValidationError: If target is not an order status.
            InvalidTransitionError: If the move is not allowed.
        """
        if target == CANCELLED:
            raise ForbiddenError("Orders can only be cancelled by their customer")
        if target not in ADMIN_TARGETS:
            raise ValidationError(f"Unknown order status '{target}'", field="status")

        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            transition(order, target, note or f"Status updated to {target} by admin")
            txn.put("orders", order.to_dict())

        logger.info("order_transition", order_id=order.id, status=target, by="admin")
        notify(self.notifier, order, f"order_{target}")
        return order

    def confirm_payment(
        self,
        locate: Locator,
        key: str,
        method: str,
        transaction_id: str | None,
        note: str,
        owner: str | None = None,
        **refs: str | None,
    ) -> Order:
        """
        Apply a verified payment to the order found by `locate`.

        Idempotent: an order whose payment is already settled is returned
        unchanged. `refs` are extra payment fields to record (gateway ids).

        Raises:
            NotFoundError: If no order matches.
            ForbiddenError: If `owner` is given and does not own the order.
            InvalidTransitionError: If the order was cancelled.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, locate, key)
            if owner is not None and order.customer != owner:
                raise ForbiddenError("Unauthorized access to order")
            outcome = apply_payment(order, method, transaction_id, note)
            if outcome == OUTCOME_ALREADY_SETTLED:
                return order
            for name, value in refs.items():
                if value is not None:
                    setattr(order.payment, name, value)
            txn.put("orders", order.to_dict())

        logger.info(
            "payment_applied",
            order_id=order.id,
            method=method,
            outcome=outcome,
            transaction_id=transaction_id,
        )
        event = "order_confirmed" if outcome == OUTCOME_CONFIRMED else "payment_received"
        notify(self.notifier, order, event)
        return order

    def submit_manual_payment(
        self,
        order_id: str,
        owner: str,
        method: str,
        transaction_id: str | None,
        **refs: str | None,
    ) -> Order:
        """
        Record a client-reported payment that still needs admin approval.

        The order status does not change. Settled payments are
        returned unchanged.

        Raises:
            NotFoundError: If the order doesn't exist.
            ForbiddenError: If `owner` does not own the order.
            InvalidTransitionError: If the order is not pending.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            if order.customer != owner:
                raise ForbiddenError("Not authorized to access this order")
            if order.payment.status in SETTLED_PAYMENT_STATUSES:
                return order
            if order.status != PENDING:
                raise InvalidTransitionError(
                    order.status, CONFIRMED, "payment can only be submitted for pending orders"
                )
            order.payment.method = method
            order.payment.status = PAYMENT_AWAITING_VERIFICATION
            order.payment.transaction_id = transaction_id
            for name, value in refs.items():
                if value is not None:
                    setattr(order.payment, name, value)
            order.updated_at = _utc_now()
            txn.put("orders", order.to_dict())

        logger.info(
            "manual_payment_submitted",
            order_id=order.id,
            method=method,
            transaction_id=transaction_id,
        )
        notify(self.notifier, order, "payment_awaiting_verification")
        return order

    def approve_manual_payment(self, order_id: str, note: str | None = None) -> Order:
        """
        Admin approval of a payment submitted with submit_manual_payment.

        Raises:
            NotFoundError: If the order doesn't exist.
            ValidationError: If no payment is awaiting verification.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            if order.payment.status in SETTLED_PAYMENT_STATUSES:
                return order
            if order.payment.status != PAYMENT_AWAITING_VERIFICATION:
                raise ValidationError("No payment awaiting verification for this order")
            ref = order.payment.upi_transaction_id or order.payment.transaction_id
            outcome = apply_payment(
                order,
                order.payment.method,
                order.payment.transaction_id,
                note or f"Payment verified via {order.payment.method.upper()} (Transaction ID: {ref})",
            )
            txn.put("orders", order.to_dict())

        logger.info("manual_payment_approved", order_id=order.id, outcome=outcome)
        event = "order_confirmed" if outcome == OUTCOME_CONFIRMED else "payment_received"
        notify(self.notifier, order, event)
        return order

    def fail_payment(self, locate: Locator, key: str) -> Order:
        """
        Mark the payment as failed. The order status does not change.

        Raises:
            NotFoundError: If no order matches.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, locate, key)
            if order.payment.status in SETTLED_PAYMENT_STATUSES | {PAYMENT_FAILED}:
                return order
            order.payment.status = PAYMENT_FAILED
            order.updated_at = _utc_now()
            txn.put("orders", order.to_dict())

        logger.warning("payment_failed", order_id=order.id, method=order.payment.method)
        notify(self.notifier, order, "payment_failed")
        return order

    def record_refund(self, order_id: str, refund_id: str, full: bool) -> Order:
        """
        Record a refund issued with the gateway. A full refund marks the
        payment refunded; the order status does not change.
        """
        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            if full:
                order.payment.status = PAYMENT_REFUNDED
            order.updated_at = _utc_now()
            txn.put("orders", order.to_dict())

        logger.info("payment_refunded", order_id=order.id, refund_id=refund_id, full=full)
        notify(self.notifier, order, "payment_refunded")
        return order

    def record_payment_refs(self, order_id: str, **refs: str | None) -> Order:
        """Store gateway correlation ids on a pending payment."""
        with self.store.transaction() as txn:
            order = self._load(txn, by_id(order_id), order_id)
            for name, value in refs.items():
                setattr(order.payment, name, value)
            order.updated_at = _utc_now()
            txn.put("orders", order.to_dict())
        return order
