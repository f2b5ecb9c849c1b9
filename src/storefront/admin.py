"""Admin dashboard figures, customer overview and data export.

Customers are known to this service only through their orders, so the
customer list is aggregated from order documents.
"""

from typing import Any

from .catalog import Page, paginate
from .errors import ValidationError
from .models import (
    ORDER_STATUSES,
    PAYMENT_AWAITING_VERIFICATION,
    PAYMENT_COMPLETED,
    QUOTE_PENDING,
    Order,
)
from .store import Documents, DocumentStore

LOW_STOCK_THRESHOLD = 5
RECENT_ORDERS = 5

EXPORT_KINDS = ("orders", "products", "customers", "quotations")


def _customers(docs: Documents) -> list[dict[str, Any]]:
    customers: dict[str, dict[str, Any]] = {}
    for order in sorted(
        (Order.from_dict(d) for d in docs.find("orders")), key=lambda o: o.created_at
    ):
        entry = customers.setdefault(
            order.customer,
            {
                "id": order.customer,
                "orders": 0,
                "total_spent": 0.0,
                "first_order_at": order.created_at,
            },
        )
        # Latest order wins for contact details
        entry.update(order.customer_info.to_dict())
        entry["orders"] += 1
        entry["last_order_at"] = order.created_at
        if order.payment.status == PAYMENT_COMPLETED:
            entry["total_spent"] = round(entry["total_spent"] + order.pricing.total, 2)
    return sorted(customers.values(), key=lambda c: c["last_order_at"], reverse=True)


class AdminService:
    def __init__(self, store: DocumentStore, low_stock_threshold: int = LOW_STOCK_THRESHOLD):
        self.store = store
        self.low_stock_threshold = low_stock_threshold

    def dashboard_stats(self) -> dict[str, Any]:
        """Order, revenue, catalog and quotation figures for the admin dashboard."""
        docs = self.store.read()
        orders = [Order.from_dict(d) for d in docs.find("orders")]
        by_status = {status: 0 for status in ORDER_STATUSES}
        for order in orders:
            by_status[order.status] += 1
        paid = [o for o in orders if o.payment.status == PAYMENT_COMPLETED]
        active_products = docs.find("products", lambda d: d["is_active"])
        low_stock = sorted(
            (p for p in active_products if p["stock"] <= self.low_stock_threshold),
            key=lambda p: p["stock"],
        )
        recent = sorted(orders, key=lambda o: o.created_at, reverse=True)[:RECENT_ORDERS]

        return {
            "orders": {
                "total": len(orders),
                "by_status": by_status,
                "awaiting_payment_verification": sum(
                    1 for o in orders if o.payment.status == PAYMENT_AWAITING_VERIFICATION
                ),
            },
            "revenue": {
                "total": round(sum(o.pricing.total for o in paid), 2),
                "paid_orders": len(paid),
            },
            "products": {
                "active": len(active_products),
                "low_stock": [
                    {"id": p["id"], "title": p["title"], "stock": p["stock"]} for p in low_stock
                ],
            },
            "customers": len({o.customer for o in orders}),
            "quotations": {
                "pending": docs.count("quotations", lambda d: d["status"] == QUOTE_PENDING),
            },
            "recent_orders": [
                {
                    "id": o.id,
                    "order_number": o.order_number,
                    "status": o.status,
                    "total": o.pricing.total,
                    "created_at": o.created_at,
                }
                for o in recent
            ],
        }

    def customers(self, search: str | None = None, page: int = 1, limit: int = 20) -> Page:
        customers = _customers(self.store.read())
        if search:
            needle = search.lower()
            customers = [
                c
                for c in customers
                if needle in c.get("name", "").lower() or needle in c.get("email", "").lower()
            ]
        return paginate(customers, page, limit)

    def export(self, kind: str) -> list[dict[str, Any]]:
        """
        Dump one collection as plain documents, oldest first.

        Raises:
            ValidationError: If `kind` is not one of EXPORT_KINDS.
        """
        if kind not in EXPORT_KINDS:
            raise ValidationError(
                f"Unknown export '{kind}'. Choose from: {', '.join(EXPORT_KINDS)}",
                field="type",
            )
        docs = self.store.read()
        if kind == "customers":
            return _customers(docs)
        return sorted(docs.find(kind), key=lambda d: d.get("created_at", ""))
