"""Order creation and queries."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from .catalog import Page, paginate
from .errors import ForbiddenError, NotFoundError, ValidationError
from .lifecycle import OrderLifecycle
from .models import (
    DELIVERED,
    ORDER_STATUSES,
    PAYMENT_METHODS,
    PENDING,
    CustomerInfo,
    Order,
    OrderItem,
    Payment,
    ProductSnapshot,
    Shipping,
    StatusEntry,
    Variant,
    _generate_id,
    _utc_now,
)
from .notifications import Notifier, notify
from .pricing import DEFAULT_TAX_RATE, compute_pricing, shipping_cost
from .store import DocumentStore, Transaction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderLine:
    """A requested order line."""

    product_id: str
    quantity: int
    size: str | None = None
    variants: list[dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    total_spent: float
    pending_orders: int
    delivered_orders: int

    def to_dict(self) -> dict:
        return {
            "total_orders": self.total_orders,
            "total_spent": self.total_spent,
            "pending_orders": self.pending_orders,
            "delivered_orders": self.delivered_orders,
        }


def _new_order_number(txn: Transaction) -> str:
    """Generate a unique human-readable order number, e.g. ORD-20240115-3FA9C1."""
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    while True:
        number = f"ORD-{today}-{uuid.uuid4().hex[:6].upper()}"
        if txn.find_one("orders", lambda d: d["order_number"] == number) is None:
            return number


class OrderService:
    """Creates orders against the catalog and answers order queries."""

    def __init__(
        self,
        store: DocumentStore,
        lifecycle: OrderLifecycle,
        notifier: Notifier,
        tax_rate: float = DEFAULT_TAX_RATE,
        shipping_rates: dict[str, float] | None = None,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.tax_rate = tax_rate
        self.shipping_rates = shipping_rates

    def create_order(
        self,
        customer_id: str,
        customer_info: CustomerInfo,
        lines: list[OrderLine],
        shipping: Shipping,
        payment_method: str = "cod",
        notes: str | None = None,
    ) -> Order:
        """
        Create an order, taking stock for every line.

        Stock decrements and the order insert commit in one transaction:
        if any line fails, no stock moves and no order is written.

        Raises:
            ValidationError: On empty items, bad quantities, unknown shipping
                or payment method, or products that are off sale.
            NotFoundError: If a product doesn't exist.
            InsufficientStockError: If a line asks for more than is in stock.
        """
        with self.store.transaction() as txn:
            order = self._build_order(
                txn, customer_id, customer_info, lines, shipping, payment_method, notes
            )
        self._created(order)
        return order

    def create_order_from_cart(
        self,
        customer_id: str,
        customer_info: CustomerInfo,
        shipping: Shipping,
        payment_method: str = "cod",
        notes: str | None = None,
    ) -> Order:
        """
        Create an order from the user's cart and empty the cart.

        Raises:
            ValidationError: If the cart is empty (plus create_order errors).
        """
        with self.store.transaction() as txn:
            cart = txn.get("carts", customer_id)
            if not cart or not cart["items"]:
                raise ValidationError("Cart is empty")
            lines = [
                OrderLine(
                    product_id=i["product"],
                    quantity=i["quantity"],
                    size=i.get("size"),
                    variants=i.get("variants", []),
                )
                for i in cart["items"]
            ]
            order = self._build_order(
                txn, customer_id, customer_info, lines, shipping, payment_method, notes
            )
            cart["items"] = []
            cart["updated_at"] = _utc_now()
            txn.put("carts", cart)
        self._created(order)
        return order

    def _build_order(
        self,
        txn: Transaction,
        customer_id: str,
        customer_info: CustomerInfo,
        lines: list[OrderLine],
        shipping: Shipping,
        payment_method: str,
        notes: str | None,
    ) -> Order:
        if not lines:
            raise ValidationError("Order must contain at least one item", field="items")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Unknown payment method '{payment_method}'", field="payment.method"
            )
        # Fail on shipping before touching stock
        shipping_cost(shipping.method, self.shipping_rates)

        subtotal = 0.0
        items: list[OrderItem] = []
        for line in lines:
            if line.quantity < 1:
                raise ValidationError("Quantity must be at least 1", field="quantity")
            product = txn.require("products", line.product_id, "Product")
            if not (product["is_active"] and product["status"] == "active"):
                raise ValidationError(f"Product is not available: {product['title']}")
            if line.quantity < product.get("min_order_quantity", 1):
                raise ValidationError(
                    f"Minimum order quantity for {product['title']} is "
                    f"{product['min_order_quantity']}",
                    field="quantity",
                )
            max_qty = product.get("max_order_quantity")
            if max_qty is not None and line.quantity > max_qty:
                raise ValidationError(
                    f"Maximum order quantity for {product['title']} is {max_qty}",
                    field="quantity",
                )

            txn.decrement_stock(line.product_id, line.quantity)

            price = float(product["price"])
            subtotal += price * line.quantity
            images = product.get("images", [])
            items.append(
                OrderItem(
                    product=line.product_id,
                    product_info=ProductSnapshot(
                        title=product["title"],
                        price=price,
                        image=images[0] if images else "",
                    ),
                    quantity=line.quantity,
                    price=price,
                    size=line.size,
                    variants=[Variant.from_dict(v) for v in line.variants],
                )
            )

        pricing = compute_pricing(subtotal, shipping.method, self.tax_rate, self.shipping_rates)
        now = _utc_now()
        order = Order(
            id=_generate_id(),
            order_number=_new_order_number(txn),
            customer=customer_id,
            customer_info=customer_info,
            items=items,
            pricing=pricing,
            payment=Payment(method=payment_method),
            shipping=shipping,
            status=PENDING,
            status_history=[StatusEntry(status=PENDING, updated_at=now, note="Order placed")],
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        txn.insert("orders", order.to_dict())
        return order

    def _created(self, order: Order) -> None:
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            customer=order.customer,
            total=order.pricing.total,
            lines=len(order.items),
        )
        notify(self.notifier, order, "order_created")

    def get_order(self, order_id: str, user_id: str, is_admin: bool = False) -> Order:
        """
        Get an order visible to the caller.

        Raises:
            NotFoundError: If the order doesn't exist.
            ForbiddenError: If the caller is neither the owner nor an admin.
        """
        order = Order.from_dict(self.store.read().require("orders", order_id, "Order"))
        if order.customer != user_id and not is_admin:
            raise ForbiddenError()
        return order

    def list_orders(
        self,
        user_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """List orders newest first; all customers when user_id is None."""
        if status is not None and status != "all" and status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status '{status}'", field="status")

        def matches(d: dict) -> bool:
            if user_id is not None and d["customer"] != user_id:
                return False
            return status in (None, "all") or d["status"] == status

        docs = self.store.read().find("orders", matches)
        orders = sorted(
            (Order.from_dict(d) for d in docs), key=lambda o: o.created_at, reverse=True
        )
        return paginate(orders, page, limit)

    def track_order(self, order_number: str) -> Order:
        """
        Find an order by its public order number.

        Raises:
            NotFoundError: If no order has this number.
        """
        doc = self.store.read().find_one("orders", lambda d: d["order_number"] == order_number)
        if doc is None:
            raise NotFoundError("Order", order_number)
        return Order.from_dict(doc)

    def user_stats(self, user_id: str) -> OrderStats:
        docs = self.store.read().find("orders", lambda d: d["customer"] == user_id)
        return OrderStats(
            total_orders=len(docs),
            total_spent=round(sum(d["pricing"]["total"] for d in docs), 2),
            pending_orders=sum(1 for d in docs if d["status"] == PENDING),
            delivered_orders=sum(1 for d in docs if d["status"] == DELIVERED),
        )

    def cancel_order(self, order_id: str, user_id: str, reason: str | None = None) -> Order:
        """Cancel an order as its customer. See OrderLifecycle.cancel."""
        return self.lifecycle.cancel(order_id, user_id, reason)
