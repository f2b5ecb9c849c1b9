"""Tests for OrderService."""

import re
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from storefront.errors import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from storefront.models import CustomerInfo, Shipping
from storefront.orders import OrderLine


def _stock(services, product_id):
    return services.catalog.get_product(product_id).stock


class TestCreateOrder:
    def test_creates_pending_order_and_takes_stock(self, services, make_product, place_order):
        product = make_product(stock=5)

        order = place_order(lines=[OrderLine(product.id, 2)])

        assert order.status == "pending"
        assert order.payment.status == "pending"
        assert order.payment.method == "cod"
        assert len(order.status_history) == 1
        assert order.status_history[0].status == "pending"
        assert _stock(services, product.id) == 3

    def test_pricing_and_snapshot(self, make_product, place_order):
        product = make_product(price=500.0, images=["towel.jpg"])

        order = place_order(lines=[OrderLine(product.id, 2)], method="express")

        assert order.pricing.subtotal == 1000.0
        assert order.pricing.tax == 180.0
        assert order.pricing.shipping == 200.0
        assert order.pricing.total == 1380.0
        assert order.items[0].product_info.title == "Bath Towel"
        assert order.items[0].product_info.image == "towel.jpg"
        assert order.items[0].price == 500.0

    def test_order_number_format(self, place_order):
        order = place_order()

        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{6}", order.order_number)

    def test_insufficient_stock_takes_nothing(self, services, make_product, place_order):
        plenty = make_product("Kettle", stock=10)
        scarce = make_product("Towel", stock=1)

        with pytest.raises(InsufficientStockError):
            place_order(lines=[OrderLine(plenty.id, 3), OrderLine(scarce.id, 2)])

        assert _stock(services, plenty.id) == 10
        assert _stock(services, scarce.id) == 1
        assert services.orders.list_orders().total == 0

    def test_empty_items_raises(self, place_order):
        with pytest.raises(ValidationError):
            place_order(lines=[])

    def test_unknown_shipping_method_takes_no_stock(self, services, make_product, place_order):
        product = make_product(stock=5)

        with pytest.raises(ValidationError):
            place_order(lines=[OrderLine(product.id, 1)], method="teleport")

        assert _stock(services, product.id) == 5

    def test_unknown_payment_method_raises(self, place_order):
        with pytest.raises(ValidationError):
            place_order(payment="cheque")

    def test_missing_product_raises(self, place_order):
        with pytest.raises(NotFoundError):
            place_order(lines=[OrderLine("missing", 1)])

    def test_inactive_product_raises(self, services, make_product, place_order):
        product = make_product()
        services.catalog.deactivate_product(product.id)

        with pytest.raises(ValidationError):
            place_order(lines=[OrderLine(product.id, 1)])

    def test_order_quantity_limits(self, make_product, place_order):
        product = make_product(min_order_quantity=2, max_order_quantity=3)

        with pytest.raises(ValidationError):
            place_order(lines=[OrderLine(product.id, 1)])
        with pytest.raises(ValidationError):
            place_order(lines=[OrderLine(product.id, 4)])

    def test_notifies_customer(self, services, place_order):
        order = place_order()

        notifications = services.notifications.list_for_user("user-1")
        assert [n.type for n in notifications] == ["order_created"]
        assert order.order_number in notifications[0].message


class TestConcurrentOrders:
    def test_last_units_go_to_exactly_one_order(self, services, make_product, place_order):
        product = make_product(stock=2)
        start = threading.Barrier(2)

        def buy(customer):
            start.wait()
            try:
                return place_order(customer=customer, lines=[OrderLine(product.id, 2)])
            except InsufficientStockError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(buy, ["user-1", "user-2"]))

        placed = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(placed) == 1
        assert len(rejected) == 1
        assert _stock(services, product.id) == 0
        assert services.orders.list_orders().total == 1


class TestCreateOrderFromCart:
    def test_empties_cart(self, services, make_product):
        product = make_product(stock=5)
        services.carts.add_item("user-1", product.id, 2)

        order = services.orders.create_order_from_cart(
            "user-1", CustomerInfo("Asha", "asha@example.com"), Shipping("standard")
        )

        assert order.items[0].quantity == 2
        assert services.carts.get_cart("user-1").items == []
        assert _stock(services, product.id) == 3

    def test_empty_cart_raises(self, services):
        with pytest.raises(ValidationError):
            services.orders.create_order_from_cart(
                "user-1", CustomerInfo("Asha", "asha@example.com"), Shipping("standard")
            )

    def test_failure_keeps_cart(self, services, make_product):
        product = make_product(stock=1)
        services.carts.add_item("user-1", product.id, 3)

        with pytest.raises(InsufficientStockError):
            services.orders.create_order_from_cart(
                "user-1", CustomerInfo("Asha", "asha@example.com"), Shipping("standard")
            )

        assert services.carts.get_cart("user-1").items[0].quantity == 3


class TestQueries:
    def test_get_order_owner_and_admin(self, services, place_order):
        order = place_order()

        assert services.orders.get_order(order.id, "user-1").id == order.id
        assert services.orders.get_order(order.id, "admin-1", is_admin=True).id == order.id
        with pytest.raises(ForbiddenError):
            services.orders.get_order(order.id, "user-2")

    def test_list_orders_by_user_and_status(self, services, place_order):
        first = place_order()
        place_order(customer="user-2")
        services.lifecycle.advance(first.id, "confirmed")

        mine = services.orders.list_orders(user_id="user-1")
        confirmed = services.orders.list_orders(status="confirmed")
        everything = services.orders.list_orders(status="all")

        assert [o.id for o in mine.items] == [first.id]
        assert [o.id for o in confirmed.items] == [first.id]
        assert everything.total == 2

    def test_list_orders_unknown_status_raises(self, services):
        with pytest.raises(ValidationError):
            services.orders.list_orders(status="lost")

    def test_track_order(self, services, place_order):
        order = place_order()

        tracked = services.orders.track_order(order.order_number).tracking_dict()

        assert tracked["status"] == "pending"
        assert tracked["shipping_method"] == "standard"
        assert "customer_info" not in tracked

    def test_track_unknown_order_raises(self, services):
        with pytest.raises(NotFoundError):
            services.orders.track_order("ORD-00000000-000000")

    def test_user_stats(self, services, place_order):
        first = place_order()
        place_order()
        services.lifecycle.advance(first.id, "confirmed")
        services.lifecycle.advance(first.id, "shipped")
        services.lifecycle.advance(first.id, "delivered")

        stats = services.orders.user_stats("user-1")

        assert stats.total_orders == 2
        assert stats.pending_orders == 1
        assert stats.delivered_orders == 1
        assert stats.total_spent == pytest.approx(2 * (2000.0 + 360.0 + 100.0))
