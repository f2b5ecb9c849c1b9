"""Tests for CatalogService."""

import pytest

from storefront.errors import NotFoundError, ValidationError


class TestCategories:
    def test_add_and_list(self, services):
        services.catalog.add_category("Room Amenities", "Guest room items")
        services.catalog.add_category("Kitchen Appliances")

        categories = services.catalog.list_categories()
        assert [c.name for c in categories] == ["Kitchen Appliances", "Room Amenities"]
        assert categories[1].slug == "room-amenities"

    def test_duplicate_slug_raises(self, services):
        services.catalog.add_category("Room Amenities")

        with pytest.raises(ValidationError):
            services.catalog.add_category("room   amenities")


class TestProducts:
    def test_add_and_get(self, services):
        product = services.catalog.add_product(
            title="Hair Dryer",
            description="Wall mounted",
            price=2499,
            stock=10,
            tags=["bathroom"],
            variants=[{"name": "Color", "value": "White"}],
            min_order_quantity=2,
        )

        loaded = services.catalog.get_product(product.id)
        assert loaded.title == "Hair Dryer"
        assert loaded.price == 2499.0
        assert loaded.variants[0].value == "White"
        assert loaded.min_order_quantity == 2
        assert loaded.available

    def test_get_missing_raises(self, services):
        with pytest.raises(NotFoundError):
            services.catalog.get_product("missing")

    @pytest.mark.parametrize(
        "fields",
        [
            {"price": -1},
            {"stock": -1},
            {"discount": 150},
            {"min_order_quantity": 0},
            {"min_order_quantity": 5, "max_order_quantity": 2},
        ],
    )
    def test_invalid_fields_raise(self, make_product, fields):
        with pytest.raises(ValidationError):
            make_product(**fields)

    def test_unknown_field_raises(self, make_product):
        with pytest.raises(ValidationError):
            make_product(colour="red")

    def test_unknown_category_raises(self, make_product):
        with pytest.raises(NotFoundError):
            make_product(category="missing")

    def test_update_product(self, services, make_product):
        product = make_product()

        updated = services.catalog.update_product(product.id, price=899.0, featured=True)

        assert updated.price == 899.0
        assert updated.featured is True
        assert services.catalog.get_product(product.id).price == 899.0

    def test_update_checks_merged_quantity_limits(self, services, make_product):
        product = make_product(min_order_quantity=3)

        with pytest.raises(ValidationError):
            services.catalog.update_product(product.id, max_order_quantity=2)

    def test_update_does_not_touch_existing_orders(self, services, place_order):
        order = place_order()
        product_id = order.items[0].product

        services.catalog.update_product(product_id, title="Renamed", price=1.0)

        stored = services.orders.get_order(order.id, "user-1")
        assert stored.items[0].product_info.title == "Bath Towel"
        assert stored.items[0].price == 1000.0

    def test_deactivate_hides_from_listing(self, services, make_product):
        kept = make_product("Kettle")
        removed = make_product("Towel")

        services.catalog.deactivate_product(removed.id)

        listed = services.catalog.list_products().items
        assert [p.id for p in listed] == [kept.id]
        assert services.catalog.get_product(removed.id).is_active is False
        everything = services.catalog.list_products(include_inactive=True)
        assert everything.total == 2


class TestListProducts:
    def test_filters(self, services, make_product):
        category = services.catalog.add_category("Kitchen")
        kettle = make_product("Electric Kettle", category=category.id, tags=["steel"])
        make_product("Bath Towel", featured=True)

        by_category = services.catalog.list_products(category=category.id)
        by_search = services.catalog.list_products(search="STEEL")
        by_featured = services.catalog.list_products(featured=True)

        assert [p.id for p in by_category.items] == [kettle.id]
        assert [p.id for p in by_search.items] == [kettle.id]
        assert [p.title for p in by_featured.items] == ["Bath Towel"]

    def test_pagination(self, services, make_product):
        for i in range(5):
            make_product(f"Product {i}")

        page = services.catalog.list_products(page=2, limit=2)

        assert page.total == 5
        assert page.pages == 3
        assert len(page.items) == 2

    def test_invalid_page_raises(self, services):
        with pytest.raises(ValidationError):
            services.catalog.list_products(page=0)


class TestBulkUpdate:
    def test_updates_every_product(self, services, make_product):
        towel = make_product("Towel")
        kettle = make_product("Kettle", stock=1)

        updated = services.catalog.bulk_update_products(
            [(towel.id, {"price": 799.0}), (kettle.id, {"stock": 40, "featured": True})]
        )

        assert [p.id for p in updated] == [towel.id, kettle.id]
        assert services.catalog.get_product(towel.id).price == 799.0
        assert services.catalog.get_product(kettle.id).stock == 40
        assert services.catalog.get_product(kettle.id).featured is True

    def test_missing_product_leaves_others_untouched(self, services, make_product):
        towel = make_product("Towel")

        with pytest.raises(NotFoundError):
            services.catalog.bulk_update_products(
                [(towel.id, {"price": 1.0}), ("missing", {"price": 2.0})]
            )

        assert services.catalog.get_product(towel.id).price == 1000.0

    def test_invalid_change_rejects_whole_batch(self, services, make_product):
        towel = make_product("Towel")
        kettle = make_product("Kettle")

        with pytest.raises(ValidationError):
            services.catalog.bulk_update_products(
                [(towel.id, {"price": 1.0}), (kettle.id, {"discount": 150})]
            )

        assert services.catalog.get_product(towel.id).price == 1000.0

    def test_duplicate_product_raises(self, services, make_product):
        towel = make_product("Towel")

        with pytest.raises(ValidationError):
            services.catalog.bulk_update_products(
                [(towel.id, {"price": 1.0}), (towel.id, {"price": 2.0})]
            )

    def test_empty_batch_raises(self, services):
        with pytest.raises(ValidationError):
            services.catalog.bulk_update_products([])
