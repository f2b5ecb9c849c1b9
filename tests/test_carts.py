"""Tests for carts and wishlists."""

import pytest

from storefront.errors import NotFoundError, ValidationError


class TestCart:
    def test_empty_cart(self, services):
        cart = services.carts.get_cart("user-1")

        assert cart.user == "user-1"
        assert cart.items == []

    def test_add_merges_same_line(self, services, make_product):
        product = make_product()

        services.carts.add_item("user-1", product.id, 1)
        cart = services.carts.add_item("user-1", product.id, 2)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_sizes_are_separate_lines(self, services, make_product):
        product = make_product()

        services.carts.add_item("user-1", product.id, 1, size="M")
        cart = services.carts.add_item("user-1", product.id, 1, size="L")

        assert [i.size for i in cart.items] == ["M", "L"]

    def test_add_does_not_reserve_stock(self, services, make_product):
        product = make_product(stock=1)

        services.carts.add_item("user-1", product.id, 5)

        assert services.catalog.get_product(product.id).stock == 1

    def test_add_inactive_product_raises(self, services, make_product):
        product = make_product()
        services.catalog.deactivate_product(product.id)

        with pytest.raises(ValidationError):
            services.carts.add_item("user-1", product.id)

    def test_add_missing_product_raises(self, services):
        with pytest.raises(NotFoundError):
            services.carts.add_item("user-1", "missing")

    def test_update_and_remove(self, services, make_product):
        product = make_product()
        services.carts.add_item("user-1", product.id, 1)

        cart = services.carts.update_item("user-1", product.id, 4)
        assert cart.items[0].quantity == 4

        cart = services.carts.remove_item("user-1", product.id)
        assert cart.items == []

    def test_update_missing_line_raises(self, services):
        with pytest.raises(NotFoundError):
            services.carts.update_item("user-1", "missing", 1)

    def test_carts_are_per_user(self, services, make_product):
        product = make_product()
        services.carts.add_item("user-1", product.id)

        assert services.carts.get_cart("user-2").items == []

    def test_clear(self, services, make_product):
        product = make_product()
        services.carts.add_item("user-1", product.id)

        services.carts.clear("user-1")

        assert services.carts.get_cart("user-1").items == []


class TestWishlist:
    def test_add_is_idempotent(self, services, make_product):
        product = make_product()

        services.wishlists.add("user-1", product.id)
        wishlist = services.wishlists.add("user-1", product.id)

        assert wishlist.products == [product.id]

    def test_remove(self, services, make_product):
        product = make_product()
        services.wishlists.add("user-1", product.id)

        services.wishlists.remove("user-1", product.id)

        assert services.wishlists.get_wishlist("user-1").products == []

    def test_add_missing_product_raises(self, services):
        with pytest.raises(NotFoundError):
            services.wishlists.add("user-1", "missing")
