"""Per-user cart and wishlist storage."""

from .errors import NotFoundError, ValidationError
from .models import Cart, CartItem, Variant, Wishlist, _utc_now
from .store import DocumentStore, Transaction


def _load_cart(txn_or_docs, user_id: str) -> Cart:
    doc = txn_or_docs.get("carts", user_id)
    return Cart.from_dict(doc) if doc else Cart(user=user_id)


def _same_line(item: CartItem, product_id: str, size: str | None) -> bool:
    return item.product == product_id and item.size == size


class CartService:
    """Manages user carts. Cart lines reference products by id only."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_cart(self, user_id: str) -> Cart:
        return _load_cart(self.store.read(), user_id)

    def add_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int = 1,
        size: str | None = None,
        variants: list[dict[str, str]] | None = None,
    ) -> Cart:
        """
        Add units of a product to the cart, merging with an existing line.

        Stock is only checked when the order is placed.

        Raises:
            ValidationError: If quantity is not positive or the product is off sale.
            NotFoundError: If the product doesn't exist.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")
        with self.store.transaction() as txn:
            product = txn.require("products", product_id, "Product")
            if not (product["is_active"] and product["status"] == "active"):
                raise ValidationError(f"Product is not available: {product['title']}")
            cart = _load_cart(txn, user_id)
            for item in cart.items:
                if _same_line(item, product_id, size):
                    item.quantity += quantity
                    break
            else:
                cart.items.append(
                    CartItem(
                        product=product_id,
                        quantity=quantity,
                        size=size,
                        variants=[Variant.from_dict(v) for v in variants or []],
                    )
                )
            self._save(txn, cart)
        return cart

    def update_item(
        self, user_id: str, product_id: str, quantity: int, size: str | None = None
    ) -> Cart:
        """
        Set the quantity of a cart line. Zero removes the line.

        Raises:
            NotFoundError: If the line is not in the cart.
        """
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative", field="quantity")
        with self.store.transaction() as txn:
            cart = _load_cart(txn, user_id)
            for item in cart.items:
                if _same_line(item, product_id, size):
                    item.quantity = quantity
                    break
            else:
                raise NotFoundError("Cart item", product_id)
            cart.items = [i for i in cart.items if i.quantity > 0]
            self._save(txn, cart)
        return cart

    def remove_item(self, user_id: str, product_id: str, size: str | None = None) -> Cart:
        return self.update_item(user_id, product_id, 0, size=size)

    def clear(self, user_id: str) -> Cart:
        with self.store.transaction() as txn:
            cart = Cart(user=user_id)
            self._save(txn, cart)
        return cart

    @staticmethod
    def _save(txn: Transaction, cart: Cart) -> None:
        cart.updated_at = _utc_now()
        txn.put("carts", cart.to_dict())


class WishlistService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def get_wishlist(self, user_id: str) -> Wishlist:
        doc = self.store.read().get("wishlists", user_id)
        return Wishlist.from_dict(doc) if doc else Wishlist(user=user_id)

    def add(self, user_id: str, product_id: str) -> Wishlist:
        """
        Add a product to the wishlist. Adding twice is a no-op.

        Raises:
            NotFoundError: If the product doesn't exist.
        """
        with self.store.transaction() as txn:
            txn.require("products", product_id, "Product")
            doc = txn.get("wishlists", user_id)
            wishlist = Wishlist.from_dict(doc) if doc else Wishlist(user=user_id)
            if product_id not in wishlist.products:
                wishlist.products.append(product_id)
                wishlist.updated_at = _utc_now()
                txn.put("wishlists", wishlist.to_dict())
        return wishlist

    def remove(self, user_id: str, product_id: str) -> Wishlist:
        with self.store.transaction() as txn:
            doc = txn.get("wishlists", user_id)
            wishlist = Wishlist.from_dict(doc) if doc else Wishlist(user=user_id)
            if product_id in wishlist.products:
                wishlist.products.remove(product_id)
                wishlist.updated_at = _utc_now()
                txn.put("wishlists", wishlist.to_dict())
        return wishlist
