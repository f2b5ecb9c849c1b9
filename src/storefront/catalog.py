"""Catalog storage: categories and products."""

from dataclasses import dataclass
from typing import Any

import structlog

from .errors import ValidationError
from .models import Category, Product, Variant, _generate_id, _utc_now
from .store import DocumentStore, Transaction

logger = structlog.get_logger(__name__)

# Fields an admin may change with update_product. Stock moves go through
# the store's atomic counters; direct edits here are restocking.
EDITABLE_FIELDS = {
    "title",
    "description",
    "price",
    "stock",
    "category",
    "images",
    "tags",
    "sizes",
    "variants",
    "min_order_quantity",
    "max_order_quantity",
    "featured",
    "discount",
    "status",
}


@dataclass(frozen=True)
class Page:
    """One page of a listing."""

    items: list[Any]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def paginate(items: list[Any], page: int, limit: int) -> Page:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    start = (page - 1) * limit
    return Page(items=items[start : start + limit], page=page, limit=limit, total=len(items))


def _validate_product_fields(fields: dict[str, Any]) -> None:
    if "price" in fields and fields["price"] < 0:
        raise ValidationError("Price cannot be negative", field="price")
    if "stock" in fields and fields["stock"] < 0:
        raise ValidationError("Stock cannot be negative", field="stock")
    if "discount" in fields and not 0 <= fields["discount"] <= 100:
        raise ValidationError("Discount must be between 0 and 100", field="discount")
    min_qty = fields.get("min_order_quantity")
    max_qty = fields.get("max_order_quantity")
    if min_qty is not None and min_qty < 1:
        raise ValidationError("Minimum order quantity must be at least 1")
    if min_qty is not None and max_qty is not None and max_qty < min_qty:
        raise ValidationError("Maximum order quantity is below the minimum")


def _check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
    _validate_product_fields(changes)


def _apply_changes(txn: Transaction, product_id: str, changes: dict[str, Any]) -> Product:
    doc = txn.require("products", product_id, "Product")
    if changes.get("category") is not None:
        txn.require("categories", changes["category"], "Category")
    merged = {**doc, **changes}
    _validate_product_fields(merged)
    merged["updated_at"] = _utc_now()
    product = Product.from_dict(merged)
    txn.put("products", product.to_dict())
    return product


class CatalogService:
    """Manages categories and products."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- Categories ---

    def list_categories(self, include_inactive: bool = False) -> list[Category]:
        docs = self.store.read().find(
            "categories", lambda d: include_inactive or d["is_active"]
        )
        return sorted((Category.from_dict(d) for d in docs), key=lambda c: c.name)

    def add_category(self, name: str, description: str = "") -> Category:
        """
        Add a category.

        Raises:
            ValidationError: If a category with the same slug exists.
        """
        category = Category.create(name=name, description=description)
        with self.store.transaction() as txn:
            if txn.find_one("categories", lambda d: d["slug"] == category.slug):
                raise ValidationError(f"Category already exists: {name}", field="name")
            txn.insert("categories", category.to_dict())
        return category

    # --- Products ---

    def get_product(self, product_id: str) -> Product:
        """
        Get a product by ID.

        Raises:
            NotFoundError: If product doesn't exist.
        """
        return Product.from_dict(self.store.read().require("products", product_id, "Product"))

    def list_products(
        self,
        category: str | None = None,
        search: str | None = None,
        featured: bool | None = None,
        include_inactive: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """List products, newest first, with optional filters."""
        needle = search.lower() if search else None

        def matches(d: dict[str, Any]) -> bool:
            if not include_inactive and not (d["is_active"] and d["status"] == "active"):
                return False
            if category and d.get("category") != category:
                return False
            if featured is not None and d.get("featured", False) != featured:
                return False
            if needle:
                haystack = " ".join([d["title"], d.get("description", "")] + d.get("tags", []))
                return needle in haystack.lower()
            return True

        docs = self.store.read().find("products", matches)
        products = sorted(
            (Product.from_dict(d) for d in docs), key=lambda p: p.created_at, reverse=True
        )
        return paginate(products, page, limit)

    def add_product(
        self,
        title: str,
        description: str,
        price: float,
        stock: int,
        category: str | None = None,
        **extra: Any,
    ) -> Product:
        """
        Add a product to the catalog.

        Raises:
            ValidationError: If fields are out of range or unknown.
            NotFoundError: If the category doesn't exist.
        """
        unknown = set(extra) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
        fields = {"price": price, "stock": stock, **extra}
        _validate_product_fields(fields)

        product = Product(
            id=_generate_id(),
            title=title,
            description=description,
            price=float(price),
            stock=int(stock),
            category=category,
            images=list(extra.get("images", [])),
            tags=list(extra.get("tags", [])),
            sizes=list(extra.get("sizes", [])),
            variants=[Variant.from_dict(v) for v in extra.get("variants", [])],
            min_order_quantity=extra.get("min_order_quantity", 1),
            max_order_quantity=extra.get("max_order_quantity"),
            featured=extra.get("featured", False),
            discount=extra.get("discount", 0.0),
            status=extra.get("status", "active"),
        )
        with self.store.transaction() as txn:
            if category is not None:
                txn.require("categories", category, "Category")
            txn.insert("products", product.to_dict())
        return product

    def update_product(self, product_id: str, **changes: Any) -> Product:
        """
        Update product fields.

        Existing orders keep their own snapshot of title, price and image.

        Raises:
            NotFoundError: If product doesn't exist.
            ValidationError: If a field is unknown or out of range.
        """
        _check_changes(changes)
        with self.store.transaction() as txn:
            return _apply_changes(txn, product_id, changes)

    def bulk_update_products(self, updates: list[tuple[str, dict[str, Any]]]) -> list[Product]:
        """
        Apply several product updates in one transaction: all of them or none.

        Raises:
            ValidationError: If the list is empty, names a product twice, or
                any update is invalid.
            NotFoundError: If any product doesn't exist.
        """
        if not updates:
            raise ValidationError("No product updates given")
        ids = [product_id for product_id, _ in updates]
        if len(set(ids)) != len(ids):
            raise ValidationError("Each product may appear only once")
        for _, changes in updates:
            _check_changes(changes)

        with self.store.transaction() as txn:
            products = [_apply_changes(txn, pid, changes) for pid, changes in updates]
        logger.info("products_bulk_updated", count=len(products))
        return products

    def deactivate_product(self, product_id: str) -> Product:
        """
        Remove a product from sale. Products are never physically deleted,
        so cancelled orders can always return stock.

        Raises:
            NotFoundError: If product doesn't exist.
        """
        with self.store.transaction() as txn:
            doc = txn.require("products", product_id, "Product")
            doc["is_active"] = False
            doc["status"] = "inactive"
            doc["updated_at"] = _utc_now()
            txn.put("products", doc)
        return Product.from_dict(doc)
