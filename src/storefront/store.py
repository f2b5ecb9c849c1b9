"""JSON document store for storefront.

All collections live in a single JSON file so that a transaction touching
several documents (stock counters plus an order, for instance) is committed
by one atomic rename. Writers serialize on an exclusive file lock; readers
load the last committed file without locking.
"""

import copy
import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from .errors import (
    InsufficientStockError,
    InvalidSchemaVersionError,
    NotFoundError,
    ValidationError,
)
from .models import _utc_now

SCHEMA_VERSION = 1
DATA_FILE = "storefront.json"
LOCK_FILE = ".storefront.lock"

COLLECTIONS = (
    "categories",
    "products",
    "carts",
    "wishlists",
    "orders",
    "notifications",
    "subscriptions",
    "quotations",
)

Document = dict[str, Any]
Predicate = Callable[[Document], bool]


def _empty_data() -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "collections": {name: {} for name in COLLECTIONS},
    }


class Documents:
    """Read access to one consistent version of the data file."""

    def __init__(self, data: dict[str, Any]):
        self._data = data

    def _collection(self, name: str) -> dict[str, Document]:
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return self._data["collections"].setdefault(name, {})

    def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def require(self, collection: str, doc_id: str, entity: str) -> Document:
        """
        Get a document or fail.

        Raises:
            NotFoundError: If no document has this id.
        """
        doc = self.get(collection, doc_id)
        if doc is None:
            raise NotFoundError(entity, doc_id)
        return doc

    def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        docs = self._collection(collection).values()
        return [copy.deepcopy(d) for d in docs if predicate is None or predicate(d)]

    def find_one(self, collection: str, predicate: Predicate) -> Document | None:
        for doc in self._collection(collection).values():
            if predicate(doc):
                return copy.deepcopy(doc)
        return None

    def count(self, collection: str, predicate: Predicate | None = None) -> int:
        docs = self._collection(collection).values()
        return sum(1 for d in docs if predicate is None or predicate(d))


class Transaction(Documents):
    """Read-write access inside DocumentStore.transaction()."""

    def insert(self, collection: str, doc: Document) -> Document:
        docs = self._collection(collection)
        if doc["id"] in docs:
            raise ValueError(f"Duplicate id in {collection}: {doc['id']}")
        docs[doc["id"]] = copy.deepcopy(doc)
        return doc

    def put(self, collection: str, doc: Document) -> Document:
        """Insert or replace a document by id."""
        self._collection(collection)[doc["id"]] = copy.deepcopy(doc)
        return doc

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def decrement_stock(self, product_id: str, quantity: int) -> Document:
        """
        Take units out of a product's stock if enough are available.

        Check and update happen as one step under the transaction lock.

        Raises:
            ValidationError: If quantity is not positive.
            NotFoundError: If the product doesn't exist.
            InsufficientStockError: If stock < quantity.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")
        product = self._collection("products").get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if product["stock"] < quantity:
            raise InsufficientStockError(
                product_id, product["title"], quantity, product["stock"]
            )
        product["stock"] -= quantity
        product["updated_at"] = _utc_now()
        return copy.deepcopy(product)

    def increment_stock(self, product_id: str, quantity: int) -> Document:
        """
        Return units to a product's stock.

        Raises:
            ValidationError: If quantity is not positive.
            NotFoundError: If the product doesn't exist.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")
        product = self._collection("products").get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        product["stock"] += quantity
        product["updated_at"] = _utc_now()
        return copy.deepcopy(product)


class DocumentStore:
    """Manages the storefront data file."""

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize DocumentStore.

        Args:
            data_dir: Directory holding the data file. Created on first write.
        """
        from .config import get_settings

        self.data_dir = Path(data_dir or get_settings().data_dir)
        self.data_path = self.data_dir / DATA_FILE

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the data file for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.data_dir / LOCK_FILE
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def exists(self) -> bool:
        return self.data_path.exists()

    def _load_data(self) -> dict[str, Any]:
        """
        Load the data file from disk.

        Raises:
            InvalidSchemaVersionError: If schema version is unsupported.
        """
        if not self.data_path.exists():
            return _empty_data()

        with open(self.data_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)
        for name in COLLECTIONS:
            data["collections"].setdefault(name, {})
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save the data file atomically (write to temp then rename)."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=".storefront_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.data_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def read(self) -> Documents:
        """Get a read-only view of the last committed data."""
        return Documents(self._load_data())

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a read-modify-write transaction.

        Changes are committed when the block exits normally and discarded
        when it raises. Transactions must not be nested.
        """
        with self._lock():
            txn = Transaction(self._load_data())
            yield txn
            self._save_data(txn._data)

    def decrement_stock(self, product_id: str, quantity: int) -> Document:
        """Atomically decrement stock if at least `quantity` units are available."""
        with self.transaction() as txn:
            return txn.decrement_stock(product_id, quantity)

    def increment_stock(self, product_id: str, quantity: int) -> Document:
        with self.transaction() as txn:
            return txn.increment_stock(product_id, quantity)
