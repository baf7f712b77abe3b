"""Product catalog storage."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from .errors import ProductNotFoundError, ValidationError
from .locking import KeyedLocks
from .models import Product

logger = logging.getLogger(__name__)


class Catalog:
    """
    Holds product records.

    Reads hand out copies. Stock is only changed through set_stock(), which
    callers invoke while holding lock() on the product; the Inventory Manager
    and Order Engine are the only such callers.
    """

    def __init__(self, products: Iterable[Product] = ()):
        self._products: dict[str, Product] = {}
        self._guard = threading.Lock()
        self._locks = KeyedLocks("catalog")
        for product in products:
            self.add(product)

    @contextmanager
    def lock(self, product_ids: Iterable[str]) -> Iterator[None]:
        """Hold exclusive locks on the given products."""
        with self._locks.hold(product_ids):
            yield

    def list_products(self) -> list[Product]:
        """List all products in insertion order."""
        with self._guard:
            return [p.copy() for p in self._products.values()]

    def get_product(self, product_id: str) -> Product | None:
        """Get a copy of a product, or None if it doesn't exist."""
        with self._guard:
            product = self._products.get(product_id)
        return product.copy() if product else None

    def __contains__(self, product_id: object) -> bool:
        with self._guard:
            return product_id in self._products

    def __len__(self) -> int:
        with self._guard:
            return len(self._products)

    def add(self, product: Product) -> Product:
        """
        Store a new product.

        Raises:
            ValidationError: If the product is malformed or the ID is taken.
        """
        product.validate()
        stored = product.copy()
        with self._guard:
            if stored.id in self._products:
                raise ValidationError(f"product {stored.id} already exists", field="id")
            self._products[stored.id] = stored
        return stored.copy()

    def remove(self, product_id: str) -> Product:
        """
        Delete a product.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
        """
        with self._guard:
            product = self._products.pop(product_id, None)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def replace(self, product: Product) -> None:
        """
        Overwrite a product's record. Caller must hold lock() on it.

        Raises:
            ValidationError: If the new record is malformed.
            ProductNotFoundError: If the product doesn't exist.
        """
        product.validate()
        with self._guard:
            if product.id not in self._products:
                raise ProductNotFoundError(product.id)
            self._products[product.id] = product.copy()

    def set_stock(self, product_id: str, stock: int) -> Product:
        """
        Set a product's stock level. Caller must hold lock() on it.

        Raises:
            ValidationError: If stock is negative or not an integer.
            ProductNotFoundError: If the product doesn't exist.
        """
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValidationError(f"stock must be a non-negative integer, got {stock!r}", field="stock")
        with self._guard:
            product = self._products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            product.stock = stock
            return product.copy()
