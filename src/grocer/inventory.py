"""Inventory Manager: stock levels and their ledger entries."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .catalog import Catalog
from .errors import GrocerError, ProductNotFoundError, ValidationError
from .ledger import StockLedger
from .models import BatchResult, MovementType, Product, ProductStatistics
from .results import Outcome

logger = logging.getLogger(__name__)

DEFAULT_BATCH_REASON = "batch stock adjustment"
NEW_PRODUCT_REASON = "new product stocked"
MANUAL_CORRECTION_REASON = "manual stock correction"

# Fields update_product() may change besides stock
EDITABLE_FIELDS = ("name", "category", "price", "unit", "description", "image")


@dataclass(frozen=True)
class StockAdjustment:
    """One entry of a batch stock correction."""

    product_id: str
    new_stock: int
    reason: str = DEFAULT_BATCH_REASON


def _check_target(new_stock: Any) -> None:
    if isinstance(new_stock, bool) or not isinstance(new_stock, int):
        raise ValidationError(f"must be an integer, got {new_stock!r}", field="new_stock")
    if new_stock < 0:
        raise ValidationError(f"must be >= 0, got {new_stock}", field="new_stock")


class InventoryManager:
    """Mutates catalog stock and records every change in the ledger."""

    def __init__(self, catalog: Catalog, ledger: StockLedger, low_stock_threshold: int = 10):
        self.catalog = catalog
        self.ledger = ledger
        self.low_stock_threshold = low_stock_threshold

    # --- Reads ---

    def low_stock(self, threshold: int | None = None) -> list[Product]:
        """Products with 0 < stock <= threshold."""
        if threshold is None:
            threshold = self.low_stock_threshold
        return [p for p in self.catalog.list_products() if 0 < p.stock <= threshold]

    def out_of_stock(self) -> list[Product]:
        return [p for p in self.catalog.list_products() if p.stock == 0]

    def product_statistics(self, threshold: int | None = None) -> ProductStatistics:
        if threshold is None:
            threshold = self.low_stock_threshold
        products = self.catalog.list_products()
        return ProductStatistics(
            total=len(products),
            in_stock=sum(1 for p in products if p.stock > 0),
            out_of_stock=sum(1 for p in products if p.stock == 0),
            low_stock=sum(1 for p in products if 0 < p.stock <= threshold),
        )

    # --- Writes ---

    def adjust_stock(
        self,
        product_id: str,
        new_stock: int,
        reason: str,
        user_id: str | None = None,
    ) -> Outcome[Product]:
        """
        Set a product's stock to an absolute level.

        Writes one IN entry for an increase or one OUT entry for a decrease.
        Setting the current level again succeeds and writes nothing.

        Returns:
            Outcome carrying the updated product, or ValidationError /
            ProductNotFoundError.
        """
        try:
            _check_target(new_stock)
            with self.catalog.lock([product_id]):
                product = self.catalog.get_product(product_id)
                if product is None:
                    raise ProductNotFoundError(product_id)
                delta = new_stock - product.stock
                if delta == 0:
                    logger.debug("stock of %s already %d, nothing to adjust", product_id, new_stock)
                    return Outcome.success(product)
                updated = self.catalog.set_stock(product_id, new_stock)
                self.ledger.record(
                    product_id=product.id,
                    product_name=product.name,
                    type=MovementType.IN if delta > 0 else MovementType.OUT,
                    quantity=abs(delta),
                    reason=reason,
                    user_id=user_id,
                )
        except GrocerError as e:
            logger.warning("stock adjustment of %s rejected: %s", product_id, e)
            return Outcome.failure(e)

        logger.info(
            "stock of %s (%s) adjusted %d -> %d: %s",
            product.name, product_id, product.stock, new_stock, reason,
        )
        return Outcome.success(updated)

    def batch_adjust_stock(
        self,
        adjustments: Iterable[StockAdjustment],
        user_id: str | None = None,
    ) -> BatchResult:
        """
        Apply several stock corrections independently.

        Not all-or-nothing: a rejected entry never blocks the others.

        Returns:
            BatchResult listing succeeded and failed product IDs.
        """
        result = BatchResult()
        for adj in adjustments:
            outcome = self.adjust_stock(adj.product_id, adj.new_stock, adj.reason, user_id=user_id)
            if outcome:
                result.succeeded.append(adj.product_id)
            else:
                result.failed.append(adj.product_id)
                result.errors[adj.product_id] = str(outcome.error)
        logger.info(
            "batch stock adjustment: %d succeeded, %d failed",
            len(result.succeeded), len(result.failed),
        )
        return result

    def add_product(self, product: Product, user_id: str | None = None) -> Outcome[Product]:
        """
        Add a product to the catalog.

        Initial stock above zero is recorded as an IN movement.
        """
        try:
            with self.catalog.lock([product.id]):
                stored = self.catalog.add(product)
                if stored.stock > 0:
                    self.ledger.record(
                        product_id=stored.id,
                        product_name=stored.name,
                        type=MovementType.IN,
                        quantity=stored.stock,
                        reason=NEW_PRODUCT_REASON,
                        user_id=user_id,
                    )
        except GrocerError as e:
            logger.warning("adding product %s rejected: %s", product.id, e)
            return Outcome.failure(e)
        logger.info("product %s (%s) added with stock %d", stored.name, stored.id, stored.stock)
        return Outcome.success(stored)

    def remove_product(self, product_id: str) -> Outcome[Product]:
        """Remove a product. Its ledger entries remain."""
        try:
            with self.catalog.lock([product_id]):
                removed = self.catalog.remove(product_id)
        except GrocerError as e:
            logger.warning("removing product %s rejected: %s", product_id, e)
            return Outcome.failure(e)
        logger.info("product %s (%s) removed", removed.name, product_id)
        return Outcome.success(removed)

    def update_product(
        self,
        product_id: str,
        user_id: str | None = None,
        **changes: Any,
    ) -> Outcome[Product]:
        """
        Edit a product's descriptive fields and optionally its stock.

        A stock change is recorded as one ADJUSTMENT entry with the signed delta.

        Args:
            product_id: Product to edit.
            user_id: User the stock change is attributed to.
            **changes: Any of name, category, price, unit, description, image, stock.
        """
        try:
            unknown = set(changes) - set(EDITABLE_FIELDS) - {"stock"}
            if unknown:
                raise ValidationError(f"cannot edit {', '.join(sorted(unknown))}", field="product")
            if "stock" in changes:
                _check_target(changes["stock"])

            with self.catalog.lock([product_id]):
                current = self.catalog.get_product(product_id)
                if current is None:
                    raise ProductNotFoundError(product_id)
                updated = current.copy()
                for name, value in changes.items():
                    setattr(updated, name, value)
                self.catalog.replace(updated)

                delta = updated.stock - current.stock
                if delta != 0:
                    self.ledger.record(
                        product_id=updated.id,
                        product_name=updated.name,
                        type=MovementType.ADJUSTMENT,
                        quantity=delta,
                        reason=MANUAL_CORRECTION_REASON,
                        user_id=user_id,
                    )
        except GrocerError as e:
            logger.warning("updating product %s rejected: %s", product_id, e)
            return Outcome.failure(e)

        logger.info("product %s updated: %s", product_id, ", ".join(sorted(changes)) or "no changes")
        return Outcome.success(updated)
