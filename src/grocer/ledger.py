"""Append-only stock movement ledger."""

import itertools
import logging
import threading

from .models import MovementType, StockMovement, _generate_id, _utc_now

logger = logging.getLogger(__name__)


class StockLedger:
    """
    Audit trail of every stock change.

    Entries are frozen once recorded and are never removed, so the sequence of
    entries for a product explains how its current stock was reached.
    """

    def __init__(self) -> None:
        self._entries: list[StockMovement] = []
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    def record(
        self,
        product_id: str,
        product_name: str,
        type: MovementType,
        quantity: int,
        reason: str,
        order_id: str | None = None,
        user_id: str | None = None,
    ) -> StockMovement:
        """
        Append a movement, assigning its ID, sequence number and timestamp.

        Args:
            product_id: Product the movement applies to.
            product_name: Name snapshot at the time of the movement.
            type: Direction of the movement.
            quantity: Absolute amount for IN/OUT, signed delta for ADJUSTMENT.
            reason: Free-text cause.
            order_id: Order that caused the movement, if any.
            user_id: User the movement is attributed to, if any.

        Returns:
            The recorded entry.
        """
        with self._lock:
            entry = StockMovement(
                id=_generate_id(),
                sequence=next(self._sequence),
                product_id=product_id,
                product_name=product_name,
                type=type,
                quantity=quantity,
                reason=reason,
                timestamp=_utc_now(),
                order_id=order_id,
                user_id=user_id,
            )
            self._entries.append(entry)
        logger.debug(
            "ledger #%d: %s %s %d (%s)",
            entry.sequence, entry.type.value, product_id, quantity, reason,
        )
        return entry

    def query(self, product_id: str | None = None) -> list[StockMovement]:
        """
        List movements newest-first.

        Args:
            product_id: Only return movements for this product.
        """
        with self._lock:
            entries = list(self._entries)
        if product_id is not None:
            entries = [e for e in entries if e.product_id == product_id]
        entries.sort(key=lambda e: e.sequence, reverse=True)
        return entries

    def for_order(self, order_id: str) -> list[StockMovement]:
        """List movements linked to an order, oldest first."""
        with self._lock:
            return [e for e in self._entries if e.order_id == order_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
