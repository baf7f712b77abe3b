"""Tests for StockLedger."""

import threading

from grocer.ledger import StockLedger
from grocer.models import MovementType


class TestStockLedger:
    def test_record_assigns_unique_ids_and_sequence(self):
        ledger = StockLedger()
        first = ledger.record("P1", "Apples", MovementType.IN, 5, "delivery")
        second = ledger.record("P1", "Apples", MovementType.OUT, 2, "order placed")

        assert first.id != second.id
        assert second.sequence == first.sequence + 1
        assert first.timestamp.endswith("Z")

    def test_query_is_newest_first(self):
        ledger = StockLedger()
        ledger.record("P1", "Apples", MovementType.IN, 5, "a")
        ledger.record("P2", "Cabbage", MovementType.IN, 3, "b")
        ledger.record("P1", "Apples", MovementType.OUT, 1, "c")

        assert [e.reason for e in ledger.query()] == ["c", "b", "a"]

    def test_query_by_product(self):
        ledger = StockLedger()
        ledger.record("P1", "Apples", MovementType.IN, 5, "a")
        ledger.record("P2", "Cabbage", MovementType.IN, 3, "b")
        ledger.record("P1", "Apples", MovementType.OUT, 1, "c")

        entries = ledger.query("P1")
        assert [e.reason for e in entries] == ["c", "a"]
        assert ledger.query("missing") == []

    def test_for_order_is_oldest_first(self):
        ledger = StockLedger()
        ledger.record("P1", "Apples", MovementType.OUT, 2, "placed", order_id="o1")
        ledger.record("P2", "Cabbage", MovementType.OUT, 1, "placed", order_id="o2")
        ledger.record("P1", "Apples", MovementType.IN, 2, "cancelled", order_id="o1")

        assert [e.type for e in ledger.for_order("o1")] == [MovementType.OUT, MovementType.IN]

    def test_query_returns_snapshot(self):
        ledger = StockLedger()
        ledger.record("P1", "Apples", MovementType.IN, 5, "a")
        entries = ledger.query()
        entries.clear()

        assert len(ledger) == 1

    def test_concurrent_appends_keep_every_entry(self):
        ledger = StockLedger()

        def writer():
            for _ in range(200):
                ledger.record("P1", "Apples", MovementType.IN, 1, "restock")

        threads = [threading.Thread(target=writer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = ledger.query()
        assert len(entries) == 1600
        assert len({e.id for e in entries}) == 1600
        assert sorted(e.sequence for e in entries) == list(range(1, 1601))
