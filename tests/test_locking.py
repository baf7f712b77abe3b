"""Tests for KeyedLocks."""

import threading
import time

from grocer.locking import KeyedLocks


class TestKeyedLocks:
    def test_hold_is_exclusive_per_key(self):
        locks = KeyedLocks("test")
        active = []
        overlaps = []

        def worker():
            with locks.hold(["a"]):
                if active:
                    overlaps.append(True)
                active.append(1)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []

    def test_disjoint_keys_do_not_block(self):
        locks = KeyedLocks("test")
        entered = threading.Event()

        with locks.hold(["a"]):
            def other():
                with locks.hold(["b"]):
                    entered.set()

            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=2)
            t.join()

    def test_opposite_orders_do_not_deadlock(self):
        locks = KeyedLocks("test")
        done = []

        def worker(keys):
            for _ in range(200):
                with locks.hold(keys):
                    pass
            done.append(keys)

        t1 = threading.Thread(target=worker, args=(["a", "b"],))
        t2 = threading.Thread(target=worker, args=(["b", "a"],))
        t1.start()
        t2.start()
        t1.join(timeout=5)
        t2.join(timeout=5)

        assert len(done) == 2

    def test_duplicate_keys_are_acquired_once(self):
        locks = KeyedLocks("test")
        with locks.hold(["a", "a", "b"]):
            assert len(locks) == 2

    def test_unused_keys_are_evicted(self):
        locks = KeyedLocks("test")
        for i in range(50):
            with locks.hold([f"missing-{i}"]):
                pass
        assert len(locks) == 0

    def test_key_kept_while_another_caller_waits(self):
        locks = KeyedLocks("test")
        entered = threading.Event()
        waiting = threading.Event()

        def other():
            waiting.set()
            with locks.hold(["a"]):
                entered.set()

        with locks.hold(["a"]):
            t = threading.Thread(target=other)
            t.start()
            waiting.wait(timeout=2)
            time.sleep(0.05)
            assert not entered.is_set()
        assert entered.wait(timeout=2)
        t.join()
        assert len(locks) == 0

    def test_released_after_exception(self):
        locks = KeyedLocks("test")
        try:
            with locks.hold(["a"]):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        acquired = threading.Event()

        def other():
            with locks.hold(["a"]):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=2)
        t.join()
