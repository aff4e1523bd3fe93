# mypy: ignore-errors
"""Tests for the keyed lock registry."""

import threading
import time

from flare_stage.services.locks import KeyedLock


def test_entries_are_dropped_after_release() -> None:
    locks = KeyedLock()
    with locks.hold(("postLike", 1)):
        assert len(locks) == 1
    assert len(locks) == 0


def test_same_key_is_mutually_exclusive() -> None:
    locks = KeyedLock()
    inside = 0
    peak = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal inside, peak
        with locks.hold("hot"):
            with guard:
                inside += 1
                peak = max(peak, inside)
            time.sleep(0.005)
            with guard:
                inside -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak == 1
    assert len(locks) == 0


def test_different_keys_do_not_block_each_other() -> None:
    locks = KeyedLock()
    entered = threading.Event()

    def other() -> None:
        with locks.hold("b"):
            entered.set()

    with locks.hold("a"):
        thread = threading.Thread(target=other)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join()


def test_hold_many_with_overlapping_keys_does_not_deadlock() -> None:
    locks = KeyedLock()
    done = []

    def worker(keys) -> None:
        for _ in range(50):
            with locks.hold_many(keys):
                pass
        done.append(keys)

    first = threading.Thread(target=worker, args=(["x", "y"],))
    second = threading.Thread(target=worker, args=(["y", "x"],))
    first.start()
    second.start()
    first.join(timeout=5)
    second.join(timeout=5)

    assert len(done) == 2
    assert len(locks) == 0


def test_hold_many_deduplicates_keys() -> None:
    locks = KeyedLock()
    with locks.hold_many(["k", "k"]):
        assert len(locks) == 1
