"""
Brief: Tests for buoy.cache.RecordCache (staleness policy and write rules).

Inputs:
  - None

Outputs:
  - None
"""

import threading
from datetime import timedelta

import pytest

from buoy.cache import RecordCache
from buoy.errors import RecordNotFound, RecordOutdated, StoreError
from buoy.records import Record


def test_read_missing_raises_not_found(memory_store, clock):
    cache = RecordCache(memory_store, clock=clock)
    with pytest.raises(RecordNotFound):
        cache.read_record("nothing.test")


def test_write_then_read_normalizes_names(memory_store, clock):
    """
    Brief: Writes and reads agree regardless of case and trailing dot.

    Inputs:
      - memory_store, clock fixtures

    Outputs:
      - None: Asserts normalized key and stored timestamp
    """
    cache = RecordCache(memory_store, clock=clock)
    assert cache.write_record("Domain.Test", "192.168.0.1") is True

    assert cache.read_record("domain.test.") == "192.168.0.1"
    stored = memory_store.get("domain.test.")
    assert stored.domain == "domain.test."
    assert stored.resolved_at == clock.now


def test_stale_record_is_removed_on_read(memory_store, clock):
    """
    Brief: A record at max_age is deleted and reported as outdated.

    Inputs:
      - memory_store, clock fixtures

    Outputs:
      - None: Asserts RecordOutdated and removal from the store
    """
    cache = RecordCache(memory_store, clock=clock)
    cache.write_record("old.test", "192.0.2.1")

    clock.advance(hours=23, minutes=59)
    assert cache.read_record("old.test") == "192.0.2.1"

    clock.advance(minutes=1)
    with pytest.raises(RecordOutdated):
        cache.read_record("old.test")
    with pytest.raises(RecordNotFound):
        memory_store.get("old.test.")
    # A second read sees nothing at all.
    with pytest.raises(RecordNotFound):
        cache.read_record("old.test")


def test_custom_max_age(memory_store, clock):
    cache = RecordCache(memory_store, max_age=timedelta(seconds=30), clock=clock)
    cache.write_record("short.test", "192.0.2.9")
    clock.advance(seconds=30)
    with pytest.raises(RecordOutdated):
        cache.read_record("short.test")


def test_first_write_wins(memory_store, clock):
    cache = RecordCache(memory_store, clock=clock)
    first_time = clock.now
    assert cache.write_record("dup.test", "192.0.2.1") is True

    clock.advance(hours=1)
    assert cache.write_record("dup.test", "192.0.2.2") is False

    stored = memory_store.get("dup.test.")
    assert stored.address == "192.0.2.1"
    assert stored.resolved_at == first_time


def test_write_does_not_refresh_stale_record(memory_store, clock):
    memory_store.set("stale.test.", Record("stale.test.", "192.0.2.1", clock.now))
    clock.advance(days=2)
    cache = RecordCache(memory_store, clock=clock)

    assert cache.write_record("stale.test", "192.0.2.2") is False
    assert memory_store.get("stale.test.").address == "192.0.2.1"


def test_concurrent_writers_keep_exactly_one_record(memory_store):
    """
    Brief: Many threads racing to cache the same domain leave one record.

    Inputs:
      - memory_store fixture

    Outputs:
      - None: Asserts exactly one True result and one stored record
    """
    cache = RecordCache(memory_store)
    start = threading.Barrier(8, timeout=2.0)
    results = []
    lock = threading.Lock()

    def worker(i):
        start.wait()
        ok = cache.write_record("race.test", f"192.0.2.{i}")
        with lock:
            results.append((ok, i))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(3.0)

    winners = [i for ok, i in results if ok]
    assert len(winners) == 1
    assert memory_store.get("race.test.").address == f"192.0.2.{winners[0]}"


def test_two_readers_racing_on_stale_entry_both_see_outdated(memory_store, clock):
    """
    Brief: Readers that both fetch the same stale record both delete it.

    Inputs:
      - memory_store, clock fixtures

    Outputs:
      - None: Asserts two RecordOutdated results, two deletes, empty store
    """

    class LockstepStore:
        def __init__(self, inner):
            self.inner = inner
            self.fetched = threading.Barrier(2, timeout=2.0)
            self.removes = 0

        def get(self, domain):
            record = self.inner.get(domain)
            self.fetched.wait()
            return record

        def remove(self, domain):
            self.removes += 1
            self.inner.remove(domain)

    memory_store.set(
        "stale.test.",
        Record("stale.test.", "192.0.2.9", clock.now - timedelta(hours=30)),
    )
    store = LockstepStore(memory_store)
    cache = RecordCache(store, clock=clock)
    outcomes = []
    lock = threading.Lock()

    def reader():
        try:
            outcome = cache.read_record("stale.test")
        except RecordOutdated as exc:
            outcome = exc
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(3.0)

    assert len(outcomes) == 2
    assert all(isinstance(o, RecordOutdated) for o in outcomes)
    assert store.removes == 2
    assert memory_store.get_all() == []


def test_remove_record_is_idempotent(memory_store, clock):
    cache = RecordCache(memory_store, clock=clock)
    cache.write_record("gone.test", "192.0.2.1")
    cache.remove_record("GONE.test.")
    cache.remove_record("gone.test")
    assert cache.list_records() == []


def test_list_records_includes_stale_entries(memory_store, clock):
    cache = RecordCache(memory_store, clock=clock)
    cache.write_record("a.test", "192.0.2.1")
    clock.advance(days=3)
    cache.write_record("b.test", "192.0.2.2")

    assert [r.domain for r in cache.list_records()] == ["a.test.", "b.test."]


def test_store_errors_propagate_from_write(clock):
    class FailingStore:
        def get(self, domain):
            raise RecordNotFound(domain)

        def set(self, domain, record):
            raise StoreError("disk full")

    cache = RecordCache(FailingStore(), clock=clock)
    with pytest.raises(StoreError):
        cache.write_record("x.test", "192.0.2.1")
