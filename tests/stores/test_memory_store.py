"""
Brief: Tests for buoy.stores.memory.InMemoryRecordStore.

Inputs:
  - None

Outputs:
  - None
"""

from datetime import datetime, timezone

import pytest

from buoy.errors import RecordNotFound
from buoy.records import Record
from buoy.stores.memory import InMemoryRecordStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_get_missing_raises_record_not_found():
    store = InMemoryRecordStore()
    with pytest.raises(RecordNotFound) as excinfo:
        store.get("missing.test.")
    # RecordNotFound is also a KeyError for callers that only know mappings.
    assert isinstance(excinfo.value, KeyError)
    assert str(excinfo.value) == "missing.test. not found"


def test_set_get_remove_and_listing_order():
    store = InMemoryRecordStore()
    b = Record("b.test.", "192.0.2.2", T0)
    a = Record("a.test.", "192.0.2.1", T0)
    store.set(b.domain, b)
    store.set(a.domain, a)

    assert store.get("a.test.") == a
    assert [r.domain for r in store.get_all()] == ["a.test.", "b.test."]
    assert len(store) == 2

    store.remove("a.test.")
    store.remove("a.test.")
    assert [r.domain for r in store.get_all()] == ["b.test."]


def test_close_is_a_noop():
    store = InMemoryRecordStore()
    store.close()
    assert store.get_all() == []
