from __future__ import annotations

import threading
from typing import Dict, List

from ..errors import RecordNotFound
from ..records import Record
from .base import RecordStore, store_aliases


@store_aliases("memory", "in_memory")
class InMemoryRecordStore(RecordStore):
    """Dict-backed RecordStore.

    Brief:
      Keeps records in process memory only. Useful for tests and for
      ephemeral deployments where losing the cache on restart is acceptable.

    Inputs:
      - None.

    Outputs:
      - InMemoryRecordStore instance.

    Example:
      >>> from datetime import datetime, timezone
      >>> store = InMemoryRecordStore()
      >>> rec = Record("example.com.", "192.0.2.1", datetime.now(timezone.utc))
      >>> store.set("example.com.", rec)
      >>> store.get("example.com.").address
      '192.0.2.1'
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, Record] = {}

    def get(self, domain: str) -> Record:
        with self._lock:
            try:
                return self._data[domain]
            except KeyError:
                raise RecordNotFound(f"{domain} not found") from None

    def set(self, domain: str, record: Record) -> None:
        with self._lock:
            self._data[domain] = record

    def remove(self, domain: str) -> None:
        with self._lock:
            self._data.pop(domain, None)

    def get_all(self) -> List[Record]:
        with self._lock:
            return [self._data[k] for k in sorted(self._data)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
