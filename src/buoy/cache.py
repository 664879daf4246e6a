"""Read-through TTL cache over a RecordStore.

RecordCache never keeps records of its own: every read is a store read and
every write is a store write. It contributes two things on top of the store:

  - the staleness policy (records at or past max_age are deleted when read)
  - the lock discipline (shared lock for reads, exclusive lock for writes)

Check-then-delete in read_record() is not atomic end to end: two readers may
both see the same stale record and both delete it, and two concurrent misses
for the same domain may both go upstream. Inserts are checked again under the
exclusive lock, so only the first completed write for a domain is kept.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .errors import RecordNotFound, RecordOutdated
from .records import DEFAULT_MAX_AGE, Record, normalize_domain, utc_now
from .stores.base import RecordStore
from .utils.rwlock import RWLock

logger = logging.getLogger("buoy.cache")


class RecordCache:
    """Brief: TTL cache manager wrapping a RecordStore.

    Inputs (constructor):
      - store: RecordStore holding the records.
      - max_age: staleness window; defaults to 24 hours.
      - clock: zero-argument callable returning an aware datetime (tests
        inject a fixed clock).

    Outputs:
      - RecordCache instance, shared by every query handler of one server.

    Example:
      >>> from buoy.stores.memory import InMemoryRecordStore
      >>> cache = RecordCache(InMemoryRecordStore())
      >>> cache.write_record("example.com.", "192.0.2.1")
      True
      >>> cache.read_record("EXAMPLE.com")
      '192.0.2.1'
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.max_age = max_age
        self._clock = clock or utc_now
        self._lock = RWLock()

    def read_record(self, domain: str) -> str:
        """Brief: Return the cached address for domain.

        Inputs:
          - domain: domain name in any case, with or without trailing dot.

        Outputs:
          - str: address of a fresh record.

        Raises:
          - RecordNotFound: nothing is stored for domain.
          - RecordOutdated: the stored record was stale and has just been
            removed from the store.
          - StoreError: the store could not be read.
        """

        key = normalize_domain(domain)
        with self._lock.read_locked():
            record = self.store.get(key)

        if record.is_stale(self._clock(), self.max_age):
            with self._lock.write_locked():
                self.store.remove(key)
            logger.debug("%s was outdated and has been removed", key)
            raise RecordOutdated(f"cached record for {key} is outdated")

        return record.address

    def write_record(self, domain: str, address: str) -> bool:
        """Brief: Store the first resolution of domain.

        Inputs:
          - domain: domain name.
          - address: textual address returned by the upstream resolver.

        Outputs:
          - bool: True when a new record was written, False when any record
            (fresh or stale) already existed. Existing records are never
            overwritten and their timestamp is never refreshed.

        Raises:
          - StoreError when the store rejects the write.
        """

        key = normalize_domain(domain)
        with self._lock.read_locked():
            try:
                self.store.get(key)
            except RecordNotFound:
                exists = False
            else:
                exists = True

        if exists:
            logger.debug("%s is already cached", key)
            return False

        with self._lock.write_locked():
            # Another handler may have committed between the two holds.
            try:
                self.store.get(key)
            except RecordNotFound:
                record = Record(domain=key, address=address, resolved_at=self._clock())
                self.store.set(key, record)
            else:
                logger.debug("%s was cached concurrently; keeping first write", key)
                return False
        logger.debug("%s is cached as %s", key, address)
        return True

    def remove_record(self, domain: str) -> None:
        """Brief: Remove domain from the store; absent domains are ignored.

        Inputs:
          - domain: domain name.

        Outputs:
          - None.
        """

        key = normalize_domain(domain)
        with self._lock.write_locked():
            self.store.remove(key)
        logger.debug("%s removed from cache", key)

    def list_records(self) -> List[Record]:
        """Return every stored record without applying the staleness policy."""

        with self._lock.read_locked():
            return self.store.get_all()
