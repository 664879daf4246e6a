from __future__ import annotations

from typing import List

from ..records import Record


def store_aliases(*aliases: str):
    """Brief: Decorator to set aliases on a record store class for discovery.

    Inputs:
      - *aliases: Variable number of alias strings.

    Outputs:
      - Callable that applies the aliases to a RecordStore subclass and returns it.

    Example:
      >>> from buoy.stores.base import RecordStore, store_aliases
      >>> @store_aliases('scratch')
      ... class ScratchStore(RecordStore):
      ...     pass
      >>> ScratchStore.aliases
      ('scratch',)
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap


class RecordStore:
    """Base class for key/value stores holding resolved records.

    Brief:
      RecordStore is the storage capability used by buoy.cache.RecordCache and
      by the admin HTTP surface. Keys are canonical domain names (see
      buoy.records.normalize_domain); values are Record instances. Subclasses
      must implement get/set/remove/get_all.

    Inputs:
      - None.

    Outputs:
      - RecordStore instance.

    Notes:
      - Stores do not enforce any staleness policy; that is RecordCache's job.
      - Stores must be safe to call from multiple threads.
    """

    aliases: tuple[str, ...] = ()

    def get(self, domain: str) -> Record:
        """Brief: Fetch the record stored under domain.

        Inputs:
          - domain: canonical domain name.

        Outputs:
          - Record.

        Raises:
          - buoy.errors.RecordNotFound when no record exists.
          - buoy.errors.StoreError when the stored value cannot be read.
        """

        raise NotImplementedError("RecordStore.get() must be implemented by a subclass")

    def set(self, domain: str, record: Record) -> None:
        """Brief: Store record under domain, replacing any existing value.

        Inputs:
          - domain: canonical domain name.
          - record: Record to persist.

        Outputs:
          - None.

        Raises:
          - buoy.errors.StoreError on write failure.
        """

        raise NotImplementedError("RecordStore.set() must be implemented by a subclass")

    def remove(self, domain: str) -> None:
        """Brief: Delete the record stored under domain.

        Inputs:
          - domain: canonical domain name.

        Outputs:
          - None. Removing an absent key is not an error.
        """

        raise NotImplementedError(
            "RecordStore.remove() must be implemented by a subclass"
        )

    def get_all(self) -> List[Record]:
        """Brief: Return every stored record.

        Inputs:
          - None.

        Outputs:
          - list[Record] ordered by domain.
        """

        raise NotImplementedError(
            "RecordStore.get_all() must be implemented by a subclass"
        )

    def close(self) -> None:
        """Release any resources held by the store. The default is a no-op."""

        return None
