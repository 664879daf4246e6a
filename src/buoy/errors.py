"""Exception taxonomy shared by the cache, stores, upstream client and dispatcher.

Every exception raised while answering a query is collapsed by
buoy.servers.dispatcher onto one of three response codes:

  - QueryNotImplemented      -> NOTIMP
  - anything else            -> SERVFAIL
  - no exception             -> NOERROR

RecordNotFound and RecordOutdated are internal signals used by the cache
manager; clients never observe them directly.
"""

from __future__ import annotations


class BuoyError(Exception):
    """Base class for all buoy errors."""


class QueryNotImplemented(BuoyError):
    """Brief: The query carries a record type the forwarder does not serve.

    Inputs:
      - message: description including the offending type name.

    Outputs:
      - Exception instance; terminal for the whole message.
    """


class RecordNotFound(BuoyError, KeyError):
    """No record is stored for the requested domain."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable in logs.
        return Exception.__str__(self)


class RecordOutdated(BuoyError):
    """A stored record was past its staleness window and has been removed."""


class LookupFailed(BuoyError):
    """Brief: The upstream resolver produced no usable answer.

    Inputs:
      - message: description of what was missing or mismatched.

    Outputs:
      - Exception instance; single attempt, never retried.
    """


class UpstreamTransportError(LookupFailed):
    """The exchange with the upstream resolver failed at the socket level."""


class StoreError(BuoyError):
    """The durable record store could not complete an operation."""
