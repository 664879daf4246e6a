"""Query dispatcher: turns one inbound DNS message into one reply.

The dispatcher walks the question section in order and answers each question
according to its type:

  - A:     cache first; on a miss or a stale entry, resolve upstream and cache
           the first resolution.
  - AAAA:  always resolved upstream, never cached.
  - other: QueryNotImplemented; the remaining questions are not processed.

A single response code is derived once processing finishes or aborts.
"""

from __future__ import annotations

import logging
import struct
from typing import Optional

from dnslib import AAAA, CLASS, OPCODE, QTYPE, RCODE, RR, A, DNSError, DNSHeader, DNSRecord

from ..cache import RecordCache
from ..errors import (
    LookupFailed,
    QueryNotImplemented,
    RecordNotFound,
    RecordOutdated,
    StoreError,
)
from .upstream import UpstreamResolver

logger = logging.getLogger("buoy.server")

# Advertised TTL for every answer, independent of remaining cache freshness.
ANSWER_TTL = 86400

_RDATA_TYPES = {QTYPE.A: A, QTYPE.AAAA: AAAA}


def qtype_name(qtype: int) -> str:
    return QTYPE.get(qtype, f"TYPE{qtype}")


def form_rr(name, address: str, qtype: int) -> RR:
    """Brief: Build one answer record.

    Inputs:
      - name: owner name (str or DNSLabel), copied from the question.
      - address: textual IPv4 (A) or IPv6 (AAAA) address.
      - qtype: QTYPE.A or QTYPE.AAAA.

    Outputs:
      - dnslib.RR with class IN and TTL ANSWER_TTL.

    Raises:
      - ValueError for other qtypes or an address dnslib cannot encode.

    Example:
      >>> str(form_rr("domain.test.", "192.168.0.1", QTYPE.A).rdata)
      '192.168.0.1'
    """

    try:
        rdata_cls = _RDATA_TYPES[qtype]
    except KeyError:
        raise ValueError(f"cannot form answer for {qtype_name(qtype)}") from None
    return RR(
        rname=name,
        rtype=qtype,
        rclass=CLASS.IN,
        ttl=ANSWER_TTL,
        rdata=rdata_cls(address),
    )


def rcode_for(error: Optional[BaseException]) -> int:
    """Map the classification of a processed message to its response code."""

    if error is None:
        return RCODE.NOERROR
    if isinstance(error, QueryNotImplemented):
        return RCODE.NOTIMP
    return RCODE.SERVFAIL


class QueryDispatcher:
    """Brief: Protocol state machine shared by every UDP handler thread.

    Inputs (constructor):
      - cache: RecordCache used for A lookups and writes.
      - resolver: UpstreamResolver used on misses and for every AAAA query.

    Outputs:
      - QueryDispatcher instance.

    Example:
      >>> from buoy.cache import RecordCache
      >>> from buoy.stores.memory import InMemoryRecordStore
      >>> dispatcher = QueryDispatcher(
      ...     RecordCache(InMemoryRecordStore()), UpstreamResolver("8.8.8.8")
      ... )
    """

    def __init__(self, cache: RecordCache, resolver: UpstreamResolver) -> None:
        self.cache = cache
        self.resolver = resolver

    def _resolve_a(self, name: str) -> str:
        try:
            address = self.cache.read_record(name)
        except RecordNotFound:
            logger.debug("%s is not cached", name)
            address = self.resolver.lookup(name, QTYPE.A)
        except RecordOutdated as outdated:
            try:
                address = self.resolver.lookup(name, QTYPE.A)
            except LookupFailed as exc:
                raise outdated from exc
        else:
            logger.debug("%s is cached", name)
            return address

        try:
            self.cache.write_record(name, address)
        except StoreError as exc:
            logger.warning("Could not cache %s: %s", name, exc)
        return address

    def parse_query(self, reply: DNSRecord) -> None:
        """Brief: Answer every question of reply in place.

        Inputs:
          - reply: DNSRecord whose question section mirrors the request.

        Outputs:
          - None; appends answer records to reply.

        Raises:
          - QueryNotImplemented: a question has an unsupported type.
          - RecordOutdated: a stale A record could not be re-resolved.
          - LookupFailed: upstream produced no usable answer.
          - Any unexpected error from the store or codec.
        """

        for q in reply.questions:
            name = str(q.qname)
            qtype = q.qtype
            type_name = qtype_name(qtype)
            logger.debug("%s query for %s", type_name, name)

            if qtype == QTYPE.A:
                address = self._resolve_a(name)
            elif qtype == QTYPE.AAAA:
                address = self.resolver.lookup(name, QTYPE.AAAA)
            else:
                logger.info("Unsupported %s query for %s", type_name, name)
                raise QueryNotImplemented(f"{type_name} is not supported yet")

            reply.add_answer(form_rr(q.qname, address, qtype))
            logger.debug("%s query for %s was processed successfully", type_name, name)

    def handle_request(self, request: DNSRecord) -> DNSRecord:
        """Brief: Build the reply for a parsed request.

        Inputs:
          - request: parsed DNSRecord.

        Outputs:
          - DNSRecord reply carrying the request ID, every question, and
            either the collected answers (NOERROR) or none (NOTIMP/SERVFAIL).
        """

        reply = request.reply(ra=1, aa=0)
        reply.questions = list(request.questions)

        if request.header.opcode != OPCODE.QUERY:
            logger.debug(
                "Ignoring opcode %s from request %d",
                OPCODE.get(request.header.opcode, request.header.opcode),
                request.header.id,
            )
            return reply

        error: Optional[BaseException] = None
        try:
            self.parse_query(reply)
        except QueryNotImplemented as exc:
            logger.info("Is not implemented: %s", exc)
            error = exc
        except Exception as exc:
            logger.warning("Server failed: %s", exc)
            error = exc

        if error is not None:
            reply.rr = []
        reply.header.rcode = rcode_for(error)
        return reply

    def handle_query_bytes(self, data: bytes) -> Optional[bytes]:
        """Brief: Resolve one wire-format query and return the wire reply.

        Inputs:
          - data: datagram payload.

        Outputs:
          - bytes: packed reply.
          - None only when data is too short to carry a message ID, in which
            case there is nothing to answer.
        """

        try:
            request = DNSRecord.parse(data)
        except DNSError as exc:
            return self._malformed_reply(data, exc)

        try:
            return self.handle_request(request).pack()
        except Exception:
            logger.exception("Failed to build reply for request %d", request.header.id)
            r = request.reply(ra=1, aa=0)
            r.header.rcode = RCODE.SERVFAIL
            return r.pack()

    def _malformed_reply(self, data: bytes, exc: Exception) -> Optional[bytes]:
        if len(data) < 2:
            logger.warning("Dropping %d-byte datagram without a message ID", len(data))
            return None
        (req_id,) = struct.unpack("!H", data[:2])
        logger.warning("Malformed query %d: %s", req_id, exc)
        header = DNSHeader(id=req_id, qr=1, ra=1, rcode=RCODE.SERVFAIL)
        return DNSRecord(header).pack()
