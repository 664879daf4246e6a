from __future__ import annotations

import logging

from dnslib import QTYPE, DNSError, DNSRecord

from ..errors import LookupFailed, UpstreamTransportError
from .transports import udp as udp_transport

logger = logging.getLogger("buoy.upstream")

SUPPORTED_QTYPES = (QTYPE.A, QTYPE.AAAA)


class UpstreamResolver:
    """Brief: Client for the single upstream resolver.

    Inputs (constructor):
      - host: upstream resolver address, e.g. "8.8.8.8".
      - port: upstream UDP port, default 53.

    Outputs:
      - UpstreamResolver instance. Each lookup() performs exactly one
        exchange with the fixed transport timeout; there is no retry and no
        failover.

    Example:
      >>> resolver = UpstreamResolver("8.8.8.8", 53)
      >>> resolver.address
      '8.8.8.8:53'
    """

    def __init__(self, host: str, port: int = 53) -> None:
        self.host = str(host)
        self.port = int(port)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def lookup(self, domain: str, qtype: int) -> str:
        """Brief: Resolve domain for an A or AAAA query.

        Inputs:
          - domain: name to resolve.
          - qtype: QTYPE.A or QTYPE.AAAA.

        Outputs:
          - str: textual address from the first answer record.

        Raises:
          - UpstreamTransportError: the UDP exchange itself failed.
          - LookupFailed: the reply was unparseable, did not answer this
            query (wrong ID or QR unset), had no answers, or its
            first answer was not of the requested type.
          - ValueError: qtype is not A or AAAA.
        """

        if qtype not in SUPPORTED_QTYPES:
            raise ValueError(f"unsupported upstream query type {qtype}")
        type_name = QTYPE[qtype]

        query = DNSRecord.question(domain, type_name)
        logger.debug("Querying %s for %s %s", self.address, type_name, domain)
        try:
            wire = udp_transport.udp_query(self.host, self.port, query.pack())
        except udp_transport.UDPError as exc:
            raise UpstreamTransportError(
                f"could not reach {self.address} for {type_name} {domain}: {exc}"
            ) from exc

        try:
            reply = DNSRecord.parse(wire)
        except DNSError as exc:
            raise LookupFailed(
                f"unparseable reply from {self.address} for {domain}: {exc}"
            ) from exc

        if reply.header.id != query.header.id or not reply.header.qr:
            raise LookupFailed(
                f"mismatched reply from {self.address} for {domain} "
                f"(id {reply.header.id}, expected {query.header.id})"
            )

        if not reply.rr:
            raise LookupFailed(f"no {type_name} record found for {domain}")

        first = reply.rr[0]
        if first.rtype != qtype:
            raise LookupFailed(
                f"no {type_name} record found for {domain} "
                f"(first answer is {QTYPE.get(first.rtype, first.rtype)})"
            )

        return str(first.rdata)
