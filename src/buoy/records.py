"""Record model persisted by the record stores.

A Record maps one canonical domain name to the address it resolved to and the
moment it was first resolved. Records are serialized as small JSON documents:

    {"domain": "example.com.", "address": "93.184.216.34",
     "time": "2024-01-01T00:00:00+00:00"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

# Records older than this are treated as stale on the next read.
DEFAULT_MAX_AGE = timedelta(hours=24)


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


def normalize_domain(name: Any) -> str:
    """Brief: Canonicalize a domain name for use as a store key.

    Inputs:
      - name: str or dnslib.DNSLabel (anything with a sensible str()).

    Outputs:
      - str: lower-cased name with exactly one trailing dot. Empty input
        yields the root name ".".

    Example:
      >>> normalize_domain("Example.COM")
      'example.com.'
      >>> normalize_domain("example.com.")
      'example.com.'
    """

    text = str(name or "").strip().lower().rstrip(".")
    return text + "." if text else "."


@dataclass(frozen=True)
class Record:
    """Brief: One cached A resolution.

    Inputs:
      - domain: canonical FQDN (see normalize_domain).
      - address: textual IPv4/IPv6 address.
      - resolved_at: timezone-aware datetime of the first successful resolution.

    Outputs:
      - Record instance.
    """

    domain: str
    address: str
    resolved_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.resolved_at

    def is_stale(self, now: datetime, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
        """Return True when the record is at or past max_age at time now."""

        return self.age(now) >= max_age

    def to_dict(self) -> Dict[str, str]:
        return {
            "domain": self.domain,
            "address": self.address,
            "time": self.resolved_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        """Brief: Build a Record from its serialized mapping.

        Inputs:
          - data: mapping with 'domain', 'address' and 'time' keys.

        Outputs:
          - Record; naive timestamps are interpreted as UTC.

        Raises:
          - KeyError / ValueError / TypeError for malformed input.
        """

        resolved_at = datetime.fromisoformat(str(data["time"]))
        if resolved_at.tzinfo is None:
            resolved_at = resolved_at.replace(tzinfo=timezone.utc)
        return cls(
            domain=str(data["domain"]),
            address=str(data["address"]),
            resolved_at=resolved_at,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "Record":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("serialized record must be a JSON object")
        return cls.from_dict(data)
