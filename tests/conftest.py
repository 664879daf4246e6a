"""
Brief: Global pytest configuration enforcing per-test 10s timeout, plus shared
fixtures for stores, clocks and a stubbed upstream resolver.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure 'src' is on sys.path so 'buoy' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnslib import AAAA, CNAME, QTYPE, RR, A, DNSRecord  # noqa: E402

from buoy.config.logging_config import COMPONENTS, UVICORN_LOGGERS  # noqa: E402
from buoy.records import normalize_domain  # noqa: E402
from buoy.servers.transports import udp as udp_transport  # noqa: E402
from buoy.stores.memory import InMemoryRecordStore  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


class FakeClock:
    """Callable clock returning a settable aware datetime."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubUpstream:
    """
    Brief: Stand-in for buoy.servers.transports.udp.udp_query.

    Inputs:
      - answers: mapping of (domain, qtype name) -> list of RR rdata objects.

    Outputs:
      - Callable with the udp_query signature that records every call and
        answers from the mapping. Unknown names get an empty NOERROR reply.
        Setting ``error`` makes every call raise it instead; ``tamper`` is
        called with each reply DNSRecord before it is packed.
    """

    def __init__(self) -> None:
        self.answers = {}
        self.calls = []
        self.error = None
        self.raw_reply = None
        self.tamper = None

    def add(self, domain, qtype, *rdatas):
        self.answers[(normalize_domain(domain), qtype)] = list(rdatas)

    def __call__(self, host, port, query, *, timeout_ms=2000, source_ip=None):
        request = DNSRecord.parse(query)
        name = normalize_domain(str(request.q.qname))
        qtype = QTYPE[request.q.qtype]
        self.calls.append((name, qtype))
        if self.error is not None:
            raise self.error
        if self.raw_reply is not None:
            return self.raw_reply
        reply = request.reply()
        for rdata in self.answers.get((name, qtype), []):
            rtype = {A: QTYPE.A, AAAA: QTYPE.AAAA, CNAME: QTYPE.CNAME}[type(rdata)]
            reply.add_answer(RR(request.q.qname, rtype, rdata=rdata, ttl=60))
        if self.tamper is not None:
            self.tamper(reply)
        return reply.pack()


@pytest.fixture
def clock():
    """Fixed clock starting at 2024-01-01T00:00:00Z."""

    return FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def memory_store():
    return InMemoryRecordStore()


@pytest.fixture
def upstream(monkeypatch):
    """
    Brief: Replace the UDP transport with a StubUpstream for the test.

    Inputs:
      - monkeypatch: pytest fixture

    Outputs:
      - StubUpstream instance
    """
    stub = StubUpstream()
    monkeypatch.setattr(udp_transport, "udp_query", stub)
    return stub


@pytest.fixture
def restore_root_logger():
    """
    Brief: Put the root logger's handlers and level back after the test, along
    with the buoy component and uvicorn logger levels init_logging touches.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    names = [f"buoy.{c}" for c in COMPONENTS] + list(UVICORN_LOGGERS)
    saved = {
        name: (logging.getLogger(name).level, logging.getLogger(name).propagate)
        for name in names
    }
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    for name, (lvl, propagate) in saved.items():
        logging.getLogger(name).setLevel(lvl)
        logging.getLogger(name).propagate = propagate
