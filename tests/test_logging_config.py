"""
Brief: Tests for buoy.config.logging_config (handlers, component levels, uvicorn routing).

Inputs:
  - None

Outputs:
  - None
"""

import logging
import logging.handlers
import re
from pathlib import Path

import pytest

from buoy.config.logging_config import (
    TaggedFormatter,
    build_handlers,
    init_logging,
    parse_level,
    route_uvicorn_logging,
)


pytestmark = pytest.mark.usefixtures("restore_root_logger")


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


def test_init_logging_adds_stderr_handler():
    init_logging({"level": "debug"})
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, TaggedFormatter)


def test_parse_level_defaults():
    assert parse_level("WARN") == logging.WARNING
    assert parse_level(" crit ") == logging.CRITICAL
    assert parse_level("chatty") == logging.INFO
    assert parse_level(None, logging.ERROR) == logging.ERROR


def test_init_logging_without_sinks_has_no_handlers():
    init_logging({"level": "chatty", "stderr": False})
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert root.handlers == []


def test_init_logging_file_handler_writes(tmp_path):
    """
    Brief: init_logging creates the log directory and writes formatted entries.

    Inputs:
      - tmp_path: pytest temporary directory

    Outputs:
      - None: Asserts file created and contains a UTC timestamp and tag
    """
    log_path = tmp_path / "logs" / "buoy.log"
    init_logging({"level": "info", "stderr": False, "file": str(log_path)})
    logging.getLogger("buoy.cache").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()

    content = Path(log_path).read_text()
    assert "[info] buoy.cache: file message" in content
    assert re.match(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z ", content)


def test_component_levels_apply_to_buoy_loggers(tmp_path):
    """
    Brief: logging.loggers raises or lowers single buoy components.

    Inputs:
      - tmp_path: pytest temporary directory

    Outputs:
      - None: Asserts upstream debug lines pass while webserver info is muted
    """
    log_path = tmp_path / "buoy.log"
    init_logging(
        {
            "level": "info",
            "stderr": False,
            "file": str(log_path),
            "loggers": {"upstream": "debug", "webserver": "warn"},
        }
    )
    logging.getLogger("buoy.upstream").debug("querying upstream")
    logging.getLogger("buoy.webserver").info("request served")
    logging.getLogger("buoy.cache").debug("cache detail")
    for h in logging.getLogger().handlers:
        h.flush()

    content = log_path.read_text()
    assert "[debug] buoy.upstream: querying upstream" in content
    assert "request served" not in content
    assert "cache detail" not in content


def test_reinit_clears_component_levels():
    init_logging({"stderr": False, "loggers": {"store": "error"}})
    assert logging.getLogger("buoy.store").level == logging.ERROR

    init_logging({"stderr": False})
    assert logging.getLogger("buoy.store").level == logging.NOTSET


def test_uvicorn_loggers_are_routed_to_root_handlers():
    """
    Brief: Handlers uvicorn installed are dropped and its records propagate.

    Inputs:
      - None

    Outputs:
      - None: Asserts uvicorn.access reaches the root handler
    """
    access = logging.getLogger("uvicorn.access")
    stray = logging.NullHandler()
    access.addHandler(stray)
    access.propagate = False

    init_logging({"stderr": False})
    capture = _ListHandler()
    logging.getLogger().addHandler(capture)

    assert stray not in access.handlers
    assert access.propagate is True
    access.warning("GET /api/cache 500")
    assert capture.messages == ["GET /api/cache 500"]


def test_route_uvicorn_logging_is_repeatable():
    route_uvicorn_logging()
    route_uvicorn_logging()
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        assert logging.getLogger(name).handlers == []


def test_syslog_handler_targets(monkeypatch):
    created = []

    class DummySysLogHandler(logging.Handler):
        LOG_USER = 8
        LOG_DAEMON = 24

        def __init__(self, address=None, facility=None):
            super().__init__()
            created.append((address, facility))

        def emit(self, record):
            pass

    monkeypatch.setattr(logging.handlers, "SysLogHandler", DummySysLogHandler)

    handlers, problems = build_handlers({"stderr": False, "syslog": True})
    assert created == [("/dev/log", 8)]
    assert problems == []
    assert isinstance(handlers[0].formatter, TaggedFormatter)

    build_handlers({"stderr": False, "syslog": {"address": "/tmp/log", "facility": "daemon"}})
    build_handlers({"stderr": False, "syslog": {"facility": "nonsense"}})
    assert created[1:] == [("/tmp/log", 24), ("/dev/log", 8)]


def test_syslog_failure_is_reported_after_setup(monkeypatch):
    class FailingSysLogHandler:
        LOG_USER = 8

        def __init__(self, *a, **kw):
            raise OSError("no syslog")

    monkeypatch.setattr(logging.handlers, "SysLogHandler", FailingSysLogHandler)
    capture = _ListHandler()
    main_logger = logging.getLogger("buoy.main")
    main_logger.addHandler(capture)
    try:
        init_logging({"stderr": False, "syslog": True})
    finally:
        main_logger.removeHandler(capture)

    assert logging.getLogger().handlers == []
    assert len(capture.messages) == 1
    assert "Failed to configure syslog at /dev/log" in capture.messages[0]


def test_tagged_formatter_output():
    rec = logging.LogRecord("buoy.server", logging.ERROR, __file__, 1, "m", (), None)
    rec.created = 0.0
    assert TaggedFormatter().format(rec) == "1970-01-01T00:00:00Z [error] buoy.server: m"

    rec2 = logging.LogRecord("n2", logging.WARNING, __file__, 2, "m2", (), None)
    assert TaggedFormatter(with_time=False).format(rec2) == "[warn] n2: m2"

    rec3 = logging.LogRecord("n3", 25, __file__, 3, "m3", (), None)
    assert TaggedFormatter(with_time=False).format(rec3).startswith("[lvl25]")
