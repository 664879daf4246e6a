"""Process-wide logging for buoy.

Every component logs under ``buoy.<component>``. init_logging() installs the
configured handlers on the root logger, applies per-component levels, and
routes uvicorn's loggers through the same handlers so admin API lines share
the DNS server's format.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

LEVEL_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

# Suffixes accepted under logging.loggers; each maps to the "buoy.<name>" logger.
COMPONENTS = ("main", "config", "server", "upstream", "cache", "store", "webserver")

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

SYSLOG_SOCKET = "/dev/log"


def parse_level(value: Any, default: int = logging.INFO) -> int:
    """Map a config level name (any case) to a logging level; unknown names give default."""

    return LEVELS.get(str(value).strip().lower(), default) if value is not None else default


class TaggedFormatter(logging.Formatter):
    """Brief: Formatter emitting ``<UTC time> [level] logger: message``.

    Inputs (constructor):
      - with_time: False drops the timestamp (syslog stamps records itself).

    Outputs:
      - Formatter instance; unknown levels are tagged ``[lvlN]``.

    Example:
      >>> rec = logging.LogRecord("buoy.cache", logging.INFO, __file__, 1, "hit", (), None)
      >>> TaggedFormatter(with_time=False).format(rec)
      '[info] buoy.cache: hit'
    """

    converter = time.gmtime

    def __init__(self, with_time: bool = True) -> None:
        fmt = "%(level_tag)s %(name)s: %(message)s"
        if with_time:
            fmt = "%(asctime)s " + fmt
        super().__init__(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        record.level_tag = LEVEL_TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def _syslog_target(syslog_cfg: Any) -> Tuple[str, int]:
    facilities = logging.handlers.SysLogHandler
    if not isinstance(syslog_cfg, Mapping):
        return SYSLOG_SOCKET, facilities.LOG_USER
    name = str(syslog_cfg.get("facility", "user")).upper()
    facility = getattr(facilities, f"LOG_{name}", facilities.LOG_USER)
    return str(syslog_cfg.get("address", SYSLOG_SOCKET)), facility


def build_handlers(cfg: Mapping[str, Any]) -> Tuple[List[logging.Handler], List[str]]:
    """Brief: Create the handlers a logging config asks for.

    Inputs:
      - cfg: the ``logging`` config mapping.

    Outputs:
      - (handlers, problems): handlers ready to attach, plus messages for
        optional sinks that could not be opened. Only syslog failures are
        tolerated; an unwritable log file raises OSError.
    """

    handlers: List[logging.Handler] = []
    problems: List[str] = []

    if cfg.get("stderr", True):
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(TaggedFormatter())
        handlers.append(stream)

    log_file = cfg.get("file")
    if isinstance(log_file, str) and log_file.strip():
        path = os.path.abspath(os.path.expanduser(log_file.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(TaggedFormatter())
        handlers.append(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        address, facility = _syslog_target(syslog_cfg)
        try:
            syslog = logging.handlers.SysLogHandler(address=address, facility=facility)
        except (OSError, ValueError) as exc:
            problems.append(f"Failed to configure syslog at {address}: {exc}")
        else:
            syslog.setFormatter(TaggedFormatter(with_time=False))
            handlers.append(syslog)

    return handlers, problems


def route_uvicorn_logging() -> None:
    """Drop handlers uvicorn installed and let its records reach the root handlers."""

    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        for handler in list(uv_logger.handlers):
            uv_logger.removeHandler(handler)
        uv_logger.propagate = True


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Configure process logging from the ``logging`` config section.

    Args:
        cfg: Mapping with optional keys:
            - level: root level name (default: info)
            - stderr: log to stderr (default: True)
            - file: log file path; parent directories are created
            - syslog: True, or a mapping with address and facility
            - loggers: component -> level, e.g. {"upstream": "debug"};
              component is one of COMPONENTS

    Example config:
        {
            "level": "info",
            "file": "./var/buoy.log",
            "loggers": {"upstream": "debug", "webserver": "warn"}
        }
    """
    cfg = cfg or {}

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(parse_level(cfg.get("level")))

    handlers, problems = build_handlers(cfg)
    for handler in handlers:
        root.addHandler(handler)

    for component in COMPONENTS:
        logging.getLogger(f"buoy.{component}").setLevel(logging.NOTSET)
    for component, level in (cfg.get("loggers") or {}).items():
        logging.getLogger(f"buoy.{component}").setLevel(parse_level(level))

    route_uvicorn_logging()
    logging.captureWarnings(True)

    for problem in problems:
        logging.getLogger("buoy.main").warning("%s", problem)
