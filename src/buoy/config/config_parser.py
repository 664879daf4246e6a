"""Configuration parsing and normalization helpers for buoy.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI
    - JSON Schema validation (see config_schema.validate_config)
    - normalization helpers for the listener, upstream, cache and webserver
      sections

Inputs:
  - YAML config dicts and paths

Outputs:
  - Normalized config values
"""

from __future__ import annotations

import os
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..records import DEFAULT_MAX_AGE
from .config_schema import validate_config

DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 1773
DEFAULT_UPSTREAM = ("8.8.8.8", 53)
DEFAULT_WEB_HOST = "127.0.0.1"
DEFAULT_WEB_PORT = 8053


def _is_var_key(key: str) -> bool:
    """Return True when key is ALL_UPPERCASE and matches [A-Z_][A-Z0-9_]*."""

    return bool(key) and bool(re.fullmatch(r"[A-Z_][A-Z0-9_]*", key))


def _parse_yaml_value(text: str) -> Any:
    """Parse a CLI/environment variable value as YAML, falling back to the raw text."""

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['variables'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['variables'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file variables.
      - Only environment names already declared under ``variables`` are
        picked up, so unrelated process environment never leaks in.

    Example:
      >>> cfg = {'variables': {'PORT': 1773}}
      >>> parse_config_variables(cfg, cli_vars=['PORT=5353'], environ={})['PORT']
      5353
    """

    base = cfg.get("variables")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.variables must be a mapping when present")

    env = os.environ if environ is None else environ
    for k in list(merged):
        if isinstance(k, str) and _is_var_key(k) and k in env:
            merged[k] = _parse_yaml_value(str(env[k]))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    if merged or base is not None:
        cfg["variables"] = merged
    return merged


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, variable-merge, and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).
      - environ: Optional environment mapping for variable overrides.

    Outputs:
      - dict: Parsed configuration mapping.

    Raises:
      - ValueError: When the YAML is invalid, schema validation fails, or
        variables are invalid.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    validate_config(cfg, config_path=config_path)
    return cfg


def normalize_listen_config(cfg: Dict[str, Any]) -> Tuple[str, int]:
    """Return the (host, port) the UDP listener binds to."""

    listen = cfg.get("listen") or {}
    return (
        str(listen.get("host", DEFAULT_LISTEN_HOST)),
        int(listen.get("port", DEFAULT_LISTEN_PORT)),
    )


def normalize_upstream_config(cfg: Dict[str, Any]) -> Tuple[str, int]:
    """Brief: Normalize the single upstream resolver definition.

    Inputs:
      - cfg: dict containing parsed YAML. Supports:
        - cfg['upstream'] as a mapping {'host': str, 'port': int}
        - cfg['upstream'] as a "host:port" or "host" string; bracketed
          IPv6 literals ("[2001:db8::1]:53") are accepted

    Outputs:
      - (host, port). Defaults: 8.8.8.8, 53.

    Raises:
      - ValueError: For invalid types or ports.

    Example:
      >>> normalize_upstream_config({"upstream": "1.1.1.1:5353"})
      ('1.1.1.1', 5353)
    """

    raw = cfg.get("upstream")
    host, port = DEFAULT_UPSTREAM

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            addr, _, rest = text[1:].partition("]")
            host = addr
            if rest.startswith(":"):
                port = int(rest[1:])
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
            port = int(port_text)
        else:
            host = text
    elif isinstance(raw, dict):
        if "host" not in raw:
            raise ValueError("config.upstream must include 'host'")
        host = str(raw["host"])
        port = int(raw.get("port", 53))
    elif raw is not None:
        raise ValueError("config.upstream must be a mapping or a host:port string")

    if not host:
        raise ValueError("config.upstream host must not be empty")
    if not 0 < port < 65536:
        raise ValueError(f"config.upstream port out of range: {port}")

    return host, port


def get_cache_max_age(cfg: Dict[str, Any]) -> timedelta:
    """Return the cache staleness window (default 24 hours)."""

    cache_cfg = cfg.get("cache") or {}
    seconds = cache_cfg.get("max_age_seconds")
    if seconds is None:
        return DEFAULT_MAX_AGE
    return timedelta(seconds=int(seconds))


def normalize_webserver_config(cfg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Brief: Normalize the admin webserver section.

    Inputs:
      - cfg: parsed configuration mapping.

    Outputs:
      - None when the webserver is disabled or absent; otherwise a dict with
        host, port, username, password and realm.

    Raises:
      - ValueError: the webserver is enabled without credentials.
    """

    web_cfg = cfg.get("webserver")
    if not isinstance(web_cfg, dict):
        return None
    if not bool(web_cfg.get("enabled", True)):
        return None

    auth = web_cfg.get("auth") or {}
    username = auth.get("username")
    password = auth.get("password")
    if not username or not password:
        raise ValueError("webserver.auth.username and webserver.auth.password are required")

    return {
        "host": str(web_cfg.get("host", DEFAULT_WEB_HOST)),
        "port": int(web_cfg.get("port", DEFAULT_WEB_PORT)),
        "username": str(username),
        "password": str(password),
        "realm": str(auth.get("realm") or "buoy"),
    }
