"""JSON Schema-based validation for buoy YAML configuration.

The schema document ships inside the package as ``config-schema.json`` next to
this module.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger("buoy.config")

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_VAR_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")


def _expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand ``${KEY}`` placeholders from cfg['variables'] and drop the group.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - A string value that is exactly ``${KEY}`` is replaced by the variable's
        YAML value (int, list, mapping, ...).
      - ``${KEY}`` occurrences inside longer strings are replaced by the
        variable's text form.
      - Unknown placeholders are left untouched.
      - Variables may not reference other variables.
    """

    variables = cfg.pop("variables", None)
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.variables must be a mapping when present")
    for k in variables:
        if not isinstance(k, str) or not _VAR_NAME.fullmatch(k):
            raise ValueError(
                f"config.variables key {k!r} must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*"
            )

    def _text(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return "null"
        if isinstance(value, (int, float, str)):
            return str(value)
        return json.dumps(value)

    def _expand(obj: Any) -> Any:
        if isinstance(obj, str):
            whole = _VAR_PATTERN.fullmatch(obj)
            if whole and whole.group(1) in variables:
                return copy.deepcopy(variables[whole.group(1)])
            return _VAR_PATTERN.sub(
                lambda m: _text(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
                obj,
            )
        if isinstance(obj, list):
            return [_expand(item) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand(v) for k, v in obj.items()}
        return obj

    for top_key in list(cfg.keys()):
        cfg[top_key] = _expand(cfg[top_key])


def get_default_schema_path() -> Path:
    """Return the path of the JSON Schema bundled with the package."""

    return Path(__file__).resolve().parent / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Expand variables in cfg and validate it against the JSON Schema.

    Inputs:
      - cfg: Dict loaded from YAML (mutated: variables are expanded and the
        ``variables`` group removed).
      - schema_path: Optional explicit schema path.
      - config_path: Optional YAML path, used only in error messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when validation fails; the message lists every error.

    Example:
      >>> validate_config({"listen": {"host": "127.0.0.1", "port": 1773}})
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    _expand_variables(cfg)

    validator = Draft202012Validator(_load_schema(schema_path))
    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra = [e for e in all_errors if e.validator == "additionalProperties"]
    other = [e for e in all_errors if e.validator != "additionalProperties"]

    if other:
        raise ValueError(_format_errors(other + extra, config_path=config_path))

    message = _format_errors(extra, config_path=config_path)
    if unknown_keys == "warn":
        logger.warning(message)
    elif unknown_keys == "error":
        raise ValueError(message)
    return None
