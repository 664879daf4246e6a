from __future__ import annotations

import difflib
import importlib
import re
from functools import lru_cache
from typing import Dict, Optional, Type

from .base import RecordStore
from .memory import InMemoryRecordStore
from .sqlite_store import SQLiteRecordStore

_CAMEL_1 = re.compile(r"(.)([A-Z][a-z]+)")
_CAMEL_2 = re.compile(r"([a-z0-9])([A-Z])")

# Store implementations shipped with buoy. Third-party stores can still be
# selected by dotted import path.
_BUILTIN_STORES: tuple[Type[RecordStore], ...] = (
    InMemoryRecordStore,
    SQLiteRecordStore,
)

DEFAULT_STORE = "sqlite"


def _camel_to_snake(name: str) -> str:
    s1 = _CAMEL_1.sub(r"\1_\2", name)
    s2 = _CAMEL_2.sub(r"\1_\2", s1)
    return s2.lower()


def _default_alias_for(cls: Type[RecordStore]) -> str:
    name = cls.__name__
    for suffix in ("RecordStore", "Store"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    return _camel_to_snake(name)


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


@lru_cache(maxsize=1)
def discover_record_stores() -> Dict[str, Type[RecordStore]]:
    """Brief: Register the built-in RecordStore classes by alias.

    Inputs:
      - None.

    Outputs:
      - Dict[str, Type[RecordStore]] mapping normalized aliases to classes.

    Raises:
      - ValueError when two classes claim the same alias.
    """

    registry: Dict[str, Type[RecordStore]] = {}
    for cls in _BUILTIN_STORES:
        claimed = set(_normalize(a) for a in (getattr(cls, "aliases", ()) or ()))
        claimed.add(_normalize(_default_alias_for(cls)))
        for alias in claimed:
            if alias in registry and registry[alias] is not cls:
                other = registry[alias]
                raise ValueError(
                    f"Duplicate record store alias '{alias}' claimed by {cls.__module__}.{cls.__name__} "
                    f"and {other.__module__}.{other.__name__}"
                )
            registry[alias] = cls
    return registry


def get_record_store_class(identifier: str) -> Type[RecordStore]:
    """Brief: Resolve identifier to a RecordStore class.

    Inputs:
      - identifier: Dotted import path or alias.

    Outputs:
      - RecordStore subclass.
    """

    ident = str(identifier).strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        if not modname or not classname:
            raise ValueError(f"Invalid record store path '{identifier}'")
        module = importlib.import_module(modname)
        cls = getattr(module, classname)
        if not (isinstance(cls, type) and issubclass(cls, RecordStore)):
            raise TypeError(f"{identifier} is not a RecordStore subclass")
        return cls

    reg = discover_record_stores()
    key = _normalize(ident)
    try:
        return reg[key]
    except KeyError:
        suggestions = difflib.get_close_matches(key, list(reg.keys()), n=3)
        raise KeyError(
            f"Unknown record store alias '{identifier}'. "
            f"Known aliases: {', '.join(sorted(reg.keys()))}. "
            f"Suggestions: {suggestions}"
        ) from None


def load_record_store(cfg: Optional[object]) -> RecordStore:
    """Brief: Build the configured record store.

    Inputs:
      - cfg: Store config. Supported forms:
        - None: Use the default sqlite store at its default path.
        - str: Alias or dotted import path.
        - dict: {"module": <str>, "config": <dict>}.

    Outputs:
      - RecordStore instance.

    Example:
      store:
        module: sqlite
        config:
          db_path: ./var/buoy.db
    """

    if cfg is None:
        return get_record_store_class(DEFAULT_STORE)()

    if isinstance(cfg, str):
        return get_record_store_class(cfg)()

    if isinstance(cfg, dict):
        module = cfg.get("module")
        if isinstance(module, str):
            module = module.strip() or None
        if module is None:
            module = DEFAULT_STORE

        subcfg = cfg.get("config")
        if not isinstance(subcfg, dict):
            subcfg = {}

        cls = get_record_store_class(str(module))
        return cls(**dict(subcfg))

    raise TypeError("store config must be a mapping, string, or null")
