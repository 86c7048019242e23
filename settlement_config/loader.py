"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``settlement_config.schema``.  Runtime callers go through
``settlement_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Numeric settings are range checked (timeouts and sizes positive, rates
  between 0 and 100).
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Malformed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    BatchSettings,
    CacheSettings,
    DatabaseSettings,
    FeeDefaults,
    MatchingSettings,
    SettlementConfig,
)

_SECTIONS = {
    "database": DatabaseSettings,
    "fees": FeeDefaults,
    "cache": CacheSettings,
    "matching": MatchingSettings,
    "batch": BatchSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _decimal(section: str, key: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{section}.{key}: not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{section}.{key}: not a finite number: {value!r}")
    return result


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{section}.{key}: expected a positive integer, got {value!r}")
    return value


def _parse_section(name: str, data: Any) -> Any:
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{name}: unknown keys {unknown}")

    values: dict[str, Any] = {}
    for key, raw in data.items():
        if name == "fees":
            rate = _decimal(name, key, raw)
            if rate < 0 or rate > 100:
                raise ValueError(f"fees.{key}: rate must be between 0 and 100, got {raw!r}")
            values[key] = rate
        elif key == "amount_tolerance":
            tolerance = _decimal(name, key, raw)
            if tolerance < 0:
                raise ValueError(f"{name}.{key}: must not be negative")
            values[key] = tolerance
        elif key == "payment_keywords":
            if not isinstance(raw, list) or not all(isinstance(k, str) and k.strip() for k in raw):
                raise ValueError(f"{name}.{key}: expected a list of words")
            values[key] = tuple(k.strip().upper() for k in raw)
        elif key in ("url",):
            if not isinstance(raw, str) or not raw:
                raise ValueError(f"{name}.{key}: expected a non-empty string")
            values[key] = raw
        elif key == "echo":
            if not isinstance(raw, bool):
                raise ValueError(f"{name}.{key}: expected true/false, got {raw!r}")
            values[key] = raw
        elif key == "breakdown_ttl_seconds":
            if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
                raise ValueError(f"{name}.{key}: expected a non-negative number, got {raw!r}")
            values[key] = float(raw)
        else:
            values[key] = _positive_int(name, key, raw)
    return cls(**values)


def parse_config(data: dict[str, Any]) -> SettlementConfig:
    """Build a SettlementConfig from an already-loaded mapping."""
    top_level = {"config_id", "version", *_SECTIONS}
    unknown = sorted(set(data) - top_level)
    if unknown:
        raise ValueError(f"unknown configuration sections {unknown}")

    version = data.get("version", 1)
    return SettlementConfig(
        config_id=str(data.get("config_id", "default")),
        version=_positive_int("config", "version", version),
        checksum=compute_checksum(data),
        **{name: _parse_section(name, data.get(name)) for name in _SECTIONS},
    )


def load_config(path: Path | str) -> SettlementConfig:
    return parse_config(load_yaml_file(Path(path)))
