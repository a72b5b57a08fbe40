"""
Configuration Loader (``replenishment_config.loader``).

Responsibility
--------------
Loads YAML files, merges an overlay onto the packaged defaults and parses
the result into the frozen dataclasses of ``replenishment_config.schema``.
The single public entry point for runtime config is
``replenishment_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``KeyError``; a misspelt key never falls
  back silently to its default.
* Values are type- and range-checked; violations raise ``ValueError``
  naming the offending ``section.key``.
* ``compute_checksum`` is deterministic over the merged mapping.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from replenishment_config.schema import (
    ConcurrencyConfig,
    InventoryConfig,
    ListingConfig,
    NotificationConfig,
    ReplenishmentConfig,
    StatsConfig,
    StorageConfig,
)

_SECTIONS: dict[str, type] = {
    "storage": StorageConfig,
    "concurrency": ConcurrencyConfig,
    "inventory": InventoryConfig,
    "stats": StatsConfig,
    "listing": ListingConfig,
    "notifications": NotificationConfig,
}

# Must be strictly positive; every other numeric key only needs >= 0.
_POSITIVE_KEYS = frozenset({
    "storage.pool_size",
    "storage.pool_timeout_seconds",
    "storage.statement_timeout_ms",
    "stats.recent_transfer_window_days",
    "listing.default_limit",
    "notifications.dispatch_batch_size",
    "notifications.max_backoff_seconds",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge; overlay keys replace base keys."""
    merged = {name: dict(section or {}) for name, section in base.items()}
    for name, section in overlay.items():
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ValueError(f"section '{name}' must be a mapping")
        merged.setdefault(name, {}).update(section)
    return merged


def _check_value(section: str, key: str, value: Any, expected: Any) -> Any:
    qualified = f"{section}.{key}"
    if isinstance(expected, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{qualified} must be a boolean, got {value!r}")
        return value
    if isinstance(expected, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{qualified} must be an integer, got {value!r}")
    elif isinstance(expected, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{qualified} must be a number, got {value!r}")
        value = float(value)
    elif isinstance(expected, str):
        if not isinstance(value, str) or not value:
            raise ValueError(f"{qualified} must be a non-empty string, got {value!r}")
        return value

    if qualified in _POSITIVE_KEYS and value <= 0:
        raise ValueError(f"{qualified} must be > 0, got {value}")
    if value < 0:
        raise ValueError(f"{qualified} must be >= 0, got {value}")
    return value


def parse_section(name: str, data: dict[str, Any]) -> Any:
    """
    Parse one section into its dataclass.

    Raises:
        KeyError: unknown section or key.
        ValueError: wrong type or out-of-range value.
    """
    if name not in _SECTIONS:
        raise KeyError(f"Unknown configuration section: '{name}'")
    cls = _SECTIONS[name]
    defaults = cls()
    known = {f.name for f in fields(cls)}

    unknown = sorted(set(data) - known)
    if unknown:
        raise KeyError(f"Unknown key(s) in section '{name}': {', '.join(unknown)}")

    values = {
        key: _check_value(name, key, value, getattr(defaults, key))
        for key, value in data.items()
    }
    return cls(**values)


def parse_config(data: dict[str, Any], sources: tuple[str, ...] = ()) -> ReplenishmentConfig:
    """Parse a merged mapping into a ReplenishmentConfig."""
    sections = {name: parse_section(name, section or {}) for name, section in data.items()}
    return ReplenishmentConfig(
        **sections,
        checksum=compute_checksum(data),
        sources=sources,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
