"""
replenishment_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.  Returns a frozen
    ``ReplenishmentConfig``.

Architecture position:
    Configuration -- sits above ``replenishment_kernel``.  The kernel MUST
    NEVER import from ``replenishment_config``; ``bridges`` translates the
    config into kernel constructor arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - The packaged defaults are always loaded first; an overlay only
      changes the keys it names.
    - Deterministic: the same files always produce the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the overlay path does not exist.
    - ``KeyError`` -- unknown section or key.
    - ``ValueError`` -- wrong type or out-of-range value.

Every successful call emits a ``REPLENISHMENT_CONFIG_TRACE`` log entry with
the checksum and the files that contributed.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from replenishment_config.loader import load_yaml_file, merge, parse_config
from replenishment_config.schema import (
    ConcurrencyConfig,
    InventoryConfig,
    ListingConfig,
    NotificationConfig,
    ReplenishmentConfig,
    StatsConfig,
    StorageConfig,
)

_logger = logging.getLogger("replenishment_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults" / "replenishment.yaml"

CONFIG_ENV_VAR = "REPLENISHMENT_CONFIG"


def get_active_config(path: Path | str | None = None) -> ReplenishmentConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Overlay YAML file.  When omitted, the file named by the
            ``REPLENISHMENT_CONFIG`` environment variable is used, if set.

    Returns:
        ReplenishmentConfig built from the packaged defaults plus overlay.

    Raises:
        FileNotFoundError: If the overlay file does not exist.
        KeyError: If a section or key is unknown.
        ValueError: If a value has the wrong type or range.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    overlay_path = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if overlay_path:
        data = merge(data, load_yaml_file(Path(overlay_path)))
        sources.append(str(overlay_path))

    config = parse_config(data, sources=tuple(sources))

    _logger.info(
        "REPLENISHMENT_CONFIG_TRACE",
        extra={
            "trace_type": "REPLENISHMENT_CONFIG_TRACE",
            "checksum": config.checksum,
            "sources": list(config.sources),
            "dialect": config.storage.database_url.split(":", 1)[0],
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "ConcurrencyConfig",
    "InventoryConfig",
    "ListingConfig",
    "NotificationConfig",
    "ReplenishmentConfig",
    "StatsConfig",
    "StorageConfig",
    "get_active_config",
]
