"""
settlement_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides ``get_active_config()``, the one way services and scripts
    obtain database bounds, cache TTLs, matcher thresholds and batch sizes.
    The file is read from ``$SETTLEMENT_CONFIG`` when set, else from the
    packaged ``defaults.yaml``.

Architecture position:
    Configuration -- sits above ``settlement_kernel``.  The kernel and the
    engines never import from this package; values reach them through
    constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- ``$SETTLEMENT_CONFIG`` names a missing file.
    - ``ValueError`` -- malformed or unknown settings.

Audit relevance:
    The first load emits a ``SETTLEMENT_CONFIG_TRACE`` log entry with the
    config id, version, source path and checksum.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from settlement_config.loader import load_config
from settlement_config.schema import SettlementConfig

_logger = logging.getLogger("settlement_kernel.config")

ENV_VAR = "SETTLEMENT_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

_active: SettlementConfig | None = None
_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> SettlementConfig:
    """Return the process-wide settings, loading them on first use.

    An explicit ``path`` bypasses the cache and the environment.
    """
    global _active

    if path is not None:
        return _load_and_trace(Path(path))

    with _lock:
        if _active is None:
            source = os.environ.get(ENV_VAR)
            _active = _load_and_trace(Path(source) if source else DEFAULT_CONFIG_PATH)
        return _active


def reset_active_config() -> None:
    """Forget the cached settings (tests and reloads)."""
    global _active
    with _lock:
        _active = None


def _load_and_trace(path: Path) -> SettlementConfig:
    config = load_config(path)
    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "config_path": str(path),
            "checksum": config.checksum,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ENV_VAR",
    "SettlementConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
