"""Configuration defaults for pack-image-fetch."""

from __future__ import annotations

import os
from pathlib import Path


def _env_int(key: str, default: int) -> int:
    """Read an integer from an environment variable, returning default on parse failure."""
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


# ============================================================================
# Directory & Path Constants
# ============================================================================


def get_pack_home() -> Path:
    """Get the per-user configuration directory.

    Respects PACK_HOME environment variable override.
    Defaults to ~/.pack if not set.

    Returns:
        Path to pack home directory
    """
    home_str = os.environ.get("PACK_HOME")
    if home_str:
        return Path(home_str)
    return Path.home() / ".pack"


def get_ledger_path() -> Path:
    """Get the pull ledger file ($PACK_HOME/image.json)."""
    return get_pack_home() / "image.json"


def get_config_path() -> Path:
    """Get the user configuration file ($PACK_HOME/config.json)."""
    return get_pack_home() / "config.json"


# ============================================================================
# Ledger Constants
# ============================================================================

DEFAULT_PRUNING_INTERVAL: str = "7d"
"""Ledger entries older than this are dropped by the pull-triggered prune."""

TIMESTAMP_FORMAT: str = "%Y-%m-%dT%H:%M:%SZ"
"""RFC 3339 UTC format used for every timestamp in the ledger."""

LEDGER_INDENT: int = 4
"""Indentation used when the ledger is written."""

# ============================================================================
# Pull Policy Constants
# ============================================================================

INTERVAL_PREFIX: str = "interval="
"""Prefix of the explicit interval policy form."""

POLICY_ALIASES: dict[str, str] = {
    "hourly": "1h",
    "daily": "1d",
    "weekly": "7d",
}
"""Fixed aliases and the interval spec each one stands for."""

# ============================================================================
# Registry Constants
# ============================================================================

DEFAULT_REGISTRY: str = "docker.io"
"""Registry assumed when a reference names none."""

DEFAULT_TAG: str = "latest"
"""Tag assumed when a reference has neither tag nor digest."""

MIRROR_WILDCARD: str = "*"
"""Mirror key that applies to every registry."""

PLATFORM_MISMATCH_PHRASE: str = "does not match the specified platform"
"""Substring of the daemon error raised when a tag lacks the requested platform."""

# ============================================================================
# Runtime Flag Defaults (read from environment)
# ============================================================================


def get_pull_timeout() -> int:
    """Get PACK_FETCH_TIMEOUT (seconds) for daemon API calls.

    Returns:
        Timeout in seconds, 600 by default
    """
    return _env_int("PACK_FETCH_TIMEOUT", 600)
