"""
Retrieval Configuration Module
==============================

Centralized configuration for the retrieval layer. Endpoint location,
timeouts, page sizing and worker counts are defined here so every
component reads the same values.

Usage
-----
    from mangalnet.retrieval.config import Config

    page_size = Config.FETCH.PAGE_SIZE
    timeout = Config.API.TIMEOUT_SECONDS

Environment Override
-------------------
Configuration values can be overridden via environment variables using
the pattern: MANGAL_{GROUP}_{NAME}

For example:
    MANGAL_API_BASE_URL=http://localhost:8080/api/v2
    MANGAL_FETCH_PAGE_SIZE=500
    MANGAL_FETCH_MAX_WORKERS=4

Hot Reload
----------
    from mangalnet.retrieval.config import reload_config, Config

    os.environ["MANGAL_FETCH_PAGE_SIZE"] = "250"
    reload_config()
    Config.FETCH.PAGE_SIZE  # 250

Reloads are atomic: readers see either the old or the new config groups,
never a mix of both.
"""

import logging
import os
import threading
from dataclasses import dataclass, asdict
from typing import Any, Dict

logger = logging.getLogger("Mangal.Config")

_config_lock = threading.RLock()


def _env_int(key: str, default: int) -> int:
    """Get integer from environment or use default."""
    val = os.environ.get(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"Invalid int value for {key}: {val}, using default {default}")
    return default


def _env_float(key: str, default: float) -> float:
    """Get float from environment or use default."""
    val = os.environ.get(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"Invalid float value for {key}: {val}, using default {default}")
    return default


def _env_str(key: str, default: str) -> str:
    val = os.environ.get(key)
    if val is not None and val.strip():
        return val.strip()
    return default


@dataclass(frozen=True)
class ApiConfig:
    """Remote endpoint configuration."""

    # Root of the versioned REST API, without trailing slash
    BASE_URL: str = _env_str(
        "MANGAL_API_BASE_URL", "https://mangal.io/api/v2"
    )

    # Timeout applied to every individual request
    TIMEOUT_SECONDS: float = _env_float(
        "MANGAL_API_TIMEOUT_SECONDS", 10.0
    )

    USER_AGENT: str = _env_str(
        "MANGAL_API_USER_AGENT", "mangalnet/0.3"
    )


@dataclass(frozen=True)
class FetchConfig:
    """Pagination configuration."""

    # Records requested per page when the caller gives no size
    PAGE_SIZE: int = _env_int(
        "MANGAL_FETCH_PAGE_SIZE", 100
    )

    # Upper bound accepted for caller-supplied page sizes
    MAX_PAGE_SIZE: int = _env_int(
        "MANGAL_FETCH_MAX_PAGE_SIZE", 1000
    )

    # Concurrent page fetches / hydrations (1 = sequential)
    MAX_WORKERS: int = _env_int(
        "MANGAL_FETCH_MAX_WORKERS", 1
    )


@dataclass(frozen=True)
class CacheConfig:
    """Session cache configuration."""

    # How long a thread waits for another thread's in-flight fetch
    WAIT_TIMEOUT_SECONDS: float = _env_float(
        "MANGAL_CACHE_WAIT_TIMEOUT_SECONDS", 60.0
    )


class Config:
    """
    Main configuration container with all config groups.

    Access via Config.GROUP.CONSTANT, e.g.:
        Config.API.BASE_URL
        Config.FETCH.PAGE_SIZE
    """

    API = ApiConfig()
    FETCH = FetchConfig()
    CACHE = CacheConfig()

    # Version counter, bumped on every reload
    _version: int = 0

    @classmethod
    def to_dict(cls) -> Dict[str, Dict[str, Any]]:
        """Export all config as dict (useful for debugging)."""
        return {
            "api": asdict(cls.API),
            "fetch": asdict(cls.FETCH),
            "cache": asdict(cls.CACHE),
            "_version": cls._version,
        }

    @classmethod
    def get_version(cls) -> int:
        """Get current config version (increments on reload)."""
        return cls._version


def reload_config() -> None:
    """
    Reload configuration from environment variables.

    Example:
        >>> import os
        >>> os.environ['MANGAL_FETCH_PAGE_SIZE'] = '250'
        >>> reload_config()
        >>> Config.FETCH.PAGE_SIZE
        250
    """
    with _config_lock:
        # Dataclass defaults are evaluated at class creation, so the
        # groups are rebuilt from fresh env reads explicitly.
        Config.API = ApiConfig(
            BASE_URL=_env_str("MANGAL_API_BASE_URL", "https://mangal.io/api/v2"),
            TIMEOUT_SECONDS=_env_float("MANGAL_API_TIMEOUT_SECONDS", 10.0),
            USER_AGENT=_env_str("MANGAL_API_USER_AGENT", "mangalnet/0.3"),
        )
        Config.FETCH = FetchConfig(
            PAGE_SIZE=_env_int("MANGAL_FETCH_PAGE_SIZE", 100),
            MAX_PAGE_SIZE=_env_int("MANGAL_FETCH_MAX_PAGE_SIZE", 1000),
            MAX_WORKERS=_env_int("MANGAL_FETCH_MAX_WORKERS", 1),
        )
        Config.CACHE = CacheConfig(
            WAIT_TIMEOUT_SECONDS=_env_float("MANGAL_CACHE_WAIT_TIMEOUT_SECONDS", 60.0),
        )
        Config._version += 1

        global API, FETCH, CACHE
        API = Config.API
        FETCH = Config.FETCH
        CACHE = Config.CACHE

        logger.info(f"Configuration reloaded (version {Config._version})")


# Export convenient references
API = Config.API
FETCH = Config.FETCH
CACHE = Config.CACHE
