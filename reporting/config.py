"""
reporting/config.py

Runtime settings for ingestion and querying.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from storage.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class IngestionSettings:
    """
    Runtime settings for file ingestion.
    """

    max_file_bytes: int = 50 * 1024 * 1024
    max_rows: int = 100_000
    max_validation_errors: int = 500
    log_validation_errors: bool = True


@dataclass(frozen=True)
class QuerySettings:
    """
    Query cache and time-series defaults.
    """

    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 256
    moving_average_window: int = 3


@lru_cache(maxsize=1)
def get_ingestion_settings() -> IngestionSettings:
    """
    Return cached ingestion settings from environment variables.
    """

    return IngestionSettings(
        max_file_bytes=max(1, _get_int_env("REPORTS_INGEST_MAX_FILE_BYTES", 50 * 1024 * 1024)),
        max_rows=max(1, _get_int_env("REPORTS_INGEST_MAX_ROWS", 100_000)),
        max_validation_errors=max(1, _get_int_env("REPORTS_INGEST_MAX_VALIDATION_ERRORS", 500)),
        log_validation_errors=_get_bool_env("REPORTS_INGEST_LOG_VALIDATION_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_query_settings() -> QuerySettings:
    """
    Return cached query settings from environment variables.
    """

    return QuerySettings(
        cache_ttl_seconds=max(0.0, _get_float_env("REPORTS_QUERY_CACHE_TTL_SECONDS", 300.0)),
        cache_max_entries=max(1, _get_int_env("REPORTS_QUERY_CACHE_MAX_ENTRIES", 256)),
        moving_average_window=max(1, _get_int_env("REPORTS_MOVING_AVERAGE_WINDOW", 3)),
    )
