from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_BACKEND_ENV = "DATA_ACCESS_BACKEND"
_TABLE_PATH_ENV = "MOCK_DYNAMODB_PERSISTENCE_PATH"
_DYNAMODB_ENDPOINT_ENV = "DYNAMODB_ENDPOINT"
_DYNAMODB_REGION_ENV = "DYNAMODB_REGION"
_TABLE_WAIT_ENV = "DYNAMODB_TABLE_WAIT_SECONDS"
_SENSORS_TABLE_ENV = "SENSORS_TABLE"
_SENSORS_INDEX_ENV = "SENSORS_ACCOUNT_INDEX"
_READINGS_PREFIX_ENV = "READINGS_TABLE_PREFIX"
_HOURLY_PREFIX_ENV = "HOURLY_READINGS_TABLE_PREFIX"
_TIMEZONE_ENV = "DATA_ACCESS_TIMEZONE"
_BACKEND_TIMEOUT_ENV = "BACKEND_TIMEOUT_SECONDS"
_WORKER_COUNT_ENV = "QUERY_WORKER_COUNT"
_MAX_PARTITIONS_ENV = "MAX_QUERY_PARTITIONS"
_GZIP_MINIMUM_SIZE_ENV = "GZIP_MINIMUM_SIZE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_BACKENDS = {"memory", "dynamodb"}


@dataclass(frozen=True)
class Settings:
    backend: str
    table_persistence_path: Optional[str]
    dynamodb_endpoint: Optional[str]
    dynamodb_region: str
    table_wait_seconds: int
    sensors_table: str
    sensors_account_index: str
    readings_table_prefix: str
    hourly_readings_table_prefix: str
    timezone: str
    backend_timeout: float
    query_workers: int
    max_query_partitions: int
    gzip_minimum_size: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_backend(default: str) -> str:
    candidate = _read_str_env(_BACKEND_ENV, default).lower()
    return candidate if candidate in _BACKENDS else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        backend=_read_backend("memory"),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, None),
        dynamodb_endpoint=_read_optional_env(_DYNAMODB_ENDPOINT_ENV, None),
        dynamodb_region=_read_str_env(_DYNAMODB_REGION_ENV, "us-east-1"),
        table_wait_seconds=_read_int_env(_TABLE_WAIT_ENV, 30, minimum=0),
        sensors_table=_read_str_env(_SENSORS_TABLE_ENV, "sensors"),
        sensors_account_index=_read_str_env(_SENSORS_INDEX_ENV, "account_id-index"),
        readings_table_prefix=_read_str_env(_READINGS_PREFIX_ENV, "sensor_readings"),
        hourly_readings_table_prefix=_read_str_env(
            _HOURLY_PREFIX_ENV, "hourly_sensor_readings"
        ),
        timezone=_read_str_env(_TIMEZONE_ENV, "UTC"),
        backend_timeout=_read_float_env(_BACKEND_TIMEOUT_ENV, 5.0),
        query_workers=_read_int_env(_WORKER_COUNT_ENV, 4),
        max_query_partitions=_read_int_env(_MAX_PARTITIONS_ENV, 12),
        gzip_minimum_size=_read_int_env(_GZIP_MINIMUM_SIZE_ENV, 0, minimum=0),
        log_level=_read_log_level("INFO"),
    )
