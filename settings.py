from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_I2C_BUS_ENV = "AIRBOX_I2C_BUS"
_CYCLE_INTERVAL_ENV = "AIRBOX_CYCLE_INTERVAL"
_READY_TIMEOUT_ENV = "AIRBOX_READY_TIMEOUT"
_READY_POLL_INTERVAL_ENV = "AIRBOX_READY_POLL_INTERVAL"
_POLL_RETRIES_ENV = "AIRBOX_POLL_RETRIES"
_POLL_BACKOFF_ENV = "AIRBOX_POLL_BACKOFF"
_MAX_FAILURES_ENV = "AIRBOX_MAX_CONSECUTIVE_FAILURES"
_VERIFY_CHECKSUMS_ENV = "AIRBOX_VERIFY_CHECKSUMS"
_LATITUDE_ENV = "AIRBOX_LATITUDE"
_LONGITUDE_ENV = "AIRBOX_LONGITUDE"
_ELEVATION_ENV = "AIRBOX_ELEVATION"
_DATA_FILE_ENV = "AIRBOX_DATA_FILE"
_WEB_HOST_ENV = "AIRBOX_WEB_HOST"
_WEB_PORT_ENV = "AIRBOX_WEB_PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

# 632 S Eugenia
DEFAULT_LATITUDE = 33.7727154
DEFAULT_LONGITUDE = -84.4542467999
DEFAULT_ELEVATION = 268.31


@dataclass(frozen=True)
class Settings:
    i2c_bus: int
    cycle_interval: float
    ready_timeout: float
    ready_poll_interval: float
    poll_retries: int
    poll_backoff: float
    max_consecutive_failures: int
    verify_checksums: bool
    latitude: float
    longitude: float
    elevation: float
    data_file: Optional[str]
    web_host: str
    web_port: int
    log_level: str


def _read_raw(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_str_env(name: str, default: str) -> str:
    return _read_raw(name) or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    if os.getenv(name) is None:
        return default
    return _read_raw(name)


def _read_int_env(name: str, default: int, minimum: int = 0) -> int:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_float_env(name: str, default: float, minimum: Optional[float] = 0.0) -> float:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _read_bool_env(name: str, default: bool) -> bool:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    lowered = candidate.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        i2c_bus=_read_int_env(_I2C_BUS_ENV, 1),
        cycle_interval=_read_float_env(_CYCLE_INTERVAL_ENV, 30.0),
        ready_timeout=_read_float_env(_READY_TIMEOUT_ENV, 10.0),
        ready_poll_interval=_read_float_env(_READY_POLL_INTERVAL_ENV, 0.0),
        poll_retries=_read_int_env(_POLL_RETRIES_ENV, 3),
        poll_backoff=_read_float_env(_POLL_BACKOFF_ENV, 0.1),
        max_consecutive_failures=_read_int_env(_MAX_FAILURES_ENV, 3, minimum=1),
        verify_checksums=_read_bool_env(_VERIFY_CHECKSUMS_ENV, False),
        latitude=_read_float_env(_LATITUDE_ENV, DEFAULT_LATITUDE, minimum=None),
        longitude=_read_float_env(_LONGITUDE_ENV, DEFAULT_LONGITUDE, minimum=None),
        elevation=_read_float_env(_ELEVATION_ENV, DEFAULT_ELEVATION, minimum=None),
        data_file=_read_optional_env(_DATA_FILE_ENV, None),
        web_host=_read_str_env(_WEB_HOST_ENV, "0.0.0.0"),
        web_port=_read_int_env(_WEB_PORT_ENV, 8888, minimum=1),
        log_level=_read_str_env(_LOG_LEVEL_ENV, "INFO").upper(),
    )
