from __future__ import annotations

from typing import Iterator

import pytest

from frames import FakeBus, FakeClock
from settings import (
    DEFAULT_ELEVATION,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    Settings,
    get_settings,
)


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        i2c_bus=1,
        cycle_interval=30.0,
        ready_timeout=5.0,
        ready_poll_interval=0.0,
        poll_retries=2,
        poll_backoff=0.1,
        max_consecutive_failures=2,
        verify_checksums=False,
        latitude=DEFAULT_LATITUDE,
        longitude=DEFAULT_LONGITUDE,
        elevation=DEFAULT_ELEVATION,
        data_file=None,
        web_host="127.0.0.1",
        web_port=8888,
        log_level="INFO",
    )


@pytest.fixture()
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(step=1.0)
