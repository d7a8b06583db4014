#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Acquisition loop: SCD30 + PMSA003I readings, one snapshot every cycle.

Each cycle waits for the SCD30 to report a fresh measurement, reads both
sensors and hands a :class:`ReadingSnapshot` to every sink.  A bus failure
aborts the cycle (no partial snapshot) and the loop carries on after the
usual delay.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from logging_config import configure_logging
from Registers import f32_shortest
from Sensors import (
    PMSA003I,
    SCD30,
    BusError,
    I2CBus,
    NotReadyError,
    Pmsa003iReading,
    Scd30Reading,
)
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

Sink = Callable[["ReadingSnapshot"], None]


# =======================
#   Snapshot
# =======================
@dataclass(frozen=True)
class ReadingSnapshot:
    scd30: Scd30Reading
    pmsa003i: Pmsa003iReading
    lat: float
    lon: float
    ele: float
    taken_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def to_payload(self) -> dict:
        """Field layout expected by downstream consumers.

        SCD30 values are single precision; they are written with the fewest
        digits that still read back as the same 32-bit value.
        """
        scd30 = {key: f32_shortest(value) for key, value in asdict(self.scd30).items()}
        return {
            "value": [scd30, asdict(self.pmsa003i)],
            "lat": self.lat,
            "lon": self.lon,
            "ele": self.ele,
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_payload(), indent=indent)


def build_snapshot(
    scd30: Scd30Reading,
    pmsa003i: Pmsa003iReading,
    settings: Optional[Settings] = None,
) -> ReadingSnapshot:
    settings = settings or get_settings()
    return ReadingSnapshot(
        scd30=scd30,
        pmsa003i=pmsa003i,
        lat=settings.latitude,
        lon=settings.longitude,
        ele=settings.elevation,
    )


# =======================
#   Sinks
# =======================
def print_snapshot(snapshot: ReadingSnapshot) -> None:
    print(snapshot.to_json(), flush=True)


class JsonFileSink:
    """Keeps ``path`` holding the payload of the most recent snapshot."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"JsonFileSink({str(self.path)!r})"

    def __call__(self, snapshot: ReadingSnapshot) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(snapshot.to_json(), encoding="utf-8")
        tmp.replace(self.path)


# =======================
#   Loop
# =======================
class AcquisitionLoop:
    def __init__(
        self,
        scd30: SCD30,
        pmsa003i: PMSA003I,
        sinks: Iterable[Sink] = (print_snapshot,),
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.scd30 = scd30
        self.pmsa003i = pmsa003i
        self.sinks = list(sinks)
        self._sleep = sleep
        self._clock = clock
        self._started = False
        self.cycles = 0
        self.consecutive_failures = 0

    @property
    def failing(self) -> bool:
        return self.consecutive_failures >= self.settings.max_consecutive_failures

    def start(self) -> None:
        """Put the SCD30 in continuous mode; later calls are no-ops."""
        if self._started:
            return
        self.scd30.start_continuous_measurement()
        self._started = True

    def wait_for_scd30(self) -> None:
        """Block until the SCD30 has a fresh measurement.

        Not-ready answers are retried until ``ready_timeout`` elapses, then
        :class:`NotReadyError` is raised.  A failing ready query is retried
        ``poll_retries`` times with exponential backoff before its
        :class:`BusError` is re-raised.
        """
        s = self.settings
        deadline = self._clock() + s.ready_timeout
        errors = 0
        while True:
            try:
                if self.scd30.is_ready():
                    return
            except BusError as err:
                if errors >= s.poll_retries:
                    raise
                delay = s.poll_backoff * (2 ** errors)
                errors += 1
                logger.warning(
                    "Ready query failed, retrying in %.2fs: %s",
                    delay,
                    err,
                    extra={"sensor": "SCD30", "address": err.address, "attempt": errors},
                )
                self._sleep(delay)
                continue
            if self._clock() >= deadline:
                raise NotReadyError(
                    f"SCD30 not ready after {s.ready_timeout:g}s", address=self.scd30.addr
                )
            if s.ready_poll_interval > 0:
                self._sleep(s.ready_poll_interval)

    def run_cycle(self) -> ReadingSnapshot:
        self.wait_for_scd30()
        scd30 = self.scd30.read()
        pmsa003i = self.pmsa003i.read()
        return build_snapshot(scd30, pmsa003i, self.settings)

    def step(self) -> Optional[ReadingSnapshot]:
        """One cycle; returns ``None`` when it was aborted by a bus error."""
        self.cycles += 1
        started = self._clock()
        try:
            snapshot = self.run_cycle()
        except BusError as err:
            self.consecutive_failures += 1
            extra = {
                "cycle": self.cycles,
                "address": err.address,
                "consecutive_failures": self.consecutive_failures,
            }
            if self.failing:
                logger.error("Sensors keep failing, check the wiring: %s", err, extra=extra)
            else:
                logger.warning("Cycle aborted: %s", err, extra=extra)
            return None

        self.consecutive_failures = 0
        for sink in self.sinks:
            try:
                sink(snapshot)
            except Exception:
                # delivery is best effort; the next cycle still runs
                logger.exception(
                    "Sink %s failed", getattr(sink, "__name__", sink), extra={"cycle": self.cycles}
                )
        logger.debug(
            "Cycle complete",
            extra={
                "cycle": self.cycles,
                "elapsed_ms": round((self._clock() - started) * 1000),
            },
        )
        return snapshot

    def run(self, max_cycles: Optional[int] = None) -> None:
        self.start()
        done = 0
        while max_cycles is None or done < max_cycles:
            self.step()
            done += 1
            self._sleep(self.settings.cycle_interval)


def build_sinks(settings: Settings) -> list[Sink]:
    sinks: list[Sink] = [print_snapshot]
    if settings.data_file:
        sinks.append(JsonFileSink(Path(settings.data_file)))
    return sinks


# =======================
#   Main
# =======================
def main() -> int:
    configure_logging()
    settings = get_settings()
    with I2CBus(settings.i2c_bus) as bus:
        loop = AcquisitionLoop(
            SCD30(bus, verify_crc=settings.verify_checksums),
            PMSA003I(bus, verify_checksum=settings.verify_checksums),
            sinks=build_sinks(settings),
            settings=settings,
        )
        try:
            loop.start()
        except BusError as err:
            logger.error(
                "Could not start the SCD30: %s",
                err,
                extra={"sensor": "SCD30", "address": err.address},
            )
            return 1
        try:
            loop.run()
        except KeyboardInterrupt:
            logger.info("Stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
