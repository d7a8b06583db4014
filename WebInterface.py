#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Small Flask web UI serving the latest AirBox snapshot.

The acquisition loop runs in a background thread and publishes every
snapshot here.  The root page shows the most recent readings, ``/data``
returns the snapshot payload as JSON and ``/health`` reports whether the
sensors are still answering.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional

from flask import Flask, jsonify, render_template_string

from AirBox import AcquisitionLoop, ReadingSnapshot, build_sinks
from logging_config import configure_logging
from Sensors import PMSA003I, SCD30, BusError, I2CBus
from settings import get_settings

logger = logging.getLogger(__name__)

app = Flask(__name__)

_latest: Optional[ReadingSnapshot] = None
_loop: Optional[AcquisitionLoop] = None
_thread: Optional[threading.Thread] = None
_lock = threading.Lock()

LABELS = {
    "co2_ppm": ("CO2", "ppm"),
    "temp_in_f": ("Temperature", "°F"),
    "humidity_relative": ("Relative Humidity", "%"),
    "pm1": ("PM1", "µg/m³"),
    "pm25": ("PM2.5", "µg/m³"),
    "pm10": ("PM10", "µg/m³"),
    "um_pt3": ("≥0.3 µm", "/0.1 L"),
    "um_pt5": ("≥0.5 µm", "/0.1 L"),
    "um_1": ("≥1 µm", "/0.1 L"),
    "um_2pt5": ("≥2.5 µm", "/0.1 L"),
    "um_5": ("≥5 µm", "/0.1 L"),
    "um_10": ("≥10 µm", "/0.1 L"),
}

_INDEX = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <meta http-equiv="refresh" content="10">
  <title>AirBox</title>
</head>
<body>
  <h1>AirBox</h1>
  {% if rows %}
  <table>
    {% for name, value in rows %}
    <tr><td>{{ name }}</td><td>{{ value }}</td></tr>
    {% endfor %}
  </table>
  <p>Updated {{ taken_at }}</p>
  {% else %}
  <p>Waiting for the first reading…</p>
  {% endif %}
</body>
</html>
"""


def publish(snapshot: ReadingSnapshot) -> None:
    """Sink used by the acquisition loop."""
    global _latest
    with _lock:
        _latest = snapshot


def get_latest() -> Optional[ReadingSnapshot]:
    with _lock:
        return _latest


def _rows(snapshot: ReadingSnapshot) -> list[tuple[str, str]]:
    rows: list[tuple[str, str]] = []
    for reading in snapshot.to_payload()["value"]:
        for key, value in reading.items():
            name, unit = LABELS[key]
            text = f"{value:.1f}" if isinstance(value, float) else str(value)
            rows.append((name, f"{text} {unit}"))
    return rows


@app.route("/")
def index():
    snapshot = get_latest()
    if snapshot is None:
        return render_template_string(_INDEX, rows=None)
    return render_template_string(
        _INDEX, rows=_rows(snapshot), taken_at=snapshot.taken_at.isoformat()
    )


@app.route("/data")
def data():
    snapshot = get_latest()
    if snapshot is None:
        return jsonify({"error": "no reading yet"}), 503
    return jsonify(snapshot.to_payload())


@app.route("/health")
def health():
    snapshot = get_latest()
    status = {
        "last_snapshot_at": snapshot.taken_at.isoformat() if snapshot else None,
        "cycles": _loop.cycles if _loop else 0,
        "consecutive_failures": _loop.consecutive_failures if _loop else 0,
    }
    if _thread is not None and not _thread.is_alive():
        status["status"] = "stopped"
    elif _loop is not None and _loop.failing:
        status["status"] = "failing"
    else:
        status["status"] = "ok"
    return jsonify(status), 200 if status["status"] == "ok" else 503


def _run_loop(loop: AcquisitionLoop) -> None:
    """Background thread running the acquisition loop."""
    try:
        loop.run()
    except Exception:
        logger.exception("Acquisition loop stopped")
        raise


def main() -> int:
    global _loop, _thread
    configure_logging()
    settings = get_settings()
    bus = I2CBus(settings.i2c_bus)
    try:
        _loop = AcquisitionLoop(
            SCD30(bus, verify_crc=settings.verify_checksums),
            PMSA003I(bus, verify_checksum=settings.verify_checksums),
            sinks=[publish, *build_sinks(settings)],
            settings=settings,
        )
        try:
            _loop.start()
        except BusError as err:
            logger.error(
                "Could not start the SCD30: %s",
                err,
                extra={"sensor": "SCD30", "address": err.address},
            )
            return 1
        _thread = threading.Thread(target=_run_loop, args=(_loop,), daemon=True)
        _thread.start()
        app.run(host=settings.web_host, port=settings.web_port)
    finally:
        bus.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
