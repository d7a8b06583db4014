from __future__ import annotations

import threading
from typing import Iterator

import pytest
from flask.testing import FlaskClient

import WebInterface
from AirBox import AcquisitionLoop, build_snapshot
from frames import FakeBus, FakeClock
from Sensors import PMSA003I, SCD30, Pmsa003iReading, Scd30Reading


@pytest.fixture()
def client(monkeypatch) -> Iterator[FlaskClient]:
    monkeypatch.setattr(WebInterface, "_latest", None)
    monkeypatch.setattr(WebInterface, "_loop", None)
    monkeypatch.setattr(WebInterface, "_thread", None)
    WebInterface.app.config.update(TESTING=True)
    with WebInterface.app.test_client() as test_client:
        yield test_client


@pytest.fixture()
def snapshot(settings):
    return build_snapshot(
        Scd30Reading(co2_ppm=400.0, humidity_relative=50.0, temp_in_f=77.0),
        Pmsa003iReading(pm1=5, pm25=16, pm10=21, um_pt3=900, um_pt5=300, um_1=80,
                        um_2pt5=12, um_5=3, um_10=1),
        settings,
    )


def test_data_before_first_reading(client: FlaskClient) -> None:
    response = client.get("/data")

    assert response.status_code == 503
    assert response.get_json() == {"error": "no reading yet"}


def test_data_returns_latest_payload(client: FlaskClient, snapshot) -> None:
    WebInterface.publish(snapshot)

    response = client.get("/data")

    assert response.status_code == 200
    assert response.get_json() == snapshot.to_payload()


def test_index_renders_readings(client: FlaskClient, snapshot) -> None:
    assert "Waiting for the first reading" in client.get("/").get_data(as_text=True)

    WebInterface.publish(snapshot)
    page = client.get("/").get_data(as_text=True)

    assert "400.0 ppm" in page
    assert "77.0 °F" in page
    assert "PM2.5" in page


def test_health_reports_loop_state(client: FlaskClient, settings) -> None:
    bus = FakeBus()
    clock = FakeClock()
    loop = AcquisitionLoop(
        SCD30(bus), PMSA003I(bus), sinks=[], settings=settings, sleep=clock.sleep, clock=clock
    )
    WebInterface._loop = loop

    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"

    loop.consecutive_failures = settings.max_consecutive_failures
    response = client.get("/health")

    assert response.status_code == 503
    body = response.get_json()
    assert body["status"] == "failing"
    assert body["consecutive_failures"] == settings.max_consecutive_failures
    assert body["last_snapshot_at"] is None


def test_health_reports_stopped_loop_thread(client: FlaskClient, settings, monkeypatch) -> None:
    bus = FakeBus()
    loop = AcquisitionLoop(SCD30(bus), PMSA003I(bus), sinks=[], settings=settings)
    finished = threading.Thread(target=lambda: None)
    finished.start()
    finished.join()
    monkeypatch.setattr(WebInterface, "_loop", loop)
    monkeypatch.setattr(WebInterface, "_thread", finished)

    response = client.get("/health")

    assert response.status_code == 503
    assert response.get_json()["status"] == "stopped"
