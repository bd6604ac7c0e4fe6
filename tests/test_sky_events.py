import os
os.environ.setdefault("EPHEMERIS_BACKEND", "moseph")

import math
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from astrocalc.app import create_app
from astrocalc.cache import ChartCache
from astrocalc.services import ephem
from astrocalc.services.errors import ValidationError
from astrocalc.services.sky_events import lunations, moon_phase, retrograde_bodies, retrograde_periods

JD0 = ephem.to_astronomical_time(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def cyclic_sky(monkeypatch):
    """Sun at 1 deg/day, Moon at 13 deg/day, both at 0 deg at 2024-01-01 12:00 UT.

    Mercury's speed is ``0.5 + cos(2 pi t / 100)`` so it stations
    retrograde at t = 33.33 and direct at t = 66.67 in every 100 days.
    """

    def position(jd, body, sidereal=False, ayanamsha="lahiri"):
        t = jd - JD0
        if body == "Sun":
            lon, speed = t, 1.0
        elif body == "Moon":
            lon, speed = 13.0 * t, 13.0
        else:
            w = 2 * math.pi / 100.0
            lon = 0.5 * t + math.sin(w * t) / w
            speed = 0.5 + math.cos(w * t)
        return {"lon": lon % 360.0, "lat": 0.0, "dist": 1.0, "speed_lon": speed}

    monkeypatch.setattr(ephem, "position", position)


@pytest.mark.parametrize(
    "elongation,phase",
    [
        (0.0, "new"),
        (50.0, "waxing_crescent"),
        (90.0, "first_quarter"),
        (170.0, "waxing_gibbous"),
        (180.0, "full"),
        (250.0, "waning_gibbous"),
        (290.0, "last_quarter"),
        (350.0, "waning_crescent"),
    ],
)
def test_moon_phase_names(elongation, phase):
    assert moon_phase((100.0 + elongation) % 360.0, 100.0).phase == phase


def test_illumination_extremes():
    assert moon_phase(10.0, 10.0).illumination == 0.0
    assert moon_phase(190.0, 10.0).illumination == 1.0
    assert moon_phase(100.0, 10.0).illumination == pytest.approx(0.5, abs=1e-3)


def test_retrogrades_exclude_nodes_and_keep_order():
    pos = {
        "Saturn": {"lon": 1.0, "speed_lon": -0.02},
        "Mercury": {"lon": 2.0, "speed_lon": -0.5},
        "TrueNode": {"lon": 3.0, "speed_lon": -0.05},
        "Sun": {"lon": 4.0, "speed_lon": 1.0},
    }
    assert retrograde_bodies(pos) == ["Mercury", "Saturn"]


def test_retrograde_periods_with_exact_stations(cyclic_sky):
    periods = retrograde_periods(2024, bodies=["Mercury"])
    # the period from t = -66.7 to -33.3 ended in 2023; the last one runs into 2025
    assert len(periods) == 4
    for k, p in enumerate(periods):
        assert p.body == "Mercury"
        expected_rx = T0 + timedelta(days=100 * k + 100 / 3)
        expected_d = T0 + timedelta(days=100 * k + 200 / 3)
        assert abs(p.station_retrograde - expected_rx) <= timedelta(seconds=60)
        assert abs(p.station_direct - expected_d) <= timedelta(seconds=60)
        assert p.longitude_direct < p.longitude_retrograde
    assert periods[-1].station_direct.year == 2025


def test_retrograde_periods_reject_unknown_body():
    with pytest.raises(ValidationError):
        retrograde_periods(2024, bodies=["Sun"])


def test_lunations_for_a_year(cyclic_sky):
    found = lunations(2024)
    by_phase = {}
    for lun in found:
        by_phase.setdefault(lun.phase, []).append(lun)
    # elongation grows 12 deg/day: new moons every 30 days from Jan 1 noon
    assert len(by_phase["new"]) == 13
    assert len(by_phase["full"]) == 12
    assert len(by_phase["first_quarter"]) == 12
    assert len(by_phase["last_quarter"]) == 12
    assert [x.exact_time for x in found] == sorted(x.exact_time for x in found)

    first_new, first_full = by_phase["new"][0], by_phase["full"][0]
    assert abs(first_new.exact_time - T0) <= timedelta(seconds=1)
    assert first_new.illumination == pytest.approx(0.0, abs=1e-3)
    assert abs(first_full.exact_time - (T0 + timedelta(days=15))) <= timedelta(seconds=1)
    assert first_full.illumination == pytest.approx(1.0, abs=1e-3)
    # Moon at 13 * 15 = 195 deg
    assert first_full.sign == "Libra"
    assert first_full.sign_degree == pytest.approx(15.0, abs=1e-3)


def test_lunations_phase_filter(cyclic_sky):
    found = lunations(2024, phases=["full"])
    assert {x.phase for x in found} == {"full"}
    assert len(found) == 12


def test_lunations_reject_unknown_phase():
    with pytest.raises(ValidationError):
        lunations(2024, phases=["gibbous"])


@pytest.fixture
def client():
    return TestClient(create_app(ChartCache(ttl_seconds=60, max_entries=16)))


def test_api_mercury_retrogrades_2024(client):
    r = client.post("/v1/sky/retrogrades", json={"year": 2024, "bodies": ["Mercury"]})
    assert r.status_code == 200, r.text
    periods = r.json()["periods"]
    # the retrograde from mid-December 2023 ended on Jan 1
    assert len(periods) == 4
    assert periods[0]["station_retrograde"].startswith("2023-12-1")
    assert periods[0]["station_direct"].startswith("2024-01-0")
    assert periods[1]["station_retrograde"].startswith("2024-04-01")
    assert periods[1]["station_direct"].startswith("2024-04-25")
    assert periods[1]["sign"] == "Aries"


def test_api_full_moons_2024(client):
    r = client.post("/v1/sky/lunations", json={"year": 2024, "phases": ["full"]})
    assert r.status_code == 200, r.text
    found = r.json()["lunations"]
    assert len(found) == 12
    assert found[0]["exact_time"].startswith("2024-01-25")
    assert all(x["illumination"] > 0.99 for x in found)


def test_api_rejects_unknown_body(client):
    r = client.post("/v1/sky/retrogrades", json={"year": 2024, "bodies": ["Sun"]})
    assert r.status_code == 422
