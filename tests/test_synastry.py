import os
os.environ.setdefault("EPHEMERIS_BACKEND", "moseph")

import pytest
from fastapi.testclient import TestClient

from astrocalc.app import create_app
from astrocalc.cache import ChartCache
from astrocalc.schemas import CelestialBodyPosition, ChartResult, HouseCusp
from astrocalc.services.constants import sign_name_from_lon
from astrocalc.services.houses import HouseSystem
from astrocalc.services.synastry import (
    chart_points,
    compatibility_score,
    composite_chart,
    midpoint,
    synastry_aspects,
)

NY = {"date": "1990-01-15", "time": "12:00:00", "latitude": 40.7128, "longitude": -74.0060, "timezone": "UTC"}
LONDON = {"date": "1988-07-04", "time": "06:30:00", "latitude": 51.5074, "longitude": -0.1278, "timezone": "Europe/London"}


def _chart(time_unknown=True, **lons):
    planets = [
        CelestialBodyPosition(
            body=name, longitude=lon, latitude=0.0, distance=1.0, speed=0.0,
            retrograde=False, sign=sign_name_from_lon(lon), sign_degree=lon % 30.0, house=1,
        )
        for name, lon in lons.items()
    ]
    houses = [HouseCusp(house=i + 1, longitude=30.0 * i, sign=sign_name_from_lon(30.0 * i)) for i in range(12)]
    return ChartResult(
        planets=planets, houses=houses, ascendant=15.0, midheaven=285.0, aspects=[],
        house_system=HouseSystem.WHOLE_SIGN, requested_house_system=HouseSystem.WHOLE_SIGN,
        julian_day=2447907.0, time_unknown=time_unknown,
    )


@pytest.fixture
def client():
    return TestClient(create_app(ChartCache(ttl_seconds=60, max_entries=16)))


def test_cross_chart_aspects_are_weighted():
    a = _chart(Sun=10.0, Venus=100.0)
    b = _chart(Moon=12.0, Mars=190.0)
    syn = synastry_aspects(a, b)
    assert [(x.body_a, x.body_b, x.type) for x in syn] == [
        ("Sun", "Mars", "opposition"),
        ("Venus", "Mars", "square"),
        ("Sun", "Moon", "conjunction"),
        ("Venus", "Moon", "square"),
    ]
    weights = {(x.body_a, x.body_b): x.weight for x in syn}
    # Sun-Moon carries triple weight; 2 degrees of a 10 degree orb leaves 0.8
    assert weights[("Sun", "Moon")] == pytest.approx(7.2)
    assert weights[("Venus", "Mars")] == pytest.approx(-6.0)
    assert weights[("Venus", "Moon")] == pytest.approx(-1.5)
    assert compatibility_score(syn) == pytest.approx(46.2)


def test_same_body_on_both_sides():
    syn = synastry_aspects(_chart(Sun=0.0), _chart(Sun=1.0))
    assert [(x.body_a, x.body_b, x.type) for x in syn] == [("Sun", "Sun", "conjunction")]


def test_policy_restricts_types_and_orbs():
    a = _chart(Sun=10.0, Venus=100.0)
    b = _chart(Moon=12.0, Mars=190.0)
    syn = synastry_aspects(a, b, policy={"types": ["conjunction", "square"], "orbs": {"square": 1.0}})
    assert [(x.body_a, x.body_b) for x in syn] == [("Venus", "Mars"), ("Sun", "Moon")]


def test_score_is_clamped():
    assert compatibility_score([]) == 50.0
    a = _chart(Sun=0.0, Moon=0.0, Venus=0.0, Mars=0.0)
    b = _chart(Sun=0.0, Moon=0.0, Venus=0.0, Mars=0.0)
    assert compatibility_score(synastry_aspects(a, b)) == 100.0


def test_angles_only_with_known_time():
    assert "Ascendant" not in chart_points(_chart(Sun=0.0))
    pts = chart_points(_chart(time_unknown=False, Sun=0.0))
    assert pts["Ascendant"]["lon"] == 15.0
    assert pts["Midheaven"]["lon"] == 285.0


def test_midpoint_takes_shorter_arc():
    assert midpoint(350.0, 20.0) == pytest.approx(5.0)
    assert midpoint(20.0, 350.0) == pytest.approx(5.0)
    assert midpoint(100.0, 140.0) == pytest.approx(120.0)


def test_composite_uses_shared_points():
    a = _chart(Sun=350.0, Moon=100.0, Venus=40.0)
    b = _chart(Sun=20.0, Moon=140.0)
    comp = composite_chart(a, b)
    assert [(p.body, round(p.longitude, 6)) for p in comp.points] == [("Sun", 5.0), ("Moon", 120.0)]
    assert comp.points[1].sign == "Leo"
    (asp,) = comp.aspects
    assert (asp.body1, asp.body2, asp.type) == ("Sun", "Moon", "trine")
    assert asp.orb == pytest.approx(5.0)


def test_api_synastry(client):
    r = client.post("/v1/synastry/compute", json={"person_a": NY, "person_b": LONDON})
    assert r.status_code == 200, r.text
    body = r.json()
    assert 0.0 <= body["score"] <= 100.0
    assert body["chart_a_id"] != body["chart_b_id"]
    assert body["aspects"]
    orbs = [x["orb"] for x in body["aspects"]]
    assert orbs == sorted(orbs)
    names = [p["body"] for p in body["composite"]["points"]]
    assert names[0] == "Sun"
    assert "Ascendant" in names

    r = client.post(
        "/v1/synastry/compute",
        json={"person_a": NY, "person_b": LONDON, "synastry_options": {"include_composite": False, "aspect_types": ["trine"]}},
    )
    body = r.json()
    assert body["composite"] is None
    assert {x["type"] for x in body["aspects"]} <= {"trine"}
