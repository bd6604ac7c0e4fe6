import os
os.environ.setdefault("EPHEMERIS_BACKEND", "moseph")

from datetime import date, datetime, timedelta, timezone

import pytest

from astrocalc.services import ephem
from astrocalc.services.errors import EphemerisRangeError, InternalComputationError, ValidationError


def test_leap_year_month_lengths():
    assert ephem.days_in_month(2024, 2) == 29
    assert ephem.days_in_month(2026, 2) == 28
    days = ephem.month_days(2024, 2)
    assert len(days) == 29
    assert days[0] == date(2024, 2, 1) and days[-1] == date(2024, 2, 29)
    assert len(ephem.month_days(2026, 2)) == 28
    with pytest.raises(ValidationError):
        ephem.month_days(2026, 13)


def test_daterange_is_inclusive():
    days = list(ephem.daterange(date(2024, 1, 1), date(2024, 1, 7)))
    assert len(days) == 7
    assert days[-1] == date(2024, 1, 7)
    assert list(ephem.daterange(date(2024, 1, 2), date(2024, 1, 1))) == []


def test_j2000_epoch():
    jd = ephem.to_astronomical_time(datetime(2000, 1, 1, 12, 0, tzinfo=timezone.utc))
    assert jd == pytest.approx(2451545.0, abs=1e-9)


def test_naive_datetime_is_utc():
    naive = datetime(1990, 1, 15, 12, 0)
    aware = naive.replace(tzinfo=timezone.utc)
    assert ephem.to_astronomical_time(naive) == ephem.to_astronomical_time(aware)


def test_local_time_conversion():
    # 07:00 in New York in January is 12:00 UT
    local = ephem.to_jd_utc("1990-01-15", "07:00:00", "America/New_York")
    utc = ephem.to_astronomical_time(datetime(1990, 1, 15, 12, 0, tzinfo=timezone.utc))
    assert local == pytest.approx(utc, abs=1e-9)
    with pytest.raises(ValidationError):
        ephem.to_jd_utc("1990-02-30", "07:00:00", "UTC")


def test_round_trip_to_the_second():
    moment = datetime(1987, 6, 3, 17, 45, 12, tzinfo=timezone.utc)
    back = ephem.from_astronomical_time(ephem.to_astronomical_time(moment))
    assert back == moment
    assert back.tzinfo is not None
    assert abs(back - moment) < timedelta(seconds=1)


def test_positions_in_canonical_order_and_range():
    jd = ephem.to_astronomical_time(datetime(1990, 1, 15, 12, 0, tzinfo=timezone.utc))
    pos = ephem.positions_ecliptic(jd)
    assert list(pos) == ephem.CHART_BODIES
    for p in pos.values():
        assert 0.0 <= p["lon"] < 360.0
        assert p["retro"] == (p["speed_lon"] < 0)
    # Sun in Capricorn in mid January
    assert 270.0 <= pos["Sun"]["lon"] < 300.0


def test_sidereal_positions_are_shifted_by_ayanamsha():
    jd = ephem.to_astronomical_time(datetime(2000, 1, 1, 12, 0, tzinfo=timezone.utc))
    trop = ephem.position(jd, "Sun")
    sid = ephem.position(jd, "Sun", sidereal=True, ayanamsha="lahiri")
    ayan = ephem.ayanamsha_value(jd, "lahiri")
    assert 23.0 < ayan < 24.5
    assert ((trop["lon"] - sid["lon"]) % 360.0) == pytest.approx(ayan, abs=0.01)


def test_unknown_body_and_mode_are_rejected():
    with pytest.raises(ValidationError):
        ephem.position(2451545.0, "Vulcan")
    with pytest.raises(ValidationError):
        ephem.position(2451545.0, "Sun", sidereal=True, ayanamsha="nonsense")


def test_out_of_span_is_a_range_error(monkeypatch):
    monkeypatch.setenv("EPHEMERIS_BACKEND", "moseph")
    with pytest.raises(EphemerisRangeError) as err:
        ephem.position(5_000_000.0, "Sun")
    assert err.value.jd == 5_000_000.0


def test_non_finite_jd_is_internal_error():
    with pytest.raises(InternalComputationError):
        ephem.check_range(float("nan"))


def test_sidereal_frame_values():
    jd = ephem.to_astronomical_time(datetime(2000, 1, 1, 12, 0, tzinfo=timezone.utc))
    ramc, eps = ephem.sidereal_frame(jd, 0.0)
    assert 0.0 <= ramc < 360.0
    # true obliquity around J2000
    assert eps == pytest.approx(23.44, abs=0.01)


def test_longitude_just_below_zero_wraps_to_zero(monkeypatch):
    # float modulo gives 360.0 for -1e-15; positions must stay in [0, 360)
    monkeypatch.setattr(ephem, "_calc", lambda jd, code, flag: (-1e-15, 0.0, 1.0, 0.98, 0.0, 0.0))
    pos = ephem.position(2451545.0, "Sun")
    assert pos["lon"] == 0.0
