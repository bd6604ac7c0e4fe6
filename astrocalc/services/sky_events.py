"""
Sky-wide events that do not depend on a natal chart.

This module implements:
1. Lunar phase (eight-phase cycle from the Sun-Moon elongation)
2. Retrograde listing for a single moment
3. Yearly retrograde periods with exact station times
4. Yearly lunations (new, quarter and full moons)
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from ..schemas.sky import Lunation, RetrogradePeriod
from ..schemas.transits import MoonPhase
from . import ephem
from .constants import body_rank, sign_degree, sign_name_from_lon
from .errors import ValidationError
from .transit_math import newton_root, wrap180

logger = logging.getLogger(__name__)

RETROGRADE_BODIES = ["Mercury", "Venus", "Mars", "Jupiter", "Saturn", "Uranus", "Neptune", "Pluto"]
# Longest retrograde (Pluto) is a little over 160 days
RETROGRADE_MARGIN_DAYS = 170
STATION_STEP = 0.01  # days, for the finite-difference slope of the speed

LUNATION_ANGLES = {"new": 0.0, "first_quarter": 90.0, "full": 180.0, "last_quarter": 270.0}

ROOT_STEPS = 8
ROOT_TOLERANCE = 1e-7  # days

# (upper bound of elongation, phase name); elongation = Moon - Sun, 0..360
_PHASES = [
    (45.0, "new"),
    (90.0, "waxing_crescent"),
    (135.0, "first_quarter"),
    (180.0, "waxing_gibbous"),
    (225.0, "full"),
    (270.0, "waning_gibbous"),
    (315.0, "last_quarter"),
    (360.0, "waning_crescent"),
]


def moon_phase(moon_lon: float, sun_lon: float) -> MoonPhase:
    """Classify the lunar phase from the Moon's elongation east of the Sun.

    Illumination is the illuminated fraction of the disc,
    ``(1 - cos(elongation)) / 2``.
    """

    # Not the shortest arc: waxing and waning halves must stay distinct
    elongation = (moon_lon - sun_lon) % 360.0
    phase = next(name for bound, name in _PHASES if elongation < bound)
    illumination = (1.0 - math.cos(math.radians(elongation))) / 2.0
    return MoonPhase(
        phase=phase,
        elongation=round(elongation, 2),
        illumination=round(illumination, 3),
    )


def retrograde_bodies(positions: Mapping[str, Mapping[str, Any]]) -> List[str]:
    # Nodes move backwards on average; only report true planetary retrogrades
    names = [
        name for name, p in positions.items()
        if p.get("speed_lon", 0.0) < 0 and name not in {"TrueNode"}
    ]
    return sorted(names, key=body_rank)




def _year_bounds(year: int) -> Tuple[float, float]:
    if not 1 < year < 9999:
        raise ValidationError(f"Year out of range: {year}")
    start = ephem.to_astronomical_time(datetime(year, 1, 1, tzinfo=timezone.utc))
    end = ephem.to_astronomical_time(datetime(year + 1, 1, 1, tzinfo=timezone.utc))
    return start, end


def _noon_samples(first: date, last: date) -> Iterable[float]:
    for day in ephem.daterange(first, last):
        yield ephem.to_astronomical_time(ephem.noon_utc(day))


def _station(body: str, lo: float, hi: float, v_lo: float, v_hi: float) -> Tuple[float, float]:
    """Time and longitude at which ``body``'s speed passes zero inside ``[lo, hi]``."""

    def speed(jd: float) -> Tuple[float, float]:
        v = ephem.position(jd, body)["speed_lon"]
        slope = (
            ephem.position(jd + STATION_STEP, body)["speed_lon"]
            - ephem.position(jd - STATION_STEP, body)["speed_lon"]
        ) / (2 * STATION_STEP)
        return v, slope

    guess = lo + (hi - lo) * (v_lo / (v_lo - v_hi))
    jd, _ = newton_root(speed, guess, lo, hi, steps=ROOT_STEPS, tolerance=ROOT_TOLERANCE)
    return jd, ephem.position(jd, body)["lon"]


def retrograde_periods(year: int, bodies: Optional[Iterable[str]] = None) -> List[RetrogradePeriod]:
    """Every retrograde period of the planets that overlaps ``year``.

    A period runs from the station retrograde to the following station
    direct; periods that started in the previous year or end in the next
    one are included in full.
    """

    names = list(bodies) if bodies is not None else RETROGRADE_BODIES
    unknown = [n for n in names if n not in RETROGRADE_BODIES]
    if unknown:
        raise ValidationError(f"Unknown retrograde body: {', '.join(unknown)}")
    y_start, y_end = _year_bounds(year)
    first = date(year, 1, 1) - timedelta(days=RETROGRADE_MARGIN_DAYS)
    last = date(year, 12, 31) + timedelta(days=RETROGRADE_MARGIN_DAYS)

    out = []
    for name in sorted(set(names), key=body_rank):
        prev: Optional[Tuple[float, float]] = None
        opened: Optional[Tuple[float, float]] = None
        for jd in _noon_samples(first, last):
            v = ephem.position(jd, name)["speed_lon"]
            if prev is not None:
                p_jd, p_v = prev
                if p_v >= 0.0 > v:
                    opened = _station(name, p_jd, jd, p_v, v)
                elif p_v < 0.0 <= v and opened is not None:
                    closed = _station(name, p_jd, jd, p_v, v)
                    if opened[0] < y_end and closed[0] >= y_start:
                        out.append(RetrogradePeriod(
                            body=name,
                            station_retrograde=ephem.from_astronomical_time(opened[0]),
                            station_direct=ephem.from_astronomical_time(closed[0]),
                            longitude_retrograde=opened[1],
                            longitude_direct=closed[1],
                            sign=sign_name_from_lon(opened[1]),
                        ))
                    opened = None
            prev = (jd, v)
    out.sort(key=lambda r: (r.station_retrograde, body_rank(r.body)))
    logger.debug("retrograde_periods_found", extra={"year": year, "count": len(out)})
    return out


def _elongation(jd: float) -> Tuple[float, float, float]:
    """``(moon - sun, moon speed - sun speed, moon longitude)`` at ``jd``."""

    sun, moon = ephem.position(jd, "Sun"), ephem.position(jd, "Moon")
    return moon["lon"] - sun["lon"], moon["speed_lon"] - sun["speed_lon"], moon["lon"]


def _lunation(name: str, angle: float, lo: float, hi: float, guess: float) -> Lunation:
    def offset(jd: float) -> Tuple[float, float]:
        e, rate, _ = _elongation(jd)
        return wrap180(e - angle), rate

    exact, _ = newton_root(offset, guess, lo, hi, steps=ROOT_STEPS, tolerance=ROOT_TOLERANCE)
    e, _, moon_lon = _elongation(exact)
    return Lunation(
        phase=name,
        exact_time=ephem.from_astronomical_time(exact),
        moon_longitude=moon_lon,
        sign=sign_name_from_lon(moon_lon),
        sign_degree=sign_degree(moon_lon),
        illumination=moon_phase(moon_lon, moon_lon - e).illumination,
    )


def lunations(year: int, phases: Optional[Iterable[str]] = None) -> List[Lunation]:
    """New, first-quarter, full and last-quarter moons falling in ``year`` (UTC)."""

    wanted = set(phases) if phases is not None else set(LUNATION_ANGLES)
    unknown = sorted(wanted - set(LUNATION_ANGLES))
    if unknown:
        raise ValidationError(f"Unknown lunation phase: {', '.join(unknown)}")
    _year_bounds(year)

    out = []
    prev: Optional[Tuple[float, float]] = None
    for jd in _noon_samples(date(year - 1, 12, 31), date(year + 1, 1, 1)):
        elong = _elongation(jd)[0]
        if prev is not None:
            p_jd, p_elong = prev
            for name, angle in LUNATION_ANGLES.items():
                if name not in wanted:
                    continue
                p_off, off = wrap180(p_elong - angle), wrap180(elong - angle)
                # Elongation grows about 12 degrees a day; a bigger jump is the wrap
                if p_off < 0.0 <= off and off - p_off < 90.0:
                    guess = p_jd + (jd - p_jd) * (-p_off / (off - p_off))
                    lun = _lunation(name, angle, p_jd, jd, guess)
                    if lun.exact_time.year == year:
                        out.append(lun)
        prev = (jd, elong)
    out.sort(key=lambda x: x.exact_time)
    logger.debug("lunations_found", extra={"year": year, "count": len(out)})
    return out
