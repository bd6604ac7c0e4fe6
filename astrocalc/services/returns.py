"""Solar and lunar return charts.

A return is the moment a transiting luminary comes back to its natal
longitude. Crossings are bracketed from daily noon samples and then
refined inside the bracketing day with the transit scanner's Newton step.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from ..schemas.charts import BirthMoment, ChartOptions
from ..schemas.returns import ReturnChart
from . import ephem, sky_events
from .chart import calculate_chart, parse_moment, parse_options
from .errors import InternalComputationError, ValidationError
from .transit_math import aspect_offset
from .transits_engine import refine_exact

logger = logging.getLogger(__name__)

SOLAR_SEARCH_DAYS = 3  # either side of the birthday
LUNAR_SEARCH_DAYS = 29  # a little more than one sidereal month
RETURN_TOLERANCE = 1e-4  # degrees


def _anniversary(birth: date, year: int) -> date:
    try:
        return birth.replace(year=year)
    except ValueError:
        # Feb 29 in a common year
        return date(year, 2, 28)


def _crossings(body: str, target: float, first: date, last: date, sidereal: bool, ayanamsha: Optional[str]):
    """Yield ``(jd, orb)`` for each time ``body`` passes ``target`` moving forward."""

    prev_jd, prev_off = None, None
    for day in ephem.daterange(first, last):
        jd = ephem.to_astronomical_time(ephem.noon_utc(day))
        p = ephem.position(jd, body, sidereal=sidereal, ayanamsha=ayanamsha)
        off = aspect_offset(p["lon"], target, 0.0)
        # A jump of half a circle is the wrap on the far side, not a pass
        if prev_off is not None and prev_off < 0.0 <= off and off - prev_off < 90.0:
            guess = prev_jd + (jd - prev_jd) * (-prev_off / (off - prev_off))
            yield refine_exact(body, target, 0.0, guess, prev_jd + 0.5, sidereal, ayanamsha)
        prev_jd, prev_off = jd, off


def _return_chart(
    kind: str,
    body: str,
    target: float,
    hit: Tuple[float, float],
    natal: BirthMoment,
    options: ChartOptions,
    latitude: Optional[float],
    longitude: Optional[float],
) -> ReturnChart:
    jd, orb = hit
    if orb > RETURN_TOLERANCE:
        raise InternalComputationError(f"{kind} return did not converge (orb {orb:.6f})")
    when = ephem.from_astronomical_time(jd)
    moment = parse_moment({
        "date": when.date(),
        "time": when.time().replace(tzinfo=None),
        "latitude": natal.latitude if latitude is None else latitude,
        "longitude": natal.longitude if longitude is None else longitude,
        "timezone": "UTC",
    })
    chart = calculate_chart(moment, options)
    lons = {p.body: p.longitude for p in chart.planets}
    logger.debug("return_found", extra={"kind": kind, "jd": jd, "orb": orb})
    return ReturnChart(
        kind=kind,
        body=body,
        target_longitude=target,
        exact_time=when,
        orb=orb,
        moment=moment,
        chart=chart,
        moon_phase=sky_events.moon_phase(lons["Moon"], lons["Sun"]),
    )


def _natal_longitude(moment: BirthMoment, options: ChartOptions, body: str) -> float:
    natal = calculate_chart(moment, options)
    return next(p.longitude for p in natal.planets if p.body == body)


def solar_return(
    moment: BirthMoment,
    year: int,
    options: Optional[ChartOptions] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ReturnChart:
    """Chart for the Sun's return to its natal longitude in ``year``."""

    moment, options = parse_moment(moment), parse_options(options)
    if not 1 <= year <= 9999:
        raise ValidationError(f"Year out of range: {year}")
    target = _natal_longitude(moment, options, "Sun")
    birthday = _anniversary(moment.date, year)
    first = birthday - timedelta(days=SOLAR_SEARCH_DAYS)
    last = birthday + timedelta(days=SOLAR_SEARCH_DAYS)
    hit = next(_crossings("Sun", target, first, last, options.sidereal, options.ayanamsha), None)
    if hit is None:
        raise InternalComputationError(f"No solar return found near {birthday.isoformat()}")
    return _return_chart("solar", "Sun", target, hit, moment, options, latitude, longitude)


def lunar_return(
    moment: BirthMoment,
    after: date,
    options: Optional[ChartOptions] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ReturnChart:
    """Chart for the first lunar return at or after midnight UTC of ``after``."""

    moment, options = parse_moment(moment), parse_options(options)
    target = _natal_longitude(moment, options, "Moon")
    start_jd = ephem.to_astronomical_time(ephem.noon_utc(after)) - 0.5
    first = after - timedelta(days=1)
    last = after + timedelta(days=LUNAR_SEARCH_DAYS)
    for hit in _crossings("Moon", target, first, last, options.sidereal, options.ayanamsha):
        if hit[0] >= start_jd:
            return _return_chart("lunar", "Moon", target, hit, moment, options, latitude, longitude)
    raise InternalComputationError(f"No lunar return found after {after.isoformat()}")
