from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..schemas.charts import CelestialBodyPosition, ChartResult, HouseCusp
from ..schemas.transits import (
    CalendarDay,
    PLANETS,
    TransitCalendarResponse,
    TransitEvent,
    TransitForecastResponse,
    TransitHit,
    TransitOptions,
)
from . import aspects as aspects_svc, ephem, sky_events
from .constants import BODY_NAMES, body_rank
from .errors import ScanCancelled, ValidationError
from .houses import house_of
from .transit_math import aspect_offset, is_applying, linear_min_orb, newton_root

logger = logging.getLogger(__name__)

# Multipliers on the 0..100 intensity scale; the closest, heaviest contacts
# to the luminaries and angles score highest.
ASPECT_WEIGHTS = {
    "conjunction": 1.0,
    "opposition": 0.95,
    "square": 0.9,
    "trine": 0.8,
    "sextile": 0.6,
    "quincunx": 0.5,
    "semi_sextile": 0.4,
}
TRANSIT_BODY_WEIGHTS = {
    "Sun": 0.9, "Moon": 0.6, "Mercury": 0.7, "Venus": 0.75, "Mars": 0.8,
    "Jupiter": 0.85, "Saturn": 0.95, "Uranus": 1.0, "Neptune": 1.0, "Pluto": 1.0,
    "TrueNode": 0.7, "Chiron": 0.75,
}
NATAL_TARGET_WEIGHTS = {"Sun": 1.0, "Moon": 1.0, "Ascendant": 1.0, "Midheaven": 1.0}
DEFAULT_TARGET_WEIGHT = 0.85

OUTER_PLANETS = ["Jupiter", "Saturn", "Uranus", "Neptune", "Pluto"]

CALENDAR_ASPECTS = ["conjunction", "opposition", "square", "trine"]
CALENDAR_ORB = 2.0
FORECAST_ORB = 1.0
FORECAST_MONTHS = {"week": None, "month": 1, "quarter": 3, "year": 12}
FORECAST_EVENT_LIMIT = 50

DAY_HALF_WINDOW = 0.5
NEWTON_STEPS = 6
NEWTON_TOLERANCE = 1e-7  # days, well under a second

DEFAULT_MAX_DAYS = 366


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


Key = Tuple[str, str, str]


@dataclass
class _Run:
    """Contiguous hit days for one (transit body, natal point, aspect)."""

    key: Key
    start: date
    end: date
    applying_at_start: bool
    peak: date
    peak_orb: float
    peak_jd: float


def _utc_now_date() -> date:
    return datetime.now(timezone.utc).date()


def max_scan_days(options: Optional[TransitOptions] = None) -> int:
    if options is not None and options.max_days:
        return options.max_days
    return int(os.getenv("TRANSIT_MAX_DAYS", str(DEFAULT_MAX_DAYS)))


def _check_names(names: Iterable[str], allowed: Iterable[str], label: str) -> None:
    allowed = set(allowed)
    unknown = [n for n in names if n not in allowed]
    if unknown:
        raise ValidationError(
            f"Unknown {label}: {', '.join(unknown)}",
            details=[{"loc": [label], "msg": f"allowed: {sorted(allowed)}"}],
        )


def _zodiac(natal: ChartResult) -> Tuple[bool, Optional[str]]:
    sidereal = natal.zodiac_type == "sidereal"
    return sidereal, (natal.sidereal_mode or "lahiri") if sidereal else None


def natal_points(natal: ChartResult) -> Dict[str, float]:
    """Longitudes the scanner aims at: planets, plus the angles when timed."""

    pts = {p.body: p.longitude for p in natal.planets}
    if not natal.time_unknown:
        pts["Ascendant"] = natal.ascendant
        pts["Midheaven"] = natal.midheaven
    return pts


def _targets(natal: ChartResult, options: TransitOptions) -> Dict[str, float]:
    pts = natal_points(natal)
    if options.natal_targets is None:
        return pts
    _check_names(options.natal_targets, BODY_NAMES, "natal_targets")
    missing = [n for n in options.natal_targets if n not in pts]
    if missing:
        logger.debug("transit_targets_unavailable", extra={"targets": missing})
    return {n: pts[n] for n in sorted(set(options.natal_targets), key=body_rank) if n in pts}


def _intensity(aspect: str, orb: float, limit: float, t_body: str, n_body: str) -> float:
    closeness = max(0.0, 1.0 - orb / max(limit, 1e-9))
    score = (
        100.0
        * closeness
        * ASPECT_WEIGHTS.get(aspect, 0.5)
        * TRANSIT_BODY_WEIGHTS.get(t_body, 0.75)
        * NATAL_TARGET_WEIGHTS.get(n_body, DEFAULT_TARGET_WEIGHT)
    )
    return round(min(100.0, max(0.0, score)), 1)


def refine_exact(
    t_body: str,
    n_lon: float,
    angle: float,
    guess_jd: float,
    day_noon_jd: float,
    sidereal: bool,
    ayanamsha: Optional[str],
) -> Tuple[float, float]:
    """Newton iteration on the aspect offset, kept inside one day.

    The window is ``day_noon_jd`` ± half a day. Returns ``(jd, orb)`` of the
    closest approach found.
    """

    def offset(jd: float) -> Tuple[float, float]:
        p = ephem.position(jd, t_body, sidereal=sidereal, ayanamsha=ayanamsha)
        return aspect_offset(p["lon"], n_lon, angle), p["speed_lon"]

    return newton_root(
        offset,
        guess_jd,
        day_noon_jd - DAY_HALF_WINDOW,
        day_noon_jd + DAY_HALF_WINDOW,
        steps=NEWTON_STEPS,
        tolerance=NEWTON_TOLERANCE,
    )


def _validate_range(start: date, end: date, options: TransitOptions) -> None:
    if end < start:
        raise ValidationError(
            f"end_date {end.isoformat()} precedes start_date {start.isoformat()}",
            details=[{"loc": ["end_date"], "msg": "must not precede start_date"}],
        )
    limit = max_scan_days(options)
    span = (end - start).days + 1
    if span > limit:
        raise ValidationError(
            f"Transit range of {span} days exceeds the limit of {limit} days",
            details=[{"loc": ["end_date"], "msg": f"at most {limit} days per scan"}],
        )


def _check_cancel(cancel: Optional[CancelToken], day: date) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("transit_scan_cancelled", extra={"day": day.isoformat()})
        raise ScanCancelled(f"Transit scan cancelled at {day.isoformat()}")


def calculate_transits(
    natal_chart: ChartResult,
    start_date: date,
    end_date: date,
    options: Optional[TransitOptions] = None,
    cancel: Optional[CancelToken] = None,
) -> List[TransitEvent]:
    """Scan ``start_date..end_date`` (inclusive) for transits to the natal chart.

    Each day is sampled once at 12:00 UT. The minimum orb within the day is
    estimated from the body's linear motion over the surrounding ±12 hours,
    days within ``options.orb`` are merged into events, and the best day of
    every event is refined to an exact ``peak_time``.
    """

    options = options or TransitOptions()
    _validate_range(start_date, end_date, options)
    _check_names(options.transit_bodies, ephem.BODIES, "transit_bodies")

    sidereal, ayanamsha = _zodiac(natal_chart)
    targets = _targets(natal_chart, options)
    kinds = [k for k in aspects_svc.ASPECT_TYPES if k in set(options.aspect_types)]
    bodies = sorted(set(options.transit_bodies), key=body_rank)

    logger.info(
        "transit_scan_started",
        extra={
            "start": start_date.isoformat(),
            "end": end_date.isoformat(),
            "bodies": len(bodies),
            "targets": len(targets),
        },
    )

    open_runs: Dict[Key, _Run] = {}
    closed: List[_Run] = []
    for day in ephem.daterange(start_date, end_date):
        _check_cancel(cancel, day)
        jd = ephem.to_astronomical_time(ephem.noon_utc(day))
        tr = ephem.positions_ecliptic(jd, sidereal=sidereal, ayanamsha=ayanamsha, bodies=bodies)

        hits: Dict[Key, Tuple[float, float, bool]] = {}
        for t_name, t_pos in tr.items():
            for n_name, n_lon in targets.items():
                for kind in kinds:
                    angle = aspects_svc.ASPECT_TYPES[kind]["angle"]
                    offset = aspect_offset(t_pos["lon"], n_lon, angle)
                    min_orb, t_min = linear_min_orb(offset, t_pos["speed_lon"], DAY_HALF_WINDOW)
                    if min_orb <= options.orb:
                        applying = is_applying(t_pos["lon"], t_pos["speed_lon"], n_lon, 0.0, angle)
                        hits[(t_name, n_name, kind)] = (min_orb, jd + t_min, applying)

        for key in [k for k in open_runs if k not in hits]:
            closed.append(open_runs.pop(key))
        for key, (min_orb, peak_jd, applying) in hits.items():
            run = open_runs.get(key)
            if run is None:
                open_runs[key] = _Run(key, day, day, applying, day, min_orb, peak_jd)
                continue
            run.end = day
            if min_orb < run.peak_orb:
                run.peak, run.peak_orb, run.peak_jd = day, min_orb, peak_jd
    closed.extend(open_runs.values())

    events = [_event(run, targets, options.orb, sidereal, ayanamsha) for run in closed]
    events.sort(key=lambda e: (
        e.start, e.peak, body_rank(e.transit_body), body_rank(e.natal_body),
        aspects_svc.ASPECT_TYPES[e.aspect]["angle"],
    ))
    logger.debug("transit_scan_finished", extra={"events": len(events)})
    return events


def _event(run: _Run, targets: Mapping[str, float], limit: float, sidereal: bool, ayanamsha: Optional[str]) -> TransitEvent:
    t_name, n_name, kind = run.key
    angle = aspects_svc.ASPECT_TYPES[kind]["angle"]
    noon_jd = ephem.to_astronomical_time(ephem.noon_utc(run.peak))
    peak_jd, orb = refine_exact(t_name, targets[n_name], angle, run.peak_jd, noon_jd, sidereal, ayanamsha)
    orb = min(orb, limit)
    return TransitEvent(
        transit_body=t_name,
        natal_body=n_name,
        aspect=kind,
        start=run.start,
        peak=run.peak,
        end=run.end,
        peak_time=ephem.from_astronomical_time(peak_jd),
        orb=round(orb, 4),
        applying_at_start=run.applying_at_start,
        intensity=_intensity(kind, orb, limit, t_name, n_name),
    )


def transit_calendar(natal_chart: ChartResult, year: int, month: int, cancel: Optional[CancelToken] = None) -> TransitCalendarResponse:
    """Per-day tight hard/soft major contacts, lunar phase and retrogrades for a month.

    Quiet days (no contact, no new or full moon, nothing retrograde) are left out.
    """

    sidereal, ayanamsha = _zodiac(natal_chart)
    targets = natal_points(natal_chart)
    days: List[CalendarDay] = []
    for day in ephem.month_days(year, month):
        _check_cancel(cancel, day)
        jd = ephem.to_astronomical_time(ephem.noon_utc(day))
        tr = ephem.positions_ecliptic(jd, sidereal=sidereal, ayanamsha=ayanamsha, bodies=PLANETS)

        hits = []
        for t_name, t_pos in tr.items():
            for n_name, n_lon in targets.items():
                for kind in CALENDAR_ASPECTS:
                    angle = aspects_svc.ASPECT_TYPES[kind]["angle"]
                    orb = abs(aspect_offset(t_pos["lon"], n_lon, angle))
                    if orb <= CALENDAR_ORB:
                        hits.append(TransitHit(
                            transit_body=t_name,
                            natal_body=n_name,
                            aspect=kind,
                            orb=round(orb, 2),
                            applying=is_applying(t_pos["lon"], t_pos["speed_lon"], n_lon, 0.0, angle),
                        ))
        hits.sort(key=lambda h: (h.orb, body_rank(h.transit_body), body_rank(h.natal_body)))

        phase = sky_events.moon_phase(tr["Moon"]["lon"], tr["Sun"]["lon"])
        retrogrades = sky_events.retrograde_bodies(tr)
        if hits or phase.phase in ("new", "full") or retrogrades:
            days.append(CalendarDay(date=day, aspects=hits, moon_phase=phase, retrogrades=retrogrades))

    logger.debug("transit_calendar_built", extra={"year": year, "month": month, "days": len(days)})
    return TransitCalendarResponse(year=year, month=month, days=days)


def _add_months(d: date, months: int) -> date:
    idx = d.month - 1 + months
    year, month = d.year + idx // 12, idx % 12 + 1
    return date(year, month, min(d.day, ephem.days_in_month(year, month)))


def forecast_window(duration: str, today: date) -> Tuple[date, date]:
    if duration not in FORECAST_MONTHS:
        raise ValidationError(
            f"Unknown forecast duration {duration!r}",
            details=[{"loc": ["duration"], "msg": f"allowed: {list(FORECAST_MONTHS)}"}],
        )
    months = FORECAST_MONTHS[duration]
    end = today + timedelta(days=7) if months is None else _add_months(today, months)
    # at most a year of days, today included
    return today, min(end, today + timedelta(days=365))


def transit_forecast(
    natal_chart: ChartResult,
    duration: str = "month",
    today: Optional[date] = None,
    cancel: Optional[CancelToken] = None,
) -> TransitForecastResponse:
    """Slow-planet contacts (orb <= 1°) over the coming week, month, quarter or year."""

    start, end = forecast_window(duration, today or _utc_now_date())
    options = TransitOptions(
        transit_bodies=OUTER_PLANETS,
        orb=FORECAST_ORB,
        max_days=(end - start).days + 1,
    )
    events = calculate_transits(natal_chart, start, end, options=options, cancel=cancel)
    by_aspect: Dict[str, int] = {}
    for e in events:
        by_aspect[e.aspect] = by_aspect.get(e.aspect, 0) + 1
    return TransitForecastResponse(
        duration=duration,
        start_date=start,
        end_date=end,
        events=events[:FORECAST_EVENT_LIMIT],
        by_aspect=by_aspect,
    )


def transit_house_positions(
    transit_positions: Union[Mapping[str, Mapping[str, Any]], Sequence[CelestialBodyPosition]],
    natal_houses: Sequence[Union[float, HouseCusp]],
) -> Dict[str, int]:
    """Natal house occupied by each transiting body."""

    if len(natal_houses) != 12:
        raise ValidationError(f"Expected 12 natal house cusps, got {len(natal_houses)}")
    cusps = [h.longitude if isinstance(h, HouseCusp) else float(h) for h in natal_houses]
    if isinstance(transit_positions, Mapping):
        lons = {name: float(p["lon"]) for name, p in transit_positions.items()}
    else:
        lons = {p.body: p.longitude for p in transit_positions}
    return {name: house_of(lons[name], cusps) for name in sorted(lons, key=body_rank)}
