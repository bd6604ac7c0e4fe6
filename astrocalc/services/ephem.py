"""Swiss Ephemeris helpers: calendar/Julian Day conversion and body positions.

Every function here is a pure query against the (read-only) ephemeris; nothing
is cached between calls.
"""

from __future__ import annotations

import calendar
import logging
import math
import os
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo

import swisseph as swe

from .constants import body_rank, norm360
from .errors import EphemerisRangeError, InternalComputationError, ValidationError

logger = logging.getLogger(__name__)


# Engine version for API responses
try:
    ENGINE_VERSION = f"swisseph-{swe.version}"
except AttributeError:
    ENGINE_VERSION = "swisseph-2.10"  # Fallback if version not available

BODIES: Dict[str, int] = {
    "Sun": swe.SUN,
    "Moon": swe.MOON,
    "Mercury": swe.MERCURY,
    "Venus": swe.VENUS,
    "Mars": swe.MARS,
    "Jupiter": swe.JUPITER,
    "Saturn": swe.SATURN,
    "Uranus": swe.URANUS,
    "Neptune": swe.NEPTUNE,
    "Pluto": swe.PLUTO,
    "TrueNode": swe.TRUE_NODE,
    "Chiron": swe.CHIRON,
}

# Chiron needs the asteroid files, so it is opt-in.
CHART_BODIES: List[str] = [
    "Sun", "Moon", "Mercury", "Venus", "Mars", "Jupiter",
    "Saturn", "Uranus", "Neptune", "Pluto", "TrueNode",
]

AYANAMSHA_MAP = {
    "lahiri": swe.SIDM_LAHIRI,
    "fagan_bradley": swe.SIDM_FAGAN_BRADLEY,
    "krishnamurti": swe.SIDM_KRISHNAMURTI,
    "raman": swe.SIDM_RAMAN,
    "yukteshwar": swe.SIDM_YUKTESHWAR,
    "deluce": swe.SIDM_DELUCE,
    "djwhal_khul": swe.SIDM_DJWHAL_KHUL,
    "true_citra": swe.SIDM_TRUE_CITRA,
}

# Approximate Julian Day spans of each backend. The Moshier theory covers
# 3000 BC..3000 AD; the compressed Swiss files cover 13201 BC..17191 AD.
SUPPORTED_SPAN: Dict[str, Tuple[float, float]] = {
    "moseph": (625000.5, 2818000.5),
    "swieph": (-3100015.5, 7999931.5),
}

_GREGORIAN_EPOCH_JD = 2440587.5  # 1970-01-01T00:00:00Z

# swe.set_sid_mode mutates library-global state; sidereal queries hold this
# lock so concurrent callers with different modes cannot interleave.
_SIDEREAL_LOCK = threading.Lock()


def backend_name() -> str:
    raw_backend = os.getenv("EPHEMERIS_BACKEND")
    backend = raw_backend.strip().lower() if raw_backend else "swieph"
    return "moseph" if backend == "moseph" else "swieph"


def _backend_flag() -> int:
    """Return the Swiss Ephemeris backend flag based on environment configuration."""

    return swe.FLG_MOSEPH if backend_name() == "moseph" else swe.FLG_SWIEPH


def init_paths(ephe_dir: str | os.PathLike[str] | None) -> None:
    """Set the Swiss Ephemeris file search path when available."""

    if not ephe_dir:
        return

    path = os.fspath(ephe_dir)
    if os.path.isdir(path):
        swe.set_ephe_path(path)


def ayanamsha_code(name: Optional[str]) -> int:
    key = (name or "lahiri").strip().lower()
    try:
        return AYANAMSHA_MAP[key]
    except KeyError:
        raise ValidationError(
            f"Unknown sidereal mode {name!r}",
            details=[{"allowed": sorted(AYANAMSHA_MAP)}],
        ) from None


# ---------------------------------------------------------------------------
# Time scale
# ---------------------------------------------------------------------------

def to_astronomical_time(dt: datetime) -> float:
    """Convert a datetime to a Julian Day in UT (Gregorian calendar).

    Naive datetimes are taken to be UTC. Seconds and microseconds are folded
    into the fractional hour so the result is accurate well below a second.
    """

    if dt.tzinfo is None:
        dt_utc = dt.replace(tzinfo=timezone.utc)
    else:
        dt_utc = dt.astimezone(timezone.utc)
    hour = (
        dt_utc.hour
        + dt_utc.minute / 60
        + dt_utc.second / 3600
        + dt_utc.microsecond / 3_600_000_000
    )
    return swe.julday(dt_utc.year, dt_utc.month, dt_utc.day, hour, swe.GREG_CAL)


def to_jd_utc(date_str: str, time_str: str, tz: str) -> float:
    """Convert a local date/time to a Julian day in UTC."""

    try:
        dt_local = datetime.fromisoformat(f"{date_str}T{time_str}").replace(tzinfo=ZoneInfo(tz))
    except (ValueError, KeyError) as exc:
        raise ValidationError(f"Malformed date/time {date_str!r} {time_str!r} ({tz})") from exc
    return to_astronomical_time(dt_local)


def from_astronomical_time(jd: float) -> datetime:
    """Inverse of :func:`to_astronomical_time`, rounded to the second."""

    seconds = round((jd - _GREGORIAN_EPOCH_JD) * 86400.0)
    return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seconds)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_days(year: int, month: int) -> List[date]:
    """Every valid calendar day of ``month`` (leap years included)."""

    if not 1 <= month <= 12:
        raise ValidationError(f"Month out of range: {month}")
    return [date(year, month, d) for d in range(1, days_in_month(year, month) + 1)]


def daterange(d0: date, d1: date, step_days: int = 1) -> Iterator[date]:
    cur = d0
    while cur <= d1:
        yield cur
        cur = cur + timedelta(days=step_days)


def noon_utc(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc)


def check_range(jd: float) -> None:
    backend = backend_name()
    lo, hi = SUPPORTED_SPAN[backend]
    if not math.isfinite(jd):
        raise InternalComputationError(f"Non-finite Julian Day {jd!r}")
    if not lo <= jd <= hi:
        raise EphemerisRangeError(
            f"Julian Day {jd:.5f} is outside the {backend} span [{lo}, {hi}]",
            jd=jd,
        )


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

def _calc(jd_utc: float, code: int, flag: int) -> Tuple[float, ...]:
    try:
        values, _ = swe.calc_ut(jd_utc, code, flag)
    except swe.Error as exc:
        message = str(exc)
        if "range" in message.lower() or "outside" in message.lower():
            raise EphemerisRangeError(message, jd=jd_utc) from exc
        raise InternalComputationError(f"Swiss Ephemeris error for body {code}: {message}") from exc
    return tuple(values)


def position(
    jd_utc: float,
    body: str,
    sidereal: bool = False,
    ayanamsha: Optional[str] = "lahiri",
) -> Dict[str, float]:
    """Ecliptic longitude, latitude, distance and daily speed of one body."""

    try:
        code = BODIES[body]
    except KeyError:
        raise ValidationError(f"Unknown body {body!r}") from None
    check_range(jd_utc)

    flag = _backend_flag() | swe.FLG_SPEED
    if sidereal:
        mode = ayanamsha_code(ayanamsha)
        with _SIDEREAL_LOCK:
            swe.set_sid_mode(mode, 0, 0)
            values = _calc(jd_utc, code, flag | swe.FLG_SIDEREAL)
    else:
        values = _calc(jd_utc, code, flag)

    lon, lat, dist, lon_speed = values[0], values[1], values[2], values[3]
    if not all(math.isfinite(v) for v in (lon, lat, dist, lon_speed)):
        raise InternalComputationError(f"Non-finite position for {body} at JD {jd_utc}")
    return {
        "lon": norm360(lon),
        "lat": lat,
        "dist": dist,
        "speed_lon": lon_speed,
    }


def positions_ecliptic(
    jd_utc: float,
    sidereal: bool = False,
    ayanamsha: Optional[str] = "lahiri",
    bodies: Optional[Iterable[str]] = None,
) -> Dict[str, Dict[str, float]]:
    """Return ecliptic positions for the chart bodies in canonical order."""

    names = list(bodies) if bodies is not None else CHART_BODIES
    out: Dict[str, Dict[str, float]] = {}
    for name in sorted(names, key=body_rank):
        pos = position(jd_utc, name, sidereal=sidereal, ayanamsha=ayanamsha)
        pos["retro"] = pos["speed_lon"] < 0
        out[name] = pos
    return out


def sidereal_frame(jd_utc: float, geo_lon: float) -> Tuple[float, float]:
    """Return ``(ramc, true_obliquity)`` in degrees for the house calculator."""

    check_range(jd_utc)
    gst_hours = swe.sidtime(jd_utc)
    ramc = norm360(gst_hours * 15.0 + geo_lon)
    nut = _calc(jd_utc, swe.ECL_NUT, 0)
    eps = nut[0]
    if not (math.isfinite(ramc) and math.isfinite(eps)):
        raise InternalComputationError(f"Non-finite sidereal frame at JD {jd_utc}")
    return ramc, eps


def ayanamsha_value(jd_utc: float, ayanamsha: Optional[str]) -> float:
    """Ayanamsha in degrees, used to shift sidereal house cusps."""

    mode = ayanamsha_code(ayanamsha)
    check_range(jd_utc)
    with _SIDEREAL_LOCK:
        swe.set_sid_mode(mode, 0, 0)
        value = swe.get_ayanamsa_ut(jd_utc)
    return value
