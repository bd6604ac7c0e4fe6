"""House division.

Cusps come from Swiss Ephemeris ``houses_armc``, which works on the local
sidereal frame (RAMC + obliquity) and the geographic latitude only, so
``compute_cusps`` needs no time or ephemeris lookup.

Quadrant systems that cannot be solved (inside the polar circle or when the
library rejects the frame) fall back to Whole Sign. The fallback is returned as
data, never raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

import swisseph as swe

from . import ephem
from .constants import norm360, sign_index_from_lon
from .errors import InternalComputationError, ValidationError

logger = logging.getLogger(__name__)


class HouseSystem(str, Enum):
    PLACIDUS = "placidus"
    KOCH = "koch"
    PORPHYRY = "porphyry"
    WHOLE_SIGN = "whole_sign"
    EQUAL = "equal"
    TOPOCENTRIC = "topocentric"

    @classmethod
    def parse(cls, value: "HouseSystem | str | None") -> "HouseSystem":
        if isinstance(value, HouseSystem):
            return value
        key = (value or "placidus").strip().lower().replace("-", "_").replace(" ", "_")
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Unsupported house system {value!r}",
                details=[{"allowed": [s.value for s in cls]}],
            ) from None


_ALIASES = {
    "whole": "whole_sign",
    "wholesign": "whole_sign",
    "w": "whole_sign",
    "p": "placidus",
    "k": "koch",
    "o": "porphyry",
    "a": "equal",
    "e": "equal",
    "t": "topocentric",
}


@dataclass(frozen=True)
class HouseSolution:
    """Tagged result of one solver run."""

    status: Literal["ok", "fallback", "error"]
    cusps: Tuple[float, ...]
    reason: Optional[str] = None


@dataclass(frozen=True)
class HouseResult:
    cusps: List[float]
    ascendant: float
    midheaven: float
    system: HouseSystem
    requested_system: HouseSystem
    convergence_fallback_used: bool = False
    fallback_reason: Optional[str] = None


class _Unsolvable(Exception):
    pass


SWE_CODES: Dict[HouseSystem, bytes] = {
    HouseSystem.PLACIDUS: b"P",
    HouseSystem.KOCH: b"K",
    HouseSystem.PORPHYRY: b"O",
    HouseSystem.WHOLE_SIGN: b"W",
    HouseSystem.EQUAL: b"A",
    HouseSystem.TOPOCENTRIC: b"T",
}

# Semi-arc systems are undefined once ecliptic degrees become circumpolar.
POLAR_SENSITIVE = frozenset({HouseSystem.PLACIDUS, HouseSystem.KOCH, HouseSystem.TOPOCENTRIC})


def _check_polar(lat: float, eps: float) -> None:
    if abs(lat) >= 90.0 - eps:
        raise _Unsolvable(f"latitude {lat:.4f} is inside the polar circle")


def _houses_armc(ramc: float, eps: float, lat: float, hs: HouseSystem) -> Tuple[Tuple[float, ...], float, float]:
    cusps, ascmc = swe.houses_armc(ramc, lat, eps, SWE_CODES[hs])
    return tuple(cusps[:12]), ascmc[0], ascmc[1]


def angles(ramc: float, eps: float, lat: float) -> Tuple[float, float]:
    """``(ascendant, midheaven)`` of the frame, tropical longitudes."""

    _, asc, mc = _houses_armc(ramc, eps, lat, HouseSystem.EQUAL)
    return norm360(asc), norm360(mc)


def compute_cusps(ramc: float, eps: float, lat: float, system: HouseSystem | str) -> HouseSolution:
    """Run one house system and tag the outcome.

    ``ok``: the requested system was solved. ``fallback``: it could not be
    solved and Whole Sign cusps are returned with the reason. ``error``: the
    inputs or outputs were not finite numbers, or even Whole Sign failed.
    """

    hs = HouseSystem.parse(system)
    if not all(math.isfinite(v) for v in (ramc, eps, lat)):
        return HouseSolution("error", (), f"non-finite frame ramc={ramc} eps={eps} lat={lat}")
    try:
        if hs in POLAR_SENSITIVE:
            _check_polar(lat, eps)
        cusps, _, _ = _houses_armc(ramc, eps, lat, hs)
        status, reason = "ok", None
    except (_Unsolvable, swe.Error) as exc:
        status, reason = "fallback", str(exc) or f"{hs.value} could not be solved"
        try:
            cusps, _, _ = _houses_armc(ramc, eps, lat, HouseSystem.WHOLE_SIGN)
        except swe.Error as err:
            return HouseSolution("error", (), f"whole_sign fallback failed: {err}")
    if len(cusps) != 12 or not all(math.isfinite(c) for c in cusps):
        return HouseSolution("error", (), f"{hs.value} produced non-finite cusps")
    return HouseSolution(status, tuple(norm360(c) for c in cusps), reason)


def houses_from_frame(
    ramc: float,
    eps: float,
    lat: float,
    system: HouseSystem | str = "placidus",
    ayanamsha: float = 0.0,
) -> HouseResult:
    """Solve the houses and express them in the chart's zodiac.

    ``ayanamsha`` (degrees) is subtracted from every longitude for sidereal
    charts. Whole Sign cusps are rebuilt from the shifted Ascendant so they
    stay on sidereal sign boundaries.
    """

    hs = HouseSystem.parse(system)
    solution = compute_cusps(ramc, eps, lat, hs)
    if solution.status == "error":
        raise InternalComputationError(f"House calculation failed: {solution.reason}")
    fallback = solution.status == "fallback"
    if fallback:
        logger.warning(
            "house_system_fallback",
            extra={"requested": hs.value, "used": HouseSystem.WHOLE_SIGN.value, "lat": lat, "reason": solution.reason},
        )
    used = HouseSystem.WHOLE_SIGN if fallback else hs
    try:
        asc, mc = angles(ramc, eps, lat)
    except swe.Error as exc:
        raise InternalComputationError(f"House angles failed: {exc}") from exc
    asc = norm360(asc - ayanamsha)
    mc = norm360(mc - ayanamsha)
    if used is HouseSystem.WHOLE_SIGN:
        start = sign_index_from_lon(asc) * 30.0
        cusps = [norm360(start + 30.0 * i) for i in range(12)]
    else:
        cusps = [norm360(c - ayanamsha) for c in solution.cusps]
    return HouseResult(
        cusps=cusps,
        ascendant=asc,
        midheaven=mc,
        system=used,
        requested_system=hs,
        convergence_fallback_used=fallback,
        fallback_reason=solution.reason,
    )


def compute_houses(
    jd_utc: float,
    lat: float,
    lon: float,
    system: HouseSystem | str = "placidus",
    ayanamsha: Optional[str] = None,
) -> HouseResult:
    """12 cusps, Ascendant and Midheaven; ``ayanamsha`` names a sidereal mode."""

    ramc, eps = ephem.sidereal_frame(jd_utc, lon)
    offset = ephem.ayanamsha_value(jd_utc, ayanamsha) if ayanamsha else 0.0
    return houses_from_frame(ramc, eps, lat, system, ayanamsha=offset)


def house_of(lon: float, cusps: list[float]) -> int:
    # Shift all longitudes so cusp 1 becomes 0° and walk the sectors
    shift = cusps[0]
    def norm(x):
        return (x - shift) % 360.0
    nlon = norm(lon)
    ncusps = [norm(c) for c in cusps] + [360.0]
    for i in range(12):
        if ncusps[i] <= nlon < ncusps[i+1]:
            return i+1
    return 12


def solar_whole_sign_cusps(sun_lon: float) -> list[float]:
    # Time unknown: house 1 = Sun's sign, following signs in order
    start = sign_index_from_lon(sun_lon)
    return [((start + i) % 12) * 30.0 for i in range(12)]
