"""Natal chart pipeline: moment -> Julian Day -> positions -> houses -> aspects."""

from __future__ import annotations

import json
import logging
import math
from hashlib import sha256
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ..schemas.charts import BirthMoment, CelestialBodyPosition, ChartOptions, ChartResult, HouseCusp
from . import aspects as aspects_svc, derivations, ephem, houses as houses_svc
from .constants import sign_degree, sign_name_from_lon
from .errors import InternalComputationError, ValidationError
from .houses import HouseSystem

logger = logging.getLogger(__name__)

UNKNOWN_TIME_WARNING = "Birth time unknown; using solar whole-sign houses from 12:00 local time."


def _validation_details(exc: PydanticValidationError) -> List[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def parse_moment(data: BirthMoment | Mapping[str, Any]) -> BirthMoment:
    """Build a :class:`BirthMoment`, raising the engine's ``ValidationError``."""

    if isinstance(data, BirthMoment):
        return data
    try:
        return BirthMoment.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid birth moment", details=_validation_details(exc)) from None


def parse_options(data: ChartOptions | Mapping[str, Any] | None) -> ChartOptions:
    if data is None:
        return ChartOptions()
    if isinstance(data, ChartOptions):
        return data
    try:
        return ChartOptions.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid chart options", details=_validation_details(exc)) from None


def cache_key(moment: BirthMoment, options: ChartOptions) -> str:
    """Content hash of the normalised inputs, for caches outside the engine."""

    seed = json.dumps(
        {"moment": moment.model_dump(mode="json"), "options": options.model_dump(mode="json")},
        sort_keys=True,
        separators=(",", ":"),
    )
    return "cht_" + sha256(seed.encode()).hexdigest()[:24]


def _ensure_finite(label: str, values: Iterable[float]) -> None:
    for v in values:
        if not math.isfinite(v):
            raise InternalComputationError(f"Non-finite {label} value in chart pipeline")


def calculate_chart(moment: BirthMoment, options: Optional[ChartOptions] = None) -> ChartResult:
    options = parse_options(options)
    moment = parse_moment(moment)

    jd = ephem.to_astronomical_time(moment.utc_datetime())
    pos = ephem.positions_ecliptic(jd, sidereal=options.sidereal, ayanamsha=options.ayanamsha)

    warnings: List[str] = []
    fallback_used, fallback_reason = False, None
    if moment.time_unknown:
        warnings.append(UNKNOWN_TIME_WARNING)
        cusps = houses_svc.solar_whole_sign_cusps(pos["Sun"]["lon"])
        asc, mc = cusps[0], cusps[9]
        used = HouseSystem.WHOLE_SIGN
    else:
        hs = houses_svc.compute_houses(
            jd, moment.latitude, moment.longitude, options.house_system, ayanamsha=options.ayanamsha,
        )
        cusps, asc, mc, used = hs.cusps, hs.ascendant, hs.midheaven, hs.system
        fallback_used, fallback_reason = hs.convergence_fallback_used, hs.fallback_reason
        if fallback_used:
            warnings.append(
                f"{options.house_system.value} houses could not be solved at latitude "
                f"{moment.latitude:.4f}; whole-sign houses used instead."
            )

    _ensure_finite("house", list(cusps) + [asc, mc])
    for name, p in pos.items():
        _ensure_finite(name, (p["lon"], p["lat"], p["dist"], p["speed_lon"]))

    planets = [
        CelestialBodyPosition(
            body=name,
            longitude=p["lon"],
            latitude=p["lat"],
            distance=p["dist"],
            speed=p["speed_lon"],
            retrograde=p["retro"],
            sign=sign_name_from_lon(p["lon"]),
            sign_degree=sign_degree(p["lon"]),
            house=houses_svc.house_of(p["lon"], cusps),
        )
        for name, p in pos.items()
    ]
    houses = [
        HouseCusp(house=i + 1, longitude=c, sign=sign_name_from_lon(c))
        for i, c in enumerate(cusps)
    ]
    aspects = aspects_svc.detect_aspects(planets)
    elements, modalities = derivations.balances(planets)

    logger.debug(
        "chart_calculated",
        extra={
            "jd": jd,
            "house_system": used.value,
            "fallback": fallback_used,
            "aspects": len(aspects),
        },
    )
    return ChartResult(
        planets=planets,
        houses=houses,
        ascendant=asc,
        midheaven=mc,
        aspects=aspects,
        house_system=used,
        requested_house_system=options.house_system,
        convergence_fallback_used=fallback_used,
        fallback_reason=fallback_reason,
        zodiac_type=options.zodiac_type,
        sidereal_mode=options.ayanamsha,
        julian_day=jd,
        time_unknown=moment.time_unknown,
        elements=elements,
        modalities=modalities,
        warnings=warnings,
    )
