"""Relationship charts: synastry (cross-chart aspects) and midpoint composites."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..schemas.charts import ChartResult
from ..schemas.synastry import CompositeChart, CompositePoint, SynastryAspect
from . import aspects as aspects_svc
from .constants import body_rank, norm360, sign_degree, sign_name_from_lon
from .transit_math import wrap180

logger = logging.getLogger(__name__)

ASPECT_AFFECTION = {
    "conjunction": 3,
    "trine": 2,
    "sextile": 1,
    "semi_sextile": 0,
    "quincunx": -1,
    "square": -2,
    "opposition": -2,
}
PAIR_WEIGHTS = {
    ("Sun", "Sun"): 2,
    ("Sun", "Moon"): 3,
    ("Moon", "Moon"): 3,
    ("Venus", "Mars"): 3,
    ("Venus", "Venus"): 2,
    ("Mars", "Mars"): 2,
}
SCORE_CLAMP = 30.0


def _pair_weight(a: str, b: str) -> int:
    return PAIR_WEIGHTS.get((a, b)) or PAIR_WEIGHTS.get((b, a)) or 1


def chart_points(chart: ChartResult) -> Dict[str, Dict[str, float]]:
    """Planets plus the angles when the birth time is known."""

    out = {p.body: {"lon": p.longitude, "speed_lon": p.speed} for p in chart.planets}
    if not chart.time_unknown:
        out["Ascendant"] = {"lon": chart.ascendant, "speed_lon": 0.0}
        out["Midheaven"] = {"lon": chart.midheaven, "speed_lon": 0.0}
    return out


def synastry_aspects(
    chart_a: ChartResult,
    chart_b: ChartResult,
    policy: Optional[Dict[str, Any]] = None,
) -> List[SynastryAspect]:
    """Aspects from each point of ``chart_a`` to each point of ``chart_b``.

    ``weight`` is signed: harmonious contacts are positive, hard ones
    negative, scaled by the pair's importance and by how tight the orb is.
    """

    _, orbs = aspects_svc.resolve_policy(policy)
    out = []
    for asp in aspects_svc.cross_aspects(chart_points(chart_a), chart_points(chart_b), policy=policy):
        closeness = 1.0 - min(asp.orb / max(0.1, orbs[asp.type]), 1.0)
        weight = ASPECT_AFFECTION.get(asp.type, 0) * _pair_weight(asp.body1, asp.body2) * closeness
        out.append(SynastryAspect(
            body_a=asp.body1,
            body_b=asp.body2,
            type=asp.type,
            angle=asp.angle,
            separation=asp.separation,
            orb=asp.orb,
            applying=asp.applying,
            weight=round(weight, 2),
        ))
    logger.debug("synastry_aspects_found", extra={"count": len(out)})
    return out


def compatibility_score(syn: List[SynastryAspect]) -> float:
    """Sum of weights squeezed onto 0..100; 50 is neutral."""

    s = sum(x.weight for x in syn)
    s = max(-SCORE_CLAMP, min(SCORE_CLAMP, s))
    return round((s + SCORE_CLAMP) / (2 * SCORE_CLAMP) * 100.0, 1)


def midpoint(lon_a: float, lon_b: float) -> float:
    """Midpoint on the shorter arc between two longitudes."""

    return norm360(lon_a + wrap180(lon_b - lon_a) / 2.0)


def composite_chart(chart_a: ChartResult, chart_b: ChartResult) -> CompositeChart:
    """Midpoint composite of the points both charts share, with its aspects."""

    pa, pb = chart_points(chart_a), chart_points(chart_b)
    shared = sorted(set(pa) & set(pb), key=body_rank)
    positions: Dict[str, Dict[str, float]] = {}
    points = []
    for name in shared:
        lon = midpoint(pa[name]["lon"], pb[name]["lon"])
        speed = (pa[name]["speed_lon"] + pb[name]["speed_lon"]) / 2.0
        positions[name] = {"lon": lon, "speed_lon": speed}
        points.append(CompositePoint(
            body=name,
            longitude=lon,
            speed=speed,
            sign=sign_name_from_lon(lon),
            sign_degree=sign_degree(lon),
        ))
    return CompositeChart(points=points, aspects=aspects_svc.detect_aspects(positions))
