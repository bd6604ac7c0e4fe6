from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..schemas.charts import Aspect, CelestialBodyPosition
from .constants import body_rank
from .transit_math import angle_diff, is_applying

# name -> exact angle / default max orb, in ascending angle order
ASPECT_TYPES: Dict[str, Dict[str, float]] = {
    "conjunction": {"angle": 0.0, "orb": 10.0},
    "semi_sextile": {"angle": 30.0, "orb": 2.0},
    "sextile": {"angle": 60.0, "orb": 6.0},
    "square": {"angle": 90.0, "orb": 8.0},
    "trine": {"angle": 120.0, "orb": 8.0},
    "quincunx": {"angle": 150.0, "orb": 3.0},
    "opposition": {"angle": 180.0, "orb": 10.0},
}

ASPECT_ALIASES = {
    "inconjunct": "quincunx",
    "semisextile": "semi_sextile",
    "semi-sextile": "semi_sextile",
}

DEFAULT_POLICY = {
    "types": list(ASPECT_TYPES.keys()),
    "orbs": {name: entry["orb"] for name, entry in ASPECT_TYPES.items()},
}

Positions = Union[Mapping[str, Mapping[str, Any]], Sequence[CelestialBodyPosition]]


def canonical_aspect(name: str) -> str:
    key = name.strip().lower()
    return ASPECT_ALIASES.get(key, key)


def max_orb(name: str) -> float:
    return ASPECT_TYPES[canonical_aspect(name)]["orb"]


def _angle_diff(a: float, b: float) -> float:
    """Return the minimal angular distance between two longitudes."""

    return angle_diff(a, b)


def _points(positions: Positions) -> List[Tuple[str, float, float]]:
    if isinstance(positions, Mapping):
        pts = [(name, float(p["lon"]), float(p.get("speed_lon", 0.0))) for name, p in positions.items()]
    else:
        pts = [(p.body, p.longitude, p.speed) for p in positions]
    return sorted(pts, key=lambda x: body_rank(x[0]))


def resolve_policy(policy: Optional[Mapping[str, Any]]) -> Tuple[List[str], Dict[str, float]]:
    policy = policy or {}
    types = [canonical_aspect(t) for t in policy.get("types", DEFAULT_POLICY["types"])]
    types = [t for t in ASPECT_TYPES if t in set(types)]
    orbs = dict(DEFAULT_POLICY["orbs"])
    for name, value in (policy.get("orbs") or {}).items():
        canonical = canonical_aspect(name)
        if canonical in orbs:
            orbs[canonical] = float(value)
    return types, orbs


def classify(separation: float, types: Iterable[str], orbs: Mapping[str, float]) -> Optional[Tuple[str, float]]:
    """Pick the aspect type for a separation in [0, 180].

    Among the types whose window ``angle ± orb`` contains the separation, the
    smallest actual orb wins; equal orbs go to the lower exact angle.
    """

    best: Optional[Tuple[float, float, str]] = None
    for name in types:
        angle = ASPECT_TYPES[name]["angle"]
        orb = abs(separation - angle)
        if orb <= orbs[name]:
            key = (orb, angle, name)
            if best is None or key < best:
                best = key
    if best is None:
        return None
    return best[2], best[0]


def _pair_aspect(p1: Tuple[str, float, float], p2: Tuple[str, float, float], types, orbs) -> Optional[Aspect]:
    n1, lon1, v1 = p1
    n2, lon2, v2 = p2
    d = _angle_diff(lon1, lon2)
    hit = classify(d, types, orbs)
    if hit is None:
        return None
    name, orb = hit
    angle = ASPECT_TYPES[name]["angle"]
    return Aspect(
        body1=n1,
        body2=n2,
        type=name,
        angle=angle,
        separation=d,
        orb=orb,
        applying=is_applying(lon1, v1, lon2, v2, angle),
    )


def _by_orb(res: List[Aspect]) -> List[Aspect]:
    return sorted(res, key=lambda a: (a.orb, body_rank(a.body1), body_rank(a.body2)))


def find_aspects(positions: Positions, policy: dict|None=None) -> list[Aspect]:
    types, orbs = resolve_policy(policy)
    pts = _points(positions)
    res: List[Aspect] = []
    for i in range(len(pts)):
        for j in range(i+1, len(pts)):
            asp = _pair_aspect(pts[i], pts[j], types, orbs)
            if asp is not None:
                res.append(asp)
    return _by_orb(res)


def cross_aspects(positions_a: Positions, positions_b: Positions, policy: dict|None=None) -> list[Aspect]:
    """Aspects from every body of ``positions_a`` to every body of ``positions_b``.

    ``body1`` always comes from ``positions_a``, so the same name may appear
    on both sides (Sun to Sun).
    """

    types, orbs = resolve_policy(policy)
    points_b = _points(positions_b)
    res: List[Aspect] = []
    for pa in _points(positions_a):
        for pb in points_b:
            asp = _pair_aspect(pa, pb, types, orbs)
            if asp is not None:
                res.append(asp)
    return _by_orb(res)


def detect_aspects(positions: Positions, policy: dict|None=None) -> list[Aspect]:
    """All aspects between every unordered pair of ``positions``."""

    return find_aspects(positions, policy=policy)
