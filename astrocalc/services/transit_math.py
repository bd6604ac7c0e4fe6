"""Mathematical helpers for aspect and transit calculations.

These utilities are intentionally kept free of heavy runtime dependencies so
they can be unit-tested without requiring the Swiss Ephemeris bindings.
"""

from __future__ import annotations

from typing import Callable, Optional, Tuple

EXACT_EPSILON = 1e-6


def wrap180(x: float) -> float:
    """Normalise an angle to [-180, 180)."""

    return (x + 180.0) % 360.0 - 180.0


def angle_diff(a: float, b: float) -> float:
    """Return the minimal angular distance between two longitudes (0..180)."""

    return abs(wrap180(a - b))


def aspect_offset(lon1: float, lon2: float, aspect_angle: float) -> float:
    """Signed distance from exactness on the branch the pair currently sits on.

    ``abs(aspect_offset(...))`` is the orb. The offset is taken on whichever
    side body 1 is of body 2, so a square with body 1 trailing by 90° is as
    exact as one with it leading by 90°. Positive values mean the separation
    is wider than the exact angle when body 1 leads. The offset changes at
    the rate ``speed1 - speed2``.
    """

    d = wrap180(lon1 - lon2)
    side = 1.0 if d >= 0 else -1.0
    return wrap180(d - side * aspect_angle)


def orb_rate(
    lon1: float,
    speed1: float,
    lon2: float,
    speed2: float,
    aspect_angle: float,
) -> float:
    """Rate of change of the orb in degrees per day (negative = closing)."""

    offset = aspect_offset(lon1, lon2, aspect_angle)
    rel = speed1 - speed2
    if abs(offset) < EXACT_EPSILON:
        return abs(rel)
    return rel if offset > 0 else -rel


def is_applying(
    transit_lon: float,
    transit_speed: float,
    natal_lon: float,
    natal_speed: float,
    aspect_angle: float,
) -> bool:
    """Determine whether an aspect is applying.

    An aspect is *applying* when the angular separation between the two
    bodies is moving toward the exact aspect angle. Conversely, when the
    separation is growing the aspect is *separating*.

    Parameters
    ----------
    transit_lon
        The current ecliptic longitude of the first (transiting) body.
    transit_speed
        The longitudinal speed (degrees per day) of the first body.
    natal_lon
        The ecliptic longitude of the second (natal) body.
    natal_speed
        The longitudinal speed of the second body. This is zero for natal
        placements used as transit targets.
    aspect_angle
        The exact angular difference for the aspect (e.g. 0° for conjunction,
        90° for a square).
    """

    offset = aspect_offset(transit_lon, natal_lon, aspect_angle)
    # Already exact: treat as applying so the build-up is emphasised.
    if abs(offset) < EXACT_EPSILON:
        return True

    rel = transit_speed - natal_speed
    if abs(rel) < EXACT_EPSILON:
        # Bodies moving at an effectively identical pace are not converging.
        return False

    return orb_rate(transit_lon, transit_speed, natal_lon, natal_speed, aspect_angle) < 0


def linear_min_orb(offset: float, rate: float, half_window: float) -> Tuple[float, float]:
    """Smallest orb reached within ``±half_window`` days under linear motion.

    ``offset`` is a signed value from :func:`aspect_offset` and ``rate`` the
    speed of body 1 relative to body 2. Returns ``(min_orb, t)`` where ``t``
    is the offset in days at which the minimum occurs.
    """

    if abs(rate) < EXACT_EPSILON:
        return abs(offset), 0.0
    t_exact = -offset / rate
    if -half_window <= t_exact <= half_window:
        return 0.0, t_exact
    t_edge = half_window if t_exact > 0 else -half_window
    return abs(offset + rate * t_edge), t_edge


def newton_root(
    fn: Callable[[float], Tuple[float, float]],
    guess: float,
    lo: float,
    hi: float,
    steps: int = 6,
    tolerance: float = 1e-7,
) -> Tuple[float, float]:
    """Newton iteration for a zero of ``fn`` kept inside ``[lo, hi]``.

    ``fn(x)`` returns ``(value, slope)``. Returns ``(x, abs(value))`` of the
    best iterate seen, which is the clamped edge when the zero lies outside.
    """

    x = min(hi, max(lo, guess))
    best: Optional[Tuple[float, float]] = None
    for _ in range(steps):
        value, slope = fn(x)
        if best is None or abs(value) < best[1]:
            best = (x, abs(value))
        if abs(slope) < 1e-9:
            break
        nxt = min(hi, max(lo, x - value / slope))
        if abs(nxt - x) < tolerance:
            break
        x = nxt
    return best


__all__ = [
    "angle_diff",
    "aspect_offset",
    "is_applying",
    "linear_min_orb",
    "newton_root",
    "orb_rate",
    "wrap180",
]
