import time
from itertools import combinations

from astrocalc.schemas import Aspect
from astrocalc.services.aspects import ASPECT_TYPES
from astrocalc.services.patterns import detect_patterns


def _a(b1, b2, kind, orb=0.0):
    angle = ASPECT_TYPES[kind]["angle"]
    return Aspect(body1=b1, body2=b2, type=kind, angle=angle, separation=angle + orb, orb=orb, applying=True)


def _types(patterns):
    return [p.type for p in patterns]


def test_grand_trine():
    found = detect_patterns([_a("Sun", "Mars", "trine"), _a("Mars", "Saturn", "trine"), _a("Sun", "Saturn", "trine")])
    assert _types(found) == ["grand_trine"]
    assert found[0].bodies == ["Sun", "Mars", "Saturn"]
    assert found[0].apex is None
    assert found[0].aspects == 3
    assert found[0].intensity == 100.0


def test_two_trines_are_not_a_grand_trine():
    assert detect_patterns([_a("Sun", "Mars", "trine"), _a("Mars", "Saturn", "trine")]) == []


def test_t_square_apex():
    found = detect_patterns([
        _a("Sun", "Moon", "opposition"),
        _a("Sun", "Mars", "square"),
        _a("Moon", "Mars", "square"),
    ])
    assert _types(found) == ["t_square"]
    assert found[0].apex == "Mars"
    assert found[0].bodies == ["Sun", "Moon", "Mars"]


def test_grand_cross_absorbs_its_t_squares():
    aspects = [
        _a("Sun", "Moon", "opposition"),
        _a("Mars", "Jupiter", "opposition"),
        _a("Sun", "Mars", "square"),
        _a("Sun", "Jupiter", "square"),
        _a("Moon", "Mars", "square"),
        _a("Moon", "Jupiter", "square"),
    ]
    found = detect_patterns(aspects)
    assert _types(found) == ["grand_cross"]
    assert found[0].bodies == ["Sun", "Moon", "Mars", "Jupiter"]
    assert found[0].aspects == 6


def test_yod():
    found = detect_patterns([
        _a("Venus", "Mars", "sextile", 1.0),
        _a("Venus", "Pluto", "quincunx", 1.5),
        _a("Mars", "Pluto", "quincunx", 0.0),
    ])
    assert _types(found) == ["yod"]
    assert found[0].apex == "Pluto"
    # closeness: sextile 1 - 1/6, quincunx 1 - 1.5/3 and 1
    assert found[0].intensity == round(100 * ((1 - 1 / 6) + 0.5 + 1.0) / 3, 1)


def test_kite_includes_its_grand_trine():
    aspects = [
        _a("Sun", "Jupiter", "trine"),
        _a("Jupiter", "Neptune", "trine"),
        _a("Sun", "Neptune", "trine"),
        _a("Sun", "Moon", "opposition"),
        _a("Moon", "Jupiter", "sextile"),
        _a("Moon", "Neptune", "sextile"),
    ]
    found = detect_patterns(aspects)
    assert _types(found) == ["kite", "grand_trine"]
    kite = found[0]
    assert kite.apex == "Sun"
    assert kite.bodies == ["Sun", "Moon", "Jupiter", "Neptune"]
    assert kite.aspects == 6


def test_mystic_rectangle():
    aspects = [
        _a("Sun", "Saturn", "opposition"),
        _a("Moon", "Venus", "opposition"),
        _a("Sun", "Moon", "trine"),
        _a("Saturn", "Venus", "trine"),
        _a("Sun", "Venus", "sextile"),
        _a("Moon", "Saturn", "sextile"),
    ]
    found = detect_patterns(aspects)
    assert _types(found) == ["mystic_rectangle"]
    assert found[0].bodies == ["Sun", "Moon", "Venus", "Saturn"]


def test_stellium_reports_maximal_group_only():
    bodies = ["Sun", "Mercury", "Venus", "Mars"]
    aspects = [
        _a(a, b, "conjunction", 2.0)
        for i, a in enumerate(bodies)
        for b in bodies[i + 1:]
    ]
    found = detect_patterns(aspects)
    assert _types(found) == ["stellium"]
    assert found[0].bodies == bodies
    assert found[0].aspects == 6
    assert found[0].intensity == 80.0


def test_stellium_needs_every_pair_conjunct():
    aspects = [_a("Sun", "Mercury", "conjunction"), _a("Mercury", "Venus", "conjunction")]
    assert detect_patterns(aspects) == []


def test_output_is_deterministic_regardless_of_input_order():
    aspects = [
        _a("Sun", "Moon", "opposition"),
        _a("Sun", "Mars", "square"),
        _a("Moon", "Mars", "square"),
        _a("Venus", "Jupiter", "trine"),
        _a("Jupiter", "Saturn", "trine"),
        _a("Venus", "Saturn", "trine"),
    ]
    forward = detect_patterns(aspects)
    backward = detect_patterns(list(reversed(aspects)))
    assert forward == backward
    assert _types(forward) == ["grand_trine", "t_square"]


def test_large_aspect_graph_without_conjunctions_is_fast():
    bodies = [f"Asteroid{i:02d}" for i in range(22)]
    ring = [_a(bodies[i], bodies[(i + 1) % 22], "sextile", 1.0) for i in range(22)]
    t0 = time.time()
    assert detect_patterns(ring) == []
    assert time.time() - t0 < 1.0


def test_overlapping_stelliums_in_a_crowded_graph():
    bodies = [f"Asteroid{i:02d}" for i in range(24)]
    # two conjunction cliques sharing Asteroid11, plus trines across the rest
    left, right = bodies[:12], bodies[11:]
    aspects = [_a(a, b, "conjunction", 1.0) for grp in (left, right) for a, b in combinations(grp, 2)]
    aspects += [_a(bodies[i], bodies[i + 12], "trine", 1.0) for i in range(12) if i != 11]
    t0 = time.time()
    found = [p for p in detect_patterns(aspects) if p.type == "stellium"]
    assert time.time() - t0 < 1.0
    assert [p.bodies for p in found] == [left, right]
    assert found[0].aspects == 66
