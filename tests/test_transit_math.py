from astrocalc.services.transit_math import (
    angle_diff,
    aspect_offset,
    is_applying,
    linear_min_orb,
    newton_root,
    orb_rate,
)


def test_offset_normalises_within_range():
    # 190° ahead of a 180° aspect is a 10° opposition orb.
    delta = aspect_offset(200.0, 10.0, 180.0)
    assert -180.0 <= delta <= 180.0
    assert round(abs(delta), 6) == 10.0


def test_angle_diff_is_shortest_arc():
    assert angle_diff(350.0, 10.0) == 20.0
    assert angle_diff(10.0, 350.0) == 20.0
    assert angle_diff(0.0, 180.0) == 180.0


def test_aspect_offset_measures_either_side():
    # body 1 leading or trailing by 92° is the same 2° square
    assert round(aspect_offset(92.0, 0.0, 90.0), 6) == 2.0
    assert round(aspect_offset(268.0, 0.0, 90.0), 6) == -2.0
    assert round(abs(aspect_offset(359.0, 1.0, 0.0)), 6) == 2.0


def test_direct_motion_applying_and_separating():
    # Transit is 2° behind exact conjunction and moving forward -> applying.
    assert is_applying(28.0, 1.0, 30.0, 0.0, 0.0)
    # Transit is 2° ahead of exact conjunction and still moving forward -> separating.
    assert not is_applying(32.0, 1.0, 30.0, 0.0, 0.0)


def test_retrograde_motion_reverses_application():
    # Transit is past the aspect but moving retrograde back towards exact -> applying.
    assert is_applying(182.5, -0.8, 0.0, 0.0, 180.0)
    # Transit is approaching but turns retrograde away from exact -> separating.
    assert not is_applying(177.5, -0.8, 0.0, 0.0, 180.0)


def test_trailing_square_uses_its_own_branch():
    # 268° behind by 92°: moving forward closes the square at 270°
    assert is_applying(268.0, 1.0, 0.0, 0.0, 90.0)
    assert orb_rate(268.0, 1.0, 0.0, 0.0, 90.0) < 0


def test_equal_speeds_considered_separating():
    # With virtually identical speeds there is no convergence toward exact.
    assert not is_applying(62.0, 1.0, 0.0, 1.0, 60.0)


def test_exact_aspect_counts_as_applying():
    assert is_applying(120.0, 1.0, 0.0, 0.0, 120.0)


def test_linear_min_orb_inside_and_outside_window():
    # 0.3° short of exact, closing at 1°/day: exact within the day
    orb, t = linear_min_orb(-0.3, 1.0, 0.5)
    assert orb == 0.0
    assert round(t, 6) == 0.3
    # 2° short: only gets to 1.5° by the window edge
    orb, t = linear_min_orb(-2.0, 1.0, 0.5)
    assert round(orb, 6) == 1.5
    assert t == 0.5
    # stationary body keeps its orb
    assert linear_min_orb(1.2, 0.0, 0.5) == (1.2, 0.0)



def test_newton_root_finds_zero_inside_bracket():
    x, err = newton_root(lambda t: (t * t - 2.0, 2.0 * t), 1.0, 0.0, 2.0)
    assert abs(x - 2.0 ** 0.5) < 1e-9
    assert err < 1e-9


def test_newton_root_clamps_to_bracket():
    # zero at 5 lies outside [0, 1]; the closest edge is returned
    x, err = newton_root(lambda t: (t - 5.0, 1.0), 0.5, 0.0, 1.0)
    assert x == 1.0
    assert err == 4.0


def test_newton_root_stops_on_flat_slope():
    x, err = newton_root(lambda t: (3.0, 0.0), 0.25, 0.0, 1.0)
    assert (x, err) == (0.25, 3.0)
