import numpy as np

from curvestereo.stereo.epipolar import QuadraticCurve
from curvestereo.stereo.rasterizer import CurveRasterizer

CENTER_CELL = (26, 19)


def _distance_to_curve(curve: QuadraticCurve, x: float, y: float) -> float:
    gu, gv = curve.gradient(x, y)
    return abs(curve(x, y)) / max(np.hypot(gu, gv), 1e-12)


def test_horizontal_line_walk():
    # v - 10 = 0, walking left
    curve = QuadraticCurve(kv=1.0, k1=-10.0)
    r = CurveRasterizer((5, 10), (-20, 10), curve)
    for i in range(1, 11):
        r.step()
        assert r.position == (5 - i, 10)
    r.steps(-10)
    assert r.position == (5, 10)


def test_center_row_walks_straight_to_the_epipole(lateral_rig, stereo_params):
    stereo = lateral_rig.build_stereo(stereo_params)
    field = stereo.field
    idx = field.linear_index(*CENTER_CELL)
    assert field.pinf_px[idx].tolist() == [79, 58]
    assert field.epipole_px.tolist() == [-121, 58]

    r = field.rasterizer(idx)
    n = int(round(np.linalg.norm(field.pinf_px[idx] - field.epipole_px)))
    assert n == 200
    for _ in range(n):
        x, y = r.position
        r.step()
        assert (r.x - x, r.y - y) == (-1, 0)
        assert abs(r.curve(r.x, r.y)) < 1e-12
    assert r.position == (-121, 58)

    r.steps(-200)
    assert r.position == (79, 58)


def _check_walk(field, idx: int, n: int) -> None:
    r = field.rasterizer(idx)
    start = np.array(r.position, dtype=np.float64)
    assert _distance_to_curve(r.curve, *r.position) < 1.5
    for _ in range(n):
        x, y = r.position
        r.step()
        dx, dy = r.x - x, r.y - y
        assert abs(dx) + abs(dy) == 1
        assert _distance_to_curve(r.curve, r.x, r.y) < 2.0
    end = np.array(r.position, dtype=np.float64)
    assert np.linalg.norm(end - field.epipole_px) < np.linalg.norm(start - field.epipole_px)


def test_walks_follow_curved_epipolar_lines(lateral_rig, oblique_rig, stereo_params):
    for rig in (lateral_rig, oblique_rig):
        field = rig.build_stereo(stereo_params).field
        for cell in [(26, 5), (10, 30), (40, 12), (5, 38)]:
            idx = field.linear_index(*cell)
            assert field.valid[idx]
            _check_walk(field, idx, 30)


def test_steps_matches_sequential_walk(oblique_rig, stereo_params):
    field = oblique_rig.build_stereo(stereo_params).field
    idx = field.linear_index(12, 7)
    a = field.rasterizer(idx)
    b = field.rasterizer(idx)
    a.steps(17)
    for _ in range(17):
        b.step()
    assert a.position == b.position

    a.steps(-3)
    for _ in range(3):
        b.unstep()
    assert a.position == b.position

    c = field.rasterizer(idx)
    c.steps(0)
    assert c.position == tuple(int(v) for v in field.pinf_px[idx])


def test_rewind_then_advance_returns_to_the_start(oblique_rig, lateral_rig, stereo_params):
    for rig in (oblique_rig, lateral_rig):
        field = rig.build_stereo(stereo_params).field
        for idx in np.flatnonzero(field.valid):
            for n in (1, 2, 4):
                r = field.rasterizer(int(idx))
                start = r.position
                r.steps(-n)
                r.steps(n)
                assert r.position == start, (int(idx), n)


def test_unstep_retraces_forward_steps(oblique_rig, stereo_params):
    field = oblique_rig.build_stereo(stereo_params).field
    # top-row cell whose start pixel sits off its curve
    idx = field.linear_index(31, 0)
    assert field.valid[idx]
    r = field.rasterizer(idx)
    visited = [r.position]
    for _ in range(12):
        r.step()
        visited.append(r.position)
    for expected in reversed(visited[:-1]):
        r.unstep()
        assert r.position == expected
