import numpy as np

from curvestereo.core.geometry import Pose, round_half_away, triangulate_midpoint


def _random_pose(rng: np.random.Generator) -> Pose:
    t = rng.normal(size=3)
    rvec = rng.normal(scale=0.5, size=3)
    return Pose.from_vector(*t, *rvec)


def test_round_half_away_from_zero():
    x = np.array([-2.5, -1.5, -0.5, -0.4, 0.4, 0.5, 1.5, 2.5])
    assert np.array_equal(round_half_away(x), [-3.0, -2.0, -1.0, -0.0, 0.0, 1.0, 2.0, 3.0])


def test_pose_vector_roundtrip():
    rng = np.random.default_rng(0)
    for _ in range(20):
        pose = _random_pose(rng)
        again = Pose.from_vector(*pose.to_vector())
        assert np.allclose(again.R, pose.R, atol=1e-12)
        assert np.allclose(again.t, pose.t, atol=1e-12)


def test_pose_inverse_queries_are_consistent():
    rng = np.random.default_rng(1)
    pose = _random_pose(rng)
    assert np.allclose(pose.rot_mat @ pose.rot_mat_inv, np.eye(3), atol=1e-12)
    assert np.allclose(pose.trans_inv, -pose.R.T @ pose.t)
    inv = pose.inverse()
    assert np.allclose(inv.trans, pose.trans_inv)
    ident = pose.compose(inv)
    assert np.allclose(ident.R, np.eye(3), atol=1e-12)
    assert np.allclose(ident.t, 0.0, atol=1e-12)


def test_pose_transform_roundtrip_and_composition():
    rng = np.random.default_rng(2)
    a = _random_pose(rng)
    b = _random_pose(rng)
    pts = rng.normal(size=(50, 3))

    assert np.allclose(a.inverse_transform(a.transform(pts)), pts, atol=1e-12)
    assert np.allclose(a.compose(b).transform(pts), a.transform(b.transform(pts)), atol=1e-12)
    assert np.allclose(a.inverse_compose(b).transform(pts), a.inverse_transform(b.transform(pts)), atol=1e-12)
    assert np.allclose(a.rotate(pts), (a.R @ pts.T).T)
    assert np.allclose(a.inverse_rotate(a.rotate(pts)), pts, atol=1e-12)


def test_triangulation_midpoint_hits_known_point():
    target = np.array([1.0, -0.5, 5.0], dtype=np.float64)
    o1 = np.array([0.0, 0.0, 0.0], dtype=np.float64)
    o2 = np.array([0.5, 0.0, 0.0], dtype=np.float64)
    d1 = target - o1
    d2 = target - o2
    d1 /= np.linalg.norm(d1)
    d2 /= np.linalg.norm(d2)
    xyz, dist = triangulate_midpoint(o1, d1, o2, d2)
    assert np.linalg.norm(xyz - target) < 1e-9
    assert dist < 1e-9


def test_triangulation_midpoint_parallel_rays_are_nan():
    d = np.array([0.0, 0.0, 1.0])
    xyz, dist = triangulate_midpoint(np.zeros(3), d, np.array([0.5, 0.0, 0.0]), 2.0 * d)
    assert np.all(np.isnan(xyz))
    assert np.isnan(dist)


def test_triangulation_midpoint_skew_rays():
    # x-axis and a line parallel to y through (0, 0, 1): closest points (0,0,0) and (0,0,1)
    xyz, dist = triangulate_midpoint(
        np.zeros(3), np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 1.0]), np.array([0.0, 1.0, 0.0])
    )
    assert np.allclose(xyz, [0.0, 0.0, 0.5])
    assert abs(dist - 1.0) < 1e-12


def test_triangulation_midpoint_determinant_threshold():
    # |v1.v1 v2.v2 - (v1.v2)^2| = 1e-8 for these nearly parallel rays
    v1 = np.array([0.0, 0.0, 1.0])
    v2 = np.array([1e-4, 0.0, 1.0])
    o2 = np.array([0.5, 0.0, 0.0])
    xyz, _ = triangulate_midpoint(np.zeros(3), v1, o2, v2, eps=1e-7)
    assert np.all(np.isnan(xyz))
    xyz, _ = triangulate_midpoint(np.zeros(3), v1, o2, v2, eps=1e-9)
    assert np.all(np.isfinite(xyz))
