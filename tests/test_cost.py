import numpy as np
import pytest

from curvestereo.api.stereo_rig import StereoRig
from curvestereo.config import StereoParameters
from curvestereo.core.geometry import Pose
from curvestereo.stereo.cost import (
    _div_trunc,
    compute_cost_volume,
    remap_band,
    sample_curve,
    triangular_weights,
)


def _textured_pair(rng: np.random.Generator, h: int = 120, w: int = 160) -> tuple[np.ndarray, np.ndarray]:
    img1 = rng.integers(0, 256, size=(h, w), dtype=np.uint8)
    img2 = rng.integers(0, 256, size=(h, w), dtype=np.uint8)
    return img1, img2


def test_triangular_weights():
    assert triangular_weights(1).tolist() == [1, 2, 1]
    assert triangular_weights(2).tolist() == [1, 2, 3, 2, 1]


def test_truncating_division():
    assert _div_trunc(np.array([-7, -6, 6, 7]), 3).tolist() == [-2, -2, 2, 2]


@pytest.mark.parametrize("cost_mode", ["box", "curve"])
def test_cost_volume_contract(lateral_rig, cost_mode):
    params = StereoParameters(image_width=160, image_height=120, scale=3, disp_max=12, cost_mode=cost_mode).resolved()
    stereo = lateral_rig.build_stereo(params)
    img1, img2 = _textured_pair(np.random.default_rng(0))
    cost = compute_cost_volume(img1, img2, stereo.field, params)
    assert cost.shape == (40, 53, 12)
    assert cost.dtype == np.uint8
    assert cost.max() > 0

    # a provided buffer of the right shape is filled in place
    out = np.full(cost.shape, 255, dtype=np.uint8)
    again = compute_cost_volume(img1, img2, stereo.field, params, out=out)
    assert again is out
    assert np.array_equal(out, cost)


@pytest.mark.parametrize("cost_mode", ["box", "curve"])
def test_identical_shifted_images_have_zero_cost_at_the_shift(lateral_rig, cost_mode):
    # along the center row the epipolar curve is the row itself, walked towards decreasing x
    params = StereoParameters(image_width=160, image_height=120, scale=3, disp_max=12, cost_mode=cost_mode).resolved()
    stereo = lateral_rig.build_stereo(params)
    rng = np.random.default_rng(1)
    img1 = rng.integers(0, 256, size=(120, 160), dtype=np.uint8)
    shift = 5
    img2 = np.zeros_like(img1)
    img2[:, :-shift] = img1[:, shift:]

    cost = compute_cost_volume(img1, img2, stereo.field, params)
    c = cost[19, 26]
    assert c[shift] == 0
    assert int(np.argmin(c)) == shift
    assert np.all(np.delete(c, shift) > 0)


def test_cost_is_zero_where_rays_are_missing():
    # strong alpha and short focal: the image corners have no ray
    p = np.array([0.9, 2.0, 60.0, 60.0, 79.0, 58.0])
    rig = StereoRig(160, 120, p, p, Pose(np.eye(3), np.array([0.5, 0.0, 0.0])))
    for mode in ("box", "curve"):
        params = StereoParameters(image_width=160, image_height=120, scale=3, disp_max=8, cost_mode=mode).resolved()
        stereo = rig.build_stereo(params)
        assert not stereo.field.valid[stereo.field.linear_index(0, 0)]
        img1, img2 = _textured_pair(np.random.default_rng(2))
        cost = compute_cost_volume(img1, img2, stereo.field, params)
        assert np.all(cost[0, 0] == 0)
        assert cost[19, 26].max() > 0


def test_remap_band_straightens_the_center_row(lateral_rig):
    params = StereoParameters(image_width=160, image_height=120, scale=3, disp_max=10).resolved()
    field = lateral_rig.build_stereo(params).field
    img2 = np.tile(np.arange(160, dtype=np.uint8), (120, 1))
    band = remap_band(img2, field, field.linear_index(26, 19), params)
    assert band.shape == (3, 12)
    # right to left: column c holds image column 79 - (disp_max - c)
    assert band[0].tolist() == [79 - (10 - c) for c in range(12)]
    assert np.array_equal(band[0], band[2])


def test_sample_curve_starts_behind_infinity(lateral_rig):
    params = StereoParameters(image_width=160, image_height=120, scale=3, disp_max=10).resolved()
    field = lateral_rig.build_stereo(params).field
    img2 = np.tile(np.arange(160, dtype=np.uint8), (120, 1))
    samples = sample_curve(img2, field, field.linear_index(26, 19), -2, 6)
    assert samples.tolist() == [81, 80, 79, 78, 77, 76]


def test_unknown_cost_mode(lateral_rig, stereo_params):
    stereo = lateral_rig.build_stereo(stereo_params)
    img1, img2 = _textured_pair(np.random.default_rng(3))
    bad = StereoParameters(image_width=160, image_height=120, cost_mode="ssd").resolved()  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        compute_cost_volume(img1, img2, stereo.field, bad)


def test_sample_curve_follows_the_triangulated_path(oblique_rig, stereo_params):
    field = oblique_rig.build_stereo(stereo_params).field
    h, w = 120, 160
    # each pixel holds its own linear index
    img2 = np.arange(h * w, dtype=np.int64).reshape(h, w)
    half, count = 2, 12
    for idx in np.flatnonzero(field.valid)[::7]:
        samples = sample_curve(img2, field, int(idx), -half, count)
        for d in range(count - half):
            r = field.rasterizer(int(idx))
            r.steps(d)
            expected = img2[r.y, r.x] if (0 <= r.y < h and 0 <= r.x < w) else 0
            assert samples[half + d] == expected
