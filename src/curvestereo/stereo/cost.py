"""
Matching cost volumes along epipolar curves.

Both kernels fill `out[v, u, d]` (uint8, lower is better) for every working
grid cell and every disparity d in [0, disp_max). Disparity d is the pixel
reached after d rasterizer steps from the infinite-depth projection towards
the epipole. Cells without a defined epipolar direction get cost 0 for all
disparities.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from curvestereo.config import StereoParameters
from curvestereo.core.geometry import round_half_away
from curvestereo.core.interpolation import bilinear_u8, box_sum, integral_image
from curvestereo.stereo.correspondence import CorrespondenceField

logger = logging.getLogger(__name__)

# Brightness bias clamp of the box kernel.
BOX_MAX_BIAS = 10


def _div_trunc(a: np.ndarray, b: int) -> np.ndarray:
    """Integer division rounding towards zero."""
    a = np.asarray(a, dtype=np.int64)
    return np.sign(a) * (np.abs(a) // b)


def triangular_weights(half_length: int) -> np.ndarray:
    """Weights 1, 2, ..., L+1, ..., 2, 1 over the window [-L, L]."""
    rise = np.arange(1, half_length + 2, dtype=np.int64)
    return np.concatenate([rise, rise[-2::-1]])


def curve_descriptors(img1: np.ndarray, field: CorrespondenceField, half_length: int) -> np.ndarray:
    """Image-1 intensities sampled along the local epipolar direction, shape (N, 2L+1)."""
    offsets = np.arange(-half_length, half_length + 1, dtype=np.float64)
    xs = field.points[:, 0:1] + offsets[None, :] * field.directions[:, 0:1]
    ys = field.points[:, 1:2] + offsets[None, :] * field.directions[:, 1:2]
    return bilinear_u8(img1, xs, ys).astype(np.int64)


def sample_curve(img2: np.ndarray, field: CorrespondenceField, idx: int, start: int, count: int) -> np.ndarray:
    """`count` image-2 intensities along the cell's curve, beginning `start` steps from infinity."""
    h, w = img2.shape
    raster = field.rasterizer(idx)
    raster.steps(start)
    samples = np.zeros(count, dtype=np.int64)
    for i in range(count):
        if 0 <= raster.y < h and 0 <= raster.x < w:
            samples[i] = img2[raster.y, raster.x]
        raster.step()
    return samples


def compute_curve_cost(
    img1: np.ndarray,
    img2: np.ndarray,
    field: CorrespondenceField,
    params: StereoParameters,
    out: np.ndarray,
) -> np.ndarray:
    """
    1-D kernel: a triangular-weighted SAD between a descriptor taken along the
    image-1 epipolar direction and a window sliding along the image-2 curve.
    """
    half = max(params.scale - 1, 1)
    length = 2 * half + 1
    disp_max = params.disp_max
    weights = triangular_weights(half)
    normalizer = int(weights.sum())

    defined = field.direction_defined()
    descriptors = curve_descriptors(img1, field, half)
    flat = out.reshape(-1, disp_max)

    for idx in range(len(field)):
        if not defined[idx]:
            flat[idx] = 0
            continue
        descriptor = descriptors[idx]
        samples = sample_curve(img2, field, idx, -half, disp_max + length - 1)
        windows = sliding_window_view(samples, length)[:disp_max]  # (D, length)

        sum1 = int(descriptor.sum())
        bias = _div_trunc(windows.sum(axis=1) - sum1, length)
        bias = np.clip(bias, -params.max_bias, params.max_bias)
        acc = (np.abs(descriptor[None, :] - windows + bias[:, None]) * weights[None, :]).sum(axis=1)
        flat[idx] = np.clip(acc // normalizer, 0, 255)
    return out


def _copy_column(img2: np.ndarray, u2: int, v_base: int, band: np.ndarray, col: int) -> None:
    h, w = img2.shape
    if u2 < 0 or u2 >= w or col < 0 or col >= band.shape[1]:
        return
    j0 = max(0, -v_base)
    j1 = min(band.shape[0], h - v_base)
    if j1 > j0:
        band[j0:j1, col] = img2[v_base + j0 : v_base + j1, u2]


def remap_band(img2: np.ndarray, field: CorrespondenceField, idx: int, params: StereoParameters) -> np.ndarray:
    """
    Straighten the neighbourhood of the cell's curve into a (scale, scale + disp_max - 1)
    band, one column per rasterizer step, laid out right to left along the walk.

    The layout assumes the walk runs towards decreasing x; for the opposite
    direction of motion the band comes out mirrored.
    """
    scale = params.scale
    hblock = scale // 2
    radius = (scale - 1) / 2.0
    center_shift = 1.0 if scale % 2 else 0.5
    band = np.zeros((scale, scale + params.disp_max - 1), dtype=np.uint8)

    raster = field.rasterizer(idx)

    # the right end, beyond infinity
    u_base = int(round_half_away(raster.x + center_shift))
    v_base = int(round_half_away(raster.y - radius))
    dst_base = params.disp_max + hblock
    for i in range(hblock):
        _copy_column(img2, u_base + i, v_base, band, dst_base + i)

    # the middle and the left
    for i in range(params.disp_max - 1 + hblock, -1, -1):
        u2 = int(round_half_away(raster.x + center_shift - 1))
        v_base = int(round_half_away(raster.y - radius))
        _copy_column(img2, u2, v_base, band, i)
        raster.step()
    return band


def compute_box_cost(
    img1: np.ndarray,
    img2: np.ndarray,
    field: CorrespondenceField,
    params: StereoParameters,
    out: np.ndarray,
) -> np.ndarray:
    """
    2-D kernel: mean absolute difference between a scale x scale patch of
    image 1 and a patch of the remapped image-2 band, with a brightness bias
    estimated from integral images.
    """
    scale = params.scale
    scale_sq = scale * scale
    hblock = scale // 2
    disp_max = params.disp_max

    integral1 = integral_image(img1)
    img1_i = img1.astype(np.int64)
    defined = field.direction_defined()
    flat = out.reshape(-1, disp_max)
    # band column of disparity d
    cols = np.arange(disp_max - 1, -1, -1)

    for idx in range(len(field)):
        if not defined[idx]:
            flat[idx] = 0
            continue
        u1 = int(field.points[idx, 0]) - hblock
        v1 = int(field.points[idx, 1]) - hblock
        bias1 = box_sum(integral1, v1, u1, scale, scale)
        patch1 = img1_i[v1 : v1 + scale, u1 : u1 + scale]

        band = remap_band(img2, field, idx, params)
        integral2 = integral_image(band)
        sums2 = integral2[scale, cols + scale] - integral2[scale, cols]
        bias = np.clip(_div_trunc(sums2 - bias1, scale_sq), -BOX_MAX_BIAS, BOX_MAX_BIAS)

        windows = sliding_window_view(band.astype(np.int64), (scale, scale))[0]  # (disp_max, scale, scale)
        windows = windows[cols]
        acc = np.abs(patch1[None] - windows + bias[:, None, None]).sum(axis=(1, 2))
        flat[idx] = np.clip(acc // scale_sq, 0, 255)
    return out


def compute_cost_volume(
    img1: np.ndarray,
    img2: np.ndarray,
    field: CorrespondenceField,
    params: StereoParameters,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Dispatch on `params.cost_mode`; returns the (H, W, disp_max) uint8 volume."""
    shape = (params.disp_height, params.disp_width, params.disp_max)
    logger.debug("cost volume %s, %s kernel", shape, params.cost_mode)
    if out is None or out.shape != shape:
        out = np.zeros(shape, dtype=np.uint8)
    if params.cost_mode == "curve":
        return compute_curve_cost(img1, img2, field, params, out)
    if params.cost_mode == "box":
        return compute_box_cost(img1, img2, field, params, out)
    raise ValueError("cost_mode must be curve|box")
