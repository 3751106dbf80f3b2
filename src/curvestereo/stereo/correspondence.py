from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from curvestereo.config import StereoParameters
from curvestereo.core.camera import Camera
from curvestereo.core.geometry import Pose, round_half_away
from curvestereo.stereo.epipolar import EpipolarCurveField
from curvestereo.stereo.rasterizer import CurveRasterizer

# Length of the virtual camera shift used to estimate the image-1 epipolar direction.
DIRECTION_SHIFT = 1e-3


@dataclass(frozen=True)
class CorrespondenceField:
    """
    Per working-grid cell geometry, flattened row-major (index = v * width + u).

    - `points`: image-1 pixel of each cell (N,2)
    - `rays`: reconstructed rays in the first camera frame (N,3)
    - `rays_rotated`: the same rays expressed in the second camera frame (N,3)
    - `pinf`, `pinf_px`: projection at infinite depth into image 2 and its rounded pixel
    - `directions`: unit epipolar direction in image 1 (N,2), NaN where undefined
    - `curve_index`: epipolar curve bin of each ray
    - `valid`: ray reconstructed and projected at infinity
    """

    width: int
    height: int
    points: np.ndarray
    rays: np.ndarray
    rays_rotated: np.ndarray
    pinf: np.ndarray
    pinf_px: np.ndarray
    directions: np.ndarray
    curve_index: np.ndarray
    valid: np.ndarray
    epipole: np.ndarray
    epipole_px: np.ndarray
    curves: EpipolarCurveField

    @classmethod
    def build(
        cls,
        camera1: Camera,
        camera2: Camera,
        pose12: Pose,
        params: StereoParameters,
        curves: EpipolarCurveField,
    ) -> "CorrespondenceField":
        w, h = params.disp_width, params.disp_height
        vv, uu = np.meshgrid(np.arange(h), np.arange(w), indexing="ij")
        points = np.stack([params.u_img(uu.reshape(-1)), params.v_img(vv.reshape(-1))], axis=-1).astype(np.float64)

        rays, rec_ok = camera1.reconstruct_points(points)
        rays_rotated = pose12.inverse_rotate(rays)
        pinf, proj_ok = camera2.project_points(rays_rotated)
        valid = rec_ok & proj_ok
        pinf_px = np.where(valid[:, None], round_half_away(np.nan_to_num(pinf)), -1).astype(np.int64)

        # shift the camera infinitesimally along the baseline and watch the pixel move
        t = pose12.trans / np.linalg.norm(pose12.trans) * DIRECTION_SHIFT
        shifted, _ = camera1.project_points(rays - t)
        delta = shifted - points
        norms = np.linalg.norm(delta, axis=-1, keepdims=True)
        with np.errstate(divide="ignore", invalid="ignore"):
            directions = delta / norms
        directions[~rec_ok] = np.nan

        _ok, epipole = camera2.project_point(pose12.trans_inv)
        epipole_px = round_half_away(epipole).astype(np.int64)

        return cls(
            width=w,
            height=h,
            points=points,
            rays=rays,
            rays_rotated=rays_rotated,
            pinf=pinf,
            pinf_px=pinf_px,
            directions=directions,
            curve_index=curves.indices(rays),
            valid=valid,
            epipole=epipole,
            epipole_px=epipole_px,
            curves=curves,
        )

    def __len__(self) -> int:
        return self.width * self.height

    def linear_index(self, u: int, v: int) -> int:
        return int(v) * self.width + int(u)

    def direction_defined(self) -> np.ndarray:
        return self.valid & np.all(np.isfinite(self.directions), axis=-1)

    def rasterizer(self, idx: int) -> CurveRasterizer:
        """Rasterizer on the cell's epipolar curve, at its infinite-depth pixel, heading for the epipole."""
        curve = self.curves.get_curve(int(self.curve_index[idx]))
        return CurveRasterizer(self.pinf_px[idx], self.epipole_px, curve)
