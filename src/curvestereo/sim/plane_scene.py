"""
Synthetic textured planes rendered by ray casting, for end-to-end checks of
the matcher against an analytic ground truth.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import ndimage

from curvestereo.api.stereo_rig import StereoRig
from curvestereo.core.camera import Camera
from curvestereo.core.geometry import Pose
from curvestereo.core.interpolation import bilinear_u8


@dataclass(frozen=True)
class PlaneTexture:
    """
    Texture image covering the rectangle [-width/2, width/2] x [-height/2, height/2]
    of the plane z = 0 (plane frame units).
    """

    image: np.ndarray  # (Ht,Wt) uint8
    width: float
    height: float

    @classmethod
    def random(
        cls,
        width: float,
        height: float,
        texels: tuple[int, int] = (512, 512),
        sigma_px: float = 2.0,
        rng: np.random.Generator | None = None,
    ) -> "PlaneTexture":
        """Smoothed white noise, stretched to the full 8-bit range."""
        if rng is None:
            rng = np.random.default_rng(0)
        noise = rng.random(texels)
        if sigma_px > 0:
            noise = ndimage.gaussian_filter(noise, sigma=float(sigma_px), mode="reflect")
        lo, hi = float(noise.min()), float(noise.max())
        img = (noise - lo) / max(hi - lo, 1e-12)
        return cls((img * 255.0 + 0.5).astype(np.uint8), float(width), float(height))

    def polygon(self) -> np.ndarray:
        """Rectangle corners in the plane frame, wound so that rays through the inside pass the edge test."""
        w, h = 0.5 * self.width, 0.5 * self.height
        return np.array([[-w, -h, 0.0], [w, -h, 0.0], [w, h, 0.0], [-w, h, 0.0]], dtype=np.float64)

    def sample(self, xp: np.ndarray, yp: np.ndarray) -> np.ndarray:
        Ht, Wt = self.image.shape
        # pixel centers at integer coordinates, borders at -0.5 and W-0.5
        map_x = (xp / self.width + 0.5) * Wt - 0.5
        map_y = (yp / self.height + 0.5) * Ht - 0.5
        return bilinear_u8(self.image, map_x, map_y)


def render_plane(
    camera: Camera,
    pose_camera_plane: Pose,
    texture: PlaneTexture,
    width: int,
    height: int,
    background: int = 0,
) -> np.ndarray:
    """
    Ray-plane render of a textured rectangle.

    `pose_camera_plane` maps plane coordinates into the camera frame. Pixels
    without a ray, looking away from the plane or missing the rectangle get
    `background`.
    """
    yy, xx = np.meshgrid(np.arange(height, dtype=np.float64), np.arange(width, dtype=np.float64), indexing="ij")
    uv = np.stack([xx.reshape(-1), yy.reshape(-1)], axis=-1)
    rays, valid = camera.reconstruct_points(uv)

    # plane: n.(X - t) = 0 with n = R [0,0,1]
    n = pose_camera_plane.rot_mat[:, 2]
    t_plane = pose_camera_plane.trans
    denom = np.where(valid, rays @ n, np.nan)
    denom = np.where(np.abs(denom) < 1e-9, np.nan, denom)
    lam = float(t_plane @ n) / denom
    X = lam[:, None] * rays

    Xp = pose_camera_plane.inverse_transform(X)
    xp, yp = Xp[:, 0], Xp[:, 1]
    inside = (
        np.isfinite(lam)
        & (lam > 0)
        & (np.abs(xp) <= 0.5 * texture.width)
        & (np.abs(yp) <= 0.5 * texture.height)
    )

    img = np.full(uv.shape[0], int(background), dtype=np.uint8)
    img[inside] = texture.sample(xp[inside], yp[inside])
    return img.reshape(height, width)


def render_stereo_pair(
    rig: StereoRig,
    pose_camera1_plane: Pose,
    texture: PlaneTexture,
    background: int = 0,
) -> tuple[np.ndarray, np.ndarray]:
    """Render the plane in both rig cameras; the plane pose is given in the first camera frame."""
    pose_camera2_plane = rig.pose.inverse().compose(pose_camera1_plane)
    w, h = rig.image_width_px, rig.image_height_px
    img1 = render_plane(rig.camera1, pose_camera1_plane, texture, w, h, background)
    img2 = render_plane(rig.camera2, pose_camera2_plane, texture, w, h, background)
    return img1, img2
