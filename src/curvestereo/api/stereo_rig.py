from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from curvestereo.config import StereoParameters
from curvestereo.core.camera import EnhancedCamera
from curvestereo.core.geometry import Pose, triangulate_midpoint
from curvestereo.stereo.matcher import EnhancedStereo


@dataclass(frozen=True)
class StereoRig:
    """
    Two EUCM cameras and the pose between them.

    Convention:
    - the first camera frame is the reference frame
    - `pose` maps second-camera coordinates into the first: X_1 = R X_2 + t,
      so the second camera center in the first frame is t
    """

    image_width_px: int
    image_height_px: int
    params1: np.ndarray  # (6,) alpha, beta, fu, fv, u0, v0
    params2: np.ndarray  # (6,)
    pose: Pose

    def __post_init__(self) -> None:
        for name in ("params1", "params2"):
            p = np.asarray(getattr(self, name), dtype=np.float64).reshape(-1)
            if p.size != 6:
                raise ValueError(f"{name} must hold 6 EUCM parameters")
            object.__setattr__(self, name, p)

    @property
    def camera1(self) -> EnhancedCamera:
        return EnhancedCamera.from_params(self.params1, self.image_width_px, self.image_height_px)

    @property
    def camera2(self) -> EnhancedCamera:
        return EnhancedCamera.from_params(self.params2, self.image_width_px, self.image_height_px)

    @property
    def baseline(self) -> float:
        return float(np.linalg.norm(self.pose.trans))

    def default_parameters(self, **overrides) -> StereoParameters:
        return StereoParameters(image_width=self.image_width_px, image_height=self.image_height_px, **overrides)

    def build_stereo(self, params: StereoParameters | None = None) -> EnhancedStereo:
        if params is None:
            params = self.default_parameters()
        if (params.image_width, params.image_height) != (self.image_width_px, self.image_height_px):
            raise ValueError("stereo parameters and rig disagree on the image size")
        return EnhancedStereo(self.pose, self.camera1, self.camera2, params)

    def triangulate(self, uv1_px: np.ndarray, uv2_px: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Triangulate corresponding pixels into 3D points in the first camera frame.

        Returns (XYZ, skew); pixels without a ray or with parallel rays give NaN.
        """
        uv1_px = np.asarray(uv1_px, dtype=np.float64).reshape(-1, 2)
        uv2_px = np.asarray(uv2_px, dtype=np.float64).reshape(-1, 2)
        if uv1_px.shape[0] != uv2_px.shape[0]:
            raise ValueError("uv1_px and uv2_px must have the same length")

        d1, _ = self.camera1.reconstruct_points(uv1_px)
        d2, _ = self.camera2.reconstruct_points(uv2_px)
        d2_in_1 = self.pose.rotate(d2)
        return triangulate_midpoint(np.zeros(3), d1, self.pose.trans, d2_in_1)
