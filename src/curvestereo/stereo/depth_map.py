from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from curvestereo.core.camera import Camera


@dataclass
class DepthMap:
    """
    Dense range grid attached to the camera that observed it.

    Cell (u, v) holds the distance along the viewing ray of image pixel
    (u0 + scale*u + scale//2, v0 + scale*v + scale//2).
    """

    camera: Camera
    values: np.ndarray  # (H,W) float32
    u0: int = 0
    v0: int = 0
    scale: int = 1

    @classmethod
    def empty(cls, camera: Camera, width: int, height: int, u0: int = 0, v0: int = 0, scale: int = 1) -> "DepthMap":
        return cls(camera, np.zeros((height, width), dtype=np.float32), u0, v0, scale)

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    def at(self, u: int, v: int) -> float:
        return float(self.values[v, u])

    def pixel(self, u, v) -> tuple:
        return self.u0 + self.scale * u + self.scale // 2, self.v0 + self.scale * v + self.scale // 2

    def cell(self, x: float, y: float) -> tuple[int, int]:
        u = int(np.floor((x - self.u0) / self.scale))
        v = int(np.floor((y - self.v0) / self.scale))
        return u, v

    def nearest(self, x: float, y: float) -> float:
        """Distance stored in the cell covering image pixel (x, y); 0 outside the grid."""
        u, v = self.cell(x, y)
        if 0 <= u < self.width and 0 <= v < self.height:
            return float(self.values[v, u])
        return 0.0

    def point_cloud(self) -> np.ndarray:
        """(H*W, 3) points in the camera frame; NaN where the ray or the distance is missing."""
        vv, uu = np.meshgrid(np.arange(self.height), np.arange(self.width), indexing="ij")
        x, y = self.pixel(uu.reshape(-1), vv.reshape(-1))
        rays, valid = self.camera.reconstruct_points(np.stack([x, y], axis=-1).astype(np.float64))
        norms = np.linalg.norm(rays, axis=-1, keepdims=True)
        dist = self.values.reshape(-1, 1).astype(np.float64)
        pts = rays / norms * dist
        pts[~valid | (dist[:, 0] <= 0)] = np.nan
        return pts
