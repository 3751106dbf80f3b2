"""
Semi-global matching for non-rectified images taken by EUCM cameras.

Pipeline: per-cell correspondence records (built once per pose and grid)
-> cost volume along the epipolar curves -> four-direction aggregation and
fusion -> triangulation of the winning disparity.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from curvestereo.config import StereoParameters
from curvestereo.core.camera import EnhancedCamera
from curvestereo.core.geometry import Pose, round_half_away
from curvestereo.stereo.correspondence import CorrespondenceField
from curvestereo.stereo.cost import compute_cost_volume
from curvestereo.stereo.depth_map import DepthMap
from curvestereo.stereo.epipolar import EpipolarCurveField
from curvestereo.stereo.optimizer import Tableaus, aggregate, allocate_tableaus, fuse
from curvestereo.stereo.reconstruction import plane_distance, triangulate


@dataclass
class MatchBuffers:
    """Working-resolution buffers reused across `match` calls."""

    cost: np.ndarray  # (H,W,D) uint8
    tableaus: Tableaus
    disparity: np.ndarray  # (H,W) uint8
    score: np.ndarray  # (H,W) int64

    @classmethod
    def allocate(cls, height: int, width: int, disp_max: int) -> "MatchBuffers":
        shape = (height, width, disp_max)
        return cls(
            cost=np.zeros(shape, dtype=np.uint8),
            tableaus=allocate_tableaus(shape),
            disparity=np.zeros((height, width), dtype=np.uint8),
            score=np.zeros((height, width), dtype=np.int64),
        )

    @property
    def shape(self) -> tuple[int, int, int]:
        return tuple(self.cost.shape)  # type: ignore[return-value]


class EnhancedStereo:
    """
    Dense stereo between two EUCM cameras related by `pose12`
    (second camera frame -> first camera frame).
    """

    def __init__(
        self,
        pose12: Pose,
        camera1: EnhancedCamera,
        camera2: EnhancedCamera,
        params: StereoParameters,
    ) -> None:
        self.camera1 = camera1
        self.camera2 = camera2
        self.params = params.resolved()
        self.log = self.params.get_logger()
        self._buffers: MatchBuffers | None = None
        self.set_pose(pose12)

    @classmethod
    def from_params(cls, pose12: Pose, params1, params2, stereo_params: StereoParameters) -> "EnhancedStereo":
        w, h = stereo_params.image_width, stereo_params.image_height
        return cls(
            pose12,
            EnhancedCamera.from_params(params1, w, h),
            EnhancedCamera.from_params(params2, w, h),
            stereo_params,
        )

    def _verbose(self, level: int, msg: str, *args) -> None:
        if self.params.verbosity > level:
            self.log.info(msg, *args)

    def set_pose(self, pose12: Pose) -> None:
        """Rebuild the epipolar table and correspondence records for a new relative pose."""
        self.pose12 = pose12
        p = self.params
        self._verbose(0, "EnhancedStereo: building epipolar curves (%d steps)", p.epipolar_steps)
        self.epipolar = EpipolarCurveField(
            pose12,
            self.camera1.params,
            self.camera2.params,
            p.epipolar_steps,
            index_eps=p.index_eps,
            line_ratio=p.line_ratio,
        )
        self.field = CorrespondenceField.build(self.camera1, self.camera2, pose12, p, self.epipolar)
        self._verbose(1, "    working grid: %d x %d, epipole: %s", p.disp_width, p.disp_height, self.field.epipole_px.tolist())

    @property
    def epipole(self) -> np.ndarray:
        return self.field.epipole

    @property
    def disparity(self) -> np.ndarray:
        return self.buffers.disparity

    @property
    def buffers(self) -> MatchBuffers:
        if self._buffers is None:
            raise RuntimeError("no match has been computed yet")
        return self._buffers

    def reset_buffers(self) -> MatchBuffers:
        """Resize the working buffers to the current grid if needed."""
        p = self.params
        shape = (p.disp_height, p.disp_width, p.disp_max)
        if self._buffers is None or self._buffers.shape != shape:
            self._verbose(1, "EnhancedStereo: allocating buffers %s", shape)
            self._buffers = MatchBuffers.allocate(*shape)
        return self._buffers

    def _check_images(self, img1: np.ndarray, img2: np.ndarray) -> None:
        for name, img in (("img1", img1), ("img2", img2)):
            if img.ndim != 2 or img.dtype != np.uint8:
                raise ValueError(f"{name} must be a single-channel uint8 image")
            if img.shape != (self.params.image_height, self.params.image_width):
                raise ValueError(
                    f"{name} has shape {img.shape}, expected {(self.params.image_height, self.params.image_width)}"
                )

    def match(self, img1: np.ndarray, img2: np.ndarray) -> np.ndarray:
        """Cost volume, aggregation and fusion; returns the working-grid disparity (uint8)."""
        img1 = np.asarray(img1)
        img2 = np.asarray(img2)
        self._check_images(img1, img2)
        buf = self.reset_buffers()
        p = self.params

        self._verbose(0, "EnhancedStereo: computing %s cost", p.cost_mode)
        compute_cost_volume(img1, img2, self.field, p, out=buf.cost)

        self._verbose(0, "EnhancedStereo: dynamic programming")
        aggregate(buf.cost, p.lambda_step, p.lambda_jump, out=buf.tableaus)

        self._verbose(0, "EnhancedStereo: reconstructing disparity")
        result = fuse(buf.cost, buf.tableaus)
        buf.disparity[...] = result.disparity
        buf.score[...] = result.score
        if p.verbosity > 3:
            self.log.debug("    fused score range: %d .. %d", int(buf.score.min()), int(buf.score.max()))
        return buf.disparity

    def compute_disparity(self, img1: np.ndarray, img2: np.ndarray) -> np.ndarray:
        return self.match(img1, img2).copy()

    def compute_depth(self, img1: np.ndarray, img2: np.ndarray) -> DepthMap:
        self.match(img1, img2)
        p = self.params
        return DepthMap(self.camera1, self.compute_distance(), p.u0, p.v0, p.scale)

    def triangulate(self, x1: float, y1: float, x2: float, y2: float) -> tuple[bool, np.ndarray]:
        if self.params.verbosity > 3:
            self.log.debug("EnhancedStereo.triangulate (%g, %g) # (%g, %g)", x1, y1, x2, y2)
        ok, X = triangulate(
            self.camera1, self.camera2, self.pose12, (x1, y1), (x2, y2), eps=self.params.triangulation_eps
        )
        if not ok and self.params.verbosity > 2:
            self.log.info("    triangulation failed: (%g, %g) # (%g, %g)", x1, y1, x2, y2)
        return ok, X

    def distance_for(self, idx: int, disparity: int) -> float:
        """Range of cell `idx` for a given disparity; max_distance for no match, 0 on failure."""
        if disparity <= 0:
            return float(self.params.max_distance)
        if not self.field.valid[idx]:
            return 0.0
        raster = self.field.rasterizer(idx)
        raster.steps(int(disparity))
        x1, y1 = self.field.points[idx]
        ok, X = self.triangulate(float(x1), float(y1), float(raster.x), float(raster.y))
        if not ok:
            return 0.0
        return float(np.linalg.norm(X))

    def distance(self, u: int, v: int) -> float:
        idx = self.field.linear_index(u, v)
        return self.distance_for(idx, int(self.disparity[v, u]))

    def compute_distance(self) -> np.ndarray:
        """(H,W) float32 range grid of the last match."""
        self._verbose(0, "EnhancedStereo: computing distance")
        p = self.params
        out = np.empty((p.disp_height, p.disp_width), dtype=np.float32)
        disparity = self.disparity
        for v in range(p.disp_height):
            for u in range(p.disp_width):
                out[v, u] = self.distance_for(self.field.linear_index(u, v), int(disparity[v, u]))
        return out

    def trace_epipolar_curve(self, u: int, v: int, out: np.ndarray) -> np.ndarray:
        """Draw (in black) the image-2 epipolar curve of working cell (u, v) into `out`."""
        self._verbose(0, "EnhancedStereo: tracing epipolar curve of (%d, %d)", u, v)
        idx = self.field.linear_index(u, v)
        if not self.field.valid[idx]:
            return out
        raster = self.field.rasterizer(idx)
        count = int(round_half_away(np.linalg.norm(self.field.pinf_px[idx] - self.field.epipole_px)))
        h, w = out.shape[:2]
        for _ in range(count):
            x, y = raster.x, raster.y
            if 0 <= x and 0 <= y:
                out[y : min(y + 2, h), x : min(x + 2, w)] = 0
            raster.step()
        return out

    def generate_plane_distance(self, pose_camera_plane: Pose, polygon: np.ndarray) -> np.ndarray:
        """Ground-truth (H,W) float32 range grid of a textureless planar polygon."""
        self._verbose(0, "EnhancedStereo: generating plane")
        p = self.params
        d = plane_distance(self.field.rays, self.field.valid, pose_camera_plane, polygon)
        return d.reshape(p.disp_height, p.disp_width).astype(np.float32)

    def generate_plane(self, pose_camera_plane: Pose, polygon: np.ndarray) -> DepthMap:
        p = self.params
        return DepthMap(self.camera1, self.generate_plane_distance(pose_camera_plane, polygon), p.u0, p.v0, p.scale)
