from __future__ import annotations

import logging

import numpy as np

from curvestereo.config import TRIANGULATION_EPS
from curvestereo.core.camera import Camera
from curvestereo.core.geometry import Pose, triangulate_midpoint

logger = logging.getLogger(__name__)

# Minimal cosine between a viewing ray and the plane normal in synthetic planes.
PLANE_GRAZING_EPS = 1e-3


def triangulate(
    camera1: Camera,
    camera2: Camera,
    pose12: Pose,
    pt1,
    pt2,
    eps: float = TRIANGULATION_EPS,
) -> tuple[bool, np.ndarray]:
    """
    Mid-point triangulation of a pixel pair into the first camera frame.

    Returns (False, zeros) when either pixel has no ray or when the rays are
    near-parallel (|det| of the 2x2 normal equations below `eps`).
    """
    ok1, v1 = camera1.reconstruct_point(pt1)
    ok2, v2 = camera2.reconstruct_point(pt2)
    if not (ok1 and ok2):
        logger.debug("not reconstructed %s # %s", np.asarray(pt1).tolist(), np.asarray(pt2).tolist())
        return False, np.zeros(3)
    v2 = pose12.rotate(v2)
    xyz, _dist = triangulate_midpoint(np.zeros(3), v1, pose12.trans, v2, eps=eps)
    if not np.all(np.isfinite(xyz)):
        logger.debug("not triangulated %s # %s", np.asarray(pt1).tolist(), np.asarray(pt2).tolist())
        return False, np.zeros(3)
    return True, xyz


def plane_distance(
    rays: np.ndarray,
    valid: np.ndarray,
    pose_camera_plane: Pose,
    polygon: np.ndarray,
) -> np.ndarray:
    """
    Analytic range along each ray to a planar polygon.

    The plane is z = 0 of the frame given by `pose_camera_plane` (plane -> camera)
    and `polygon` is a convex vertex list in that frame. Rays missing the plane,
    pointing away from it or falling outside the polygon get 0.
    """
    rays = np.asarray(rays, dtype=np.float64).reshape(-1, 3)
    polygon = np.asarray(polygon, dtype=np.float64).reshape(-1, 3)
    t = pose_camera_plane.trans
    z = pose_camera_plane.rot_mat[:, 2]
    corners = pose_camera_plane.transform(polygon)

    rays0 = np.where(valid[:, None], rays, 0.0)
    zvec = rays0 @ z
    tz = float(t @ z)
    # the plane must lie in front of the camera along the ray
    hit = valid & (zvec >= PLANE_GRAZING_EPS) & (tz > 0)
    for i in range(corners.shape[0]):
        normal = np.cross(corners[i], corners[(i + 1) % corners.shape[0]])
        hit &= rays0 @ normal >= 0

    out = np.zeros(rays.shape[0], dtype=np.float64)
    scale = tz / zvec[hit]
    out[hit] = np.linalg.norm(rays0[hit] * scale[:, None], axis=-1)
    return out
