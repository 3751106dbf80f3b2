"""
Rigid transforms and two-ray triangulation shared by the stereo pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation


def round_half_away(x: np.ndarray | float) -> np.ndarray:
    """Round to the nearest integer, halves away from zero (C `round` semantics)."""
    x = np.asarray(x, dtype=np.float64)
    return np.sign(x) * np.floor(np.abs(x) + 0.5)


@dataclass(frozen=True)
class Pose:
    """
    Rigid transform from the second frame into the first one.

    Convention: X_1 = R X_2 + t, so `t` is the origin of frame 2 expressed in
    frame 1 and `trans_inv` is the origin of frame 1 expressed in frame 2.
    """

    R: np.ndarray  # (3,3)
    t: np.ndarray  # (3,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "R", np.asarray(self.R, dtype=np.float64).reshape(3, 3))
        object.__setattr__(self, "t", np.asarray(self.t, dtype=np.float64).reshape(3))

    @classmethod
    def identity(cls) -> "Pose":
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_vector(cls, x: float, y: float, z: float, rx: float, ry: float, rz: float) -> "Pose":
        """Translation followed by a rotation vector (axis * angle, radians)."""
        R = Rotation.from_rotvec([rx, ry, rz]).as_matrix()
        return cls(R, np.array([x, y, z], dtype=np.float64))

    def to_vector(self) -> np.ndarray:
        rvec = Rotation.from_matrix(self.R).as_rotvec()
        return np.concatenate([self.t, rvec])

    @property
    def rot_mat(self) -> np.ndarray:
        return self.R

    @property
    def rot_mat_inv(self) -> np.ndarray:
        return self.R.T

    @property
    def trans(self) -> np.ndarray:
        return self.t

    @property
    def trans_inv(self) -> np.ndarray:
        return -self.R.T @ self.t

    def inverse(self) -> "Pose":
        return Pose(self.R.T, self.trans_inv)

    def compose(self, other: "Pose") -> "Pose":
        """self ∘ other: maps frame-of-`other` points into the first frame of `self`."""
        return Pose(self.R @ other.R, self.R @ other.t + self.t)

    def inverse_compose(self, other: "Pose") -> "Pose":
        """self⁻¹ ∘ other."""
        return self.inverse().compose(other)

    def rotate(self, vectors: np.ndarray) -> np.ndarray:
        vectors = np.asarray(vectors, dtype=np.float64)
        return vectors @ self.R.T

    def inverse_rotate(self, vectors: np.ndarray) -> np.ndarray:
        vectors = np.asarray(vectors, dtype=np.float64)
        return vectors @ self.R

    def transform(self, points: np.ndarray) -> np.ndarray:
        return self.rotate(points) + self.t

    def inverse_transform(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        return self.inverse_rotate(points - self.t)


def triangulate_midpoint(
    o1: np.ndarray, v1: np.ndarray, o2: np.ndarray, v2: np.ndarray, eps: float = 1e-12
) -> tuple[np.ndarray, np.ndarray]:
    """
    Closest-approach midpoint of the lines o1 + t1·v1 and o2 + t2·v2 (broadcast over leading axes).

    With the baseline b = o2 - o1, (t1, t2) solves the 2x2 normal equations

        t1·(v1·v1) - t2·(v1·v2) = b·v1
        t1·(v1·v2) - t2·(v2·v2) = b·v2

    whose determinant is (v1·v2)² - (v1·v1)(v2·v2). Rays with |det| < eps are
    treated as parallel and give NaN. Returns (midpoint, gap between the lines).
    """
    o1 = np.asarray(o1, dtype=np.float64)
    o2 = np.asarray(o2, dtype=np.float64)
    v1 = np.asarray(v1, dtype=np.float64)
    v2 = np.asarray(v2, dtype=np.float64)

    v11 = np.einsum("...i,...i->...", v1, v1)
    v22 = np.einsum("...i,...i->...", v2, v2)
    v12 = np.einsum("...i,...i->...", v1, v2)
    base = o2 - o1
    b1 = np.einsum("...i,...i->...", base, v1)
    b2 = np.einsum("...i,...i->...", base, v2)

    det = v12 * v12 - v11 * v22
    det = np.where(np.abs(det) < eps, np.nan, det)
    t1 = (v12 * b2 - v22 * b1) / det
    t2 = (v11 * b2 - v12 * b1) / det

    p1 = o1 + t1[..., None] * v1
    p2 = o2 + t2[..., None] * v2
    return 0.5 * (p1 + p2), np.linalg.norm(p1 - p2, axis=-1)
