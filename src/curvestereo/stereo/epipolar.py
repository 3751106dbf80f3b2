"""
Epipolar curves of the enhanced unified camera model.

Under EUCM an epipolar plane with normal (A, B, C) in the second camera frame
projects to the conic

  kuu u^2 + kuv uv + kvv v^2 + ku u + kv v + k1 = 0

in pixel coordinates, or to a straight line through the projection center
when the plane nearly contains the optical axis. The field precomputes one
curve per angular bin of the epipolar plane around the baseline.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

import numpy as np

from curvestereo.config import INDEX_EPS, LINE_RATIO
from curvestereo.core.camera import EnhancedCamera
from curvestereo.core.geometry import Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuadraticCurve:
    kuu: float = 0.0
    kuv: float = 0.0
    kvv: float = 0.0
    ku: float = 0.0
    kv: float = 0.0
    k1: float = 0.0

    @property
    def is_linear(self) -> bool:
        return self.kuu == 0.0 and self.kuv == 0.0 and self.kvv == 0.0

    def __call__(self, u, v):
        return self.kuu * u * u + self.kuv * u * v + self.kvv * v * v + self.ku * u + self.kv * v + self.k1

    def gradient(self, u, v) -> tuple:
        return (2.0 * self.kuu * u + self.kuv * v + self.ku, self.kuv * u + 2.0 * self.kvv * v + self.kv)

    def as_array(self) -> np.ndarray:
        return np.array([self.kuu, self.kuv, self.kvv, self.ku, self.kv, self.k1], dtype=np.float64)


def _orthonormal_basis(z_base: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    # Seed with the axis least aligned with the baseline.
    if z_base[2] ** 2 > z_base[0] ** 2 + z_base[1] ** 2:
        x_base = np.array([1.0, 0.0, 0.0])
    else:
        x_base = np.array([0.0, 0.0, 1.0])
    x_base = x_base - z_base * float(z_base @ x_base)
    x_base /= np.linalg.norm(x_base)
    y_base = np.cross(z_base, x_base)
    return x_base, y_base


class EpipolarCurveField:
    """
    Table of N+1 epipolar curves in the second image, indexed by the angle of
    the epipolar plane around the baseline.

    The first half of the bins parametrizes plane directions as
    x_base + s * y_base with s in [-1, 1) and the second half as
    c * x_base + y_base with c in (1, -1]; entry N duplicates entry 0.
    """

    def __init__(
        self,
        pose12: Pose,
        params1,
        params2,
        n_steps: int,
        *,
        index_eps: float = INDEX_EPS,
        line_ratio: float = LINE_RATIO,
    ) -> None:
        if n_steps <= 0 or n_steps % 2:
            raise ValueError("n_steps must be a positive even number")
        t0 = time.perf_counter()
        self.pose12 = pose12
        self.camera1 = EnhancedCamera.from_params(params1)
        self.camera2 = EnhancedCamera.from_params(params2)
        self.n_steps = int(n_steps)
        self.step = 4.0 / self.n_steps
        self.index_eps = float(index_eps)
        self.line_ratio = float(line_ratio)

        t = np.asarray(pose12.trans, dtype=np.float64)
        self.z_base = -t / np.linalg.norm(t)
        self.x_base, self.y_base = _orthonormal_basis(self.z_base)

        R21 = pose12.rot_mat_inv
        t21n = R21 @ self.z_base
        _ok, self.epipole = self.camera2.project_point(t21n)

        curves = [self._curve_for_plane(R21 @ self.direction(idx), t21n) for idx in range(self.n_steps)]
        curves.append(curves[0])
        self._curves: tuple[QuadraticCurve, ...] = tuple(curves)
        logger.debug("epipolar init time: %.4f s (%d curves)", time.perf_counter() - t0, self.n_steps)

    def direction(self, idx: int) -> np.ndarray:
        """Representative in-plane direction (first camera frame) of bin `idx`."""
        half = self.n_steps // 2
        idx = int(idx) % self.n_steps
        if idx < half:
            s = self.step * idx - 1.0
            return self.x_base + s * self.y_base
        c = self.step * (half - idx) + 1.0
        return c * self.x_base + self.y_base

    def _curve_for_plane(self, X: np.ndarray, t21n: np.ndarray) -> QuadraticCurve:
        cam = self.camera2
        alpha, beta = cam.alpha, cam.beta
        fu, fv, u0, v0 = cam.fu, cam.fv, cam.u0, cam.v0

        gamma = 1.0 - alpha
        ag = alpha - gamma
        a2b = alpha * alpha * beta
        fufv = fu * fv

        A, B, C = (float(c) for c in np.cross(X, t21n))
        AA, BB, CC = A * A, B * B, C * C
        CCfufv = CC * fufv
        if CCfufv < self.line_ratio * (AA + BB):
            # the plane nearly contains the optical axis: straight line through the center
            return QuadraticCurve(ku=A / fu, kv=B / fv, k1=-u0 * A / fu - v0 * B / fv)

        kuu = (AA * ag + CC * a2b) / (CC * fu * fu)
        kuv = 2.0 * A * B * ag / CCfufv
        kvv = (BB * ag + CC * a2b) / (CC * fv * fv)
        ku = 2.0 * (-(AA * fv * u0 + A * B * fu * v0) * ag - A * C * fufv * gamma - CC * a2b * fv * u0) / (CCfufv * fu)
        kv = 2.0 * (-(BB * fu * v0 + A * B * fv * u0) * ag - B * C * fufv * gamma - CC * a2b * fu * v0) / (CCfufv * fv)
        # every epipolar curve passes through the epipole
        eu, ev = float(self.epipole[0]), float(self.epipole[1])
        k1 = -(kuu * eu * eu + kuv * eu * ev + kvv * ev * ev + ku * eu + kv * ev)
        return QuadraticCurve(kuu, kuv, kvv, ku, kv, k1)

    def index(self, X) -> int:
        """Bin of the epipolar plane containing ray X (first camera frame); 0 if undefined."""
        X = np.asarray(X, dtype=np.float64).reshape(3)
        c = float(X @ self.x_base)
        s = float(X @ self.y_base)
        ac, as_ = abs(c), abs(s)
        if not ac + as_ >= self.index_eps:
            return 0
        if ac > as_:
            return int(math.floor((s / c + 1.0) / self.step + 0.5))
        return int(math.floor((1.0 - c / s) / self.step + 0.5)) + self.n_steps // 2

    def indices(self, X: np.ndarray) -> np.ndarray:
        """Vectorized `index` over (N,3) rays."""
        X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
        c = X @ self.x_base
        s = X @ self.y_base
        ac, as_ = np.abs(c), np.abs(s)
        defined = ac + as_ >= self.index_eps
        tangent = ac > as_
        with np.errstate(divide="ignore", invalid="ignore"):
            idx_t = np.floor((s / c + 1.0) / self.step + 0.5)
            idx_c = np.floor((1.0 - c / s) / self.step + 0.5) + self.n_steps // 2
        idx = np.where(tangent, idx_t, idx_c)
        return np.where(defined, idx, 0).astype(np.int64)

    def get_curve(self, key) -> QuadraticCurve:
        """Curve by bin index, or by ray (array-like of length 3)."""
        if isinstance(key, (int, np.integer)):
            return self._curves[int(key)]
        return self._curves[self.index(key)]

    @property
    def curves(self) -> tuple[QuadraticCurve, ...]:
        return self._curves

    def __len__(self) -> int:
        return len(self._curves)
