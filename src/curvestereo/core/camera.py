"""
Camera models consumed by the stereo core.

The stereo code depends only on the `Camera` protocol: pixel -> ray
reconstruction, ray -> pixel projection, the projection Jacobian and `clone`.
Two concrete models are provided:

- `PinholeCamera`: plain perspective projection.
- `EnhancedCamera`: the enhanced unified camera model (EUCM), a generalized
  wide field-of-view model under which epipolar lines become conics.

Vectorized methods operate on (N,2) pixels / (N,3) points and return a
validity mask; failed entries are NaN.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class Camera(Protocol):
    width: int
    height: int

    @property
    def params(self) -> np.ndarray: ...

    def reconstruct_points(self, uv: np.ndarray) -> tuple[np.ndarray, np.ndarray]: ...

    def project_points(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray]: ...

    def reconstruct_point(self, uv) -> tuple[bool, np.ndarray]: ...

    def project_point(self, X) -> tuple[bool, np.ndarray]: ...

    def projection_jacobian(self, X) -> tuple[bool, np.ndarray]: ...

    def clone(self) -> "Camera": ...


class _PointwiseMixin:
    """Single-point wrappers over the vectorized model methods."""

    def reconstruct_point(self, uv) -> tuple[bool, np.ndarray]:
        rays, valid = self.reconstruct_points(np.asarray(uv, dtype=np.float64).reshape(1, 2))
        if not valid[0]:
            return False, np.zeros(3)
        return True, rays[0]

    def project_point(self, X) -> tuple[bool, np.ndarray]:
        uv, valid = self.project_points(np.asarray(X, dtype=np.float64).reshape(1, 3))
        if not valid[0]:
            return False, np.array([-1.0, -1.0])
        return True, uv[0]


@dataclass(frozen=True)
class PinholeCamera(_PointwiseMixin):
    u0: float
    v0: float
    f: float
    min_depth: float = 1e-2

    @property
    def width(self) -> int:
        return int(2 * self.u0)

    @property
    def height(self) -> int:
        return int(2 * self.v0)

    @property
    def params(self) -> np.ndarray:
        return np.array([self.u0, self.v0, self.f], dtype=np.float64)

    def reconstruct_points(self, uv: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        uv = np.asarray(uv, dtype=np.float64).reshape(-1, 2)
        rays = np.stack(
            [(uv[:, 0] - self.u0) / self.f, (uv[:, 1] - self.v0) / self.f, np.ones(uv.shape[0])], axis=-1
        )
        return rays, np.ones(uv.shape[0], dtype=bool)

    def project_points(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
        z = X[:, 2]
        valid = z >= self.min_depth
        zs = np.where(valid, z, 1.0)
        uv = np.stack([X[:, 0] * self.f / zs + self.u0, X[:, 1] * self.f / zs + self.v0], axis=-1)
        uv[~valid] = np.nan
        return uv, valid

    def projection_jacobian(self, X) -> tuple[bool, np.ndarray]:
        x, y, z = (float(c) for c in np.asarray(X, dtype=np.float64).reshape(3))
        if z < self.min_depth:
            return False, np.zeros((2, 3))
        zz = z * z
        J = np.array(
            [
                [self.f / z, 0.0, -x * self.f / zz],
                [0.0, self.f / z, -y * self.f / zz],
            ]
        )
        return True, J

    def clone(self) -> "PinholeCamera":
        return PinholeCamera(self.u0, self.v0, self.f, self.min_depth)


@dataclass(frozen=True)
class EnhancedCamera(_PointwiseMixin):
    """
    Enhanced unified camera model.

    Parameters follow (alpha, beta, fu, fv, u0, v0):

      rho = alpha * sqrt(beta * (x^2 + y^2) + z^2) + (1 - alpha) * z
      u = fu * x / rho + u0
      v = fv * y / rho + v0
    """

    alpha: float
    beta: float
    fu: float
    fv: float
    u0: float
    v0: float
    width: int = 0
    height: int = 0
    min_denominator: float = 1e-3

    @classmethod
    def from_params(cls, params, width: int = 0, height: int = 0) -> "EnhancedCamera":
        p = np.asarray(params, dtype=np.float64).reshape(-1)
        if p.size != 6:
            raise ValueError("EnhancedCamera expects 6 parameters (alpha, beta, fu, fv, u0, v0)")
        return cls(*(float(v) for v in p), width=int(width), height=int(height))

    @property
    def params(self) -> np.ndarray:
        return np.array([self.alpha, self.beta, self.fu, self.fv, self.u0, self.v0], dtype=np.float64)

    def _denominator(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x, y, z = X[:, 0], X[:, 1], X[:, 2]
        d = np.sqrt(self.beta * (x * x + y * y) + z * z)
        return self.alpha * d + (1.0 - self.alpha) * z, d

    def reconstruct_points(self, uv: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        uv = np.asarray(uv, dtype=np.float64).reshape(-1, 2)
        mx = (uv[:, 0] - self.u0) / self.fu
        my = (uv[:, 1] - self.v0) / self.fv
        r2 = mx * mx + my * my
        gamma = 1.0 - self.alpha
        det = 1.0 - (self.alpha - gamma) * self.beta * r2
        valid = det >= 0
        num = 1.0 - self.alpha * self.alpha * self.beta * r2
        denom = gamma + self.alpha * np.sqrt(np.where(valid, det, 0.0))
        mz = num / denom
        rays = np.stack([mx, my, mz], axis=-1)
        rays[~valid] = np.nan
        return rays, valid

    def project_points(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
        rho, _ = self._denominator(X)
        valid = rho >= self.min_denominator
        rho = np.where(valid, rho, 1.0)
        uv = np.stack([self.fu * X[:, 0] / rho + self.u0, self.fv * X[:, 1] / rho + self.v0], axis=-1)
        uv[~valid] = np.nan
        return uv, valid

    def projection_jacobian(self, X) -> tuple[bool, np.ndarray]:
        X = np.asarray(X, dtype=np.float64).reshape(1, 3)
        rho, d = self._denominator(X)
        rho = float(rho[0])
        d = float(d[0])
        if rho < self.min_denominator:
            return False, np.zeros((2, 3))
        x, y, z = (float(c) for c in X[0])
        drho = np.array(
            [self.alpha * self.beta * x / d, self.alpha * self.beta * y / d, self.alpha * z / d + 1.0 - self.alpha]
        )
        rr = rho * rho
        J = np.empty((2, 3))
        J[0] = -self.fu * x * drho / rr
        J[0, 0] += self.fu / rho
        J[1] = -self.fv * y * drho / rr
        J[1, 1] += self.fv / rho
        return True, J

    def clone(self) -> "EnhancedCamera":
        return EnhancedCamera(
            self.alpha, self.beta, self.fu, self.fv, self.u0, self.v0, self.width, self.height, self.min_denominator
        )
