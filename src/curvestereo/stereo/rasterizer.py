from __future__ import annotations

from curvestereo.stereo.epipolar import QuadraticCurve


class CurveRasterizer:
    """
    Discrete walk along an implicit quadratic curve, one pixel per step.

    Each step moves exactly one coordinate by +-1: of the x-move and the y-move
    in the quadrant of the local tangent, the one leaving the smaller |f| wins.
    The tangent orientation is fixed at construction (towards `target`) and
    carried along the walk so it never flips back.

    Visited states are kept so that `step` and `unstep` retrace each other
    exactly: `steps(-n)` followed by `steps(n)` lands on the starting pixel.
    """

    __slots__ = ("x", "y", "curve", "_dx", "_dy", "_trail", "_rewound")

    def __init__(self, start, target, curve: QuadraticCurve) -> None:
        self.x = int(start[0])
        self.y = int(start[1])
        self.curve = curve
        self._trail: list[tuple[int, int, float, float]] = []
        self._rewound: list[tuple[int, int, float, float]] = []
        ox = float(target[0]) - self.x
        oy = float(target[1]) - self.y
        tx, ty = self._tangent()
        if tx * ox + ty * oy < 0:
            tx, ty = -tx, -ty
        if tx == 0.0 and ty == 0.0:
            tx, ty = ox, oy
        self._dx, self._dy = tx, ty

    def _tangent(self) -> tuple[float, float]:
        gu, gv = self.curve.gradient(self.x, self.y)
        return -gv, gu

    def _advance(self, ox: float, oy: float) -> tuple[float, float]:
        tx, ty = self._tangent()
        if tx * ox + ty * oy < 0:
            tx, ty = -tx, -ty
        elif tx == 0.0 and ty == 0.0:
            tx, ty = ox, oy
        sx = 1 if tx > 0 else -1
        sy = 1 if ty > 0 else -1
        if ty == 0.0:
            self.x += sx
        elif tx == 0.0:
            self.y += sy
        else:
            fx = abs(self.curve(self.x + sx, self.y))
            fy = abs(self.curve(self.x, self.y + sy))
            if fx < fy or (fx == fy and abs(tx) >= abs(ty)):
                self.x += sx
            else:
                self.y += sy
        return tx, ty

    def _state(self) -> tuple[int, int, float, float]:
        return self.x, self.y, self._dx, self._dy

    def _restore(self, state: tuple[int, int, float, float]) -> None:
        self.x, self.y, self._dx, self._dy = state

    def step(self) -> None:
        """Move one pixel along the walk orientation."""
        self._trail.append(self._state())
        if self._rewound:
            self._restore(self._rewound.pop())
        else:
            self._dx, self._dy = self._advance(self._dx, self._dy)

    def unstep(self) -> None:
        """Move one pixel back; past the start, walk the reversed orientation."""
        if self._trail:
            self._restore(self._trail.pop())
            return
        self._rewound.append(self._state())
        tx, ty = self._advance(-self._dx, -self._dy)
        self._dx, self._dy = -tx, -ty

    def steps(self, n: int) -> None:
        """Advance n pixels (rewind for negative n); same result as repeated step()/unstep()."""
        if n >= 0:
            for _ in range(n):
                self.step()
        else:
            for _ in range(-n):
                self.unstep()

    @property
    def position(self) -> tuple[int, int]:
        return self.x, self.y
