"""
Semi-global aggregation of a cost volume along four scanline directions.

Each direction runs the recurrence

  T[d] = cost[d] + min(T_prev[d],
                       T_prev[d-1] + lambda_step,
                       T_prev[d+1] + lambda_step,
                       min(T_prev) + lambda_jump)

from the first element of the scan, which is initialised to the raw cost.
Fusion sums the four tableaus and subtracts twice the raw cost, which each
tableau already includes at the pixel itself.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np

logger = logging.getLogger(__name__)


class Tableaus(NamedTuple):
    left: np.ndarray
    right: np.ndarray
    top: np.ndarray
    bottom: np.ndarray


class DisparityResult(NamedTuple):
    disparity: np.ndarray  # (H,W) uint8
    score: np.ndarray  # (H,W) int64 fused score at the chosen disparity


def dynamic_step(
    in_cost: np.ndarray,
    error: np.ndarray,
    lambda_step: int,
    lambda_jump: int,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """One recurrence step over the last axis (disparities); leading axes are independent scans."""
    in_cost = np.asarray(in_cost)
    best = in_cost.min(axis=-1, keepdims=True)
    val = in_cost.copy()
    np.minimum(val[..., :-1], in_cost[..., 1:] + lambda_step, out=val[..., :-1])
    np.minimum(val[..., 1:], in_cost[..., :-1] + lambda_step, out=val[..., 1:])
    np.minimum(val, best + lambda_jump, out=val)
    val += error
    if out is None:
        return val
    out[...] = val
    return out


def _sweep(cost: np.ndarray, tableau: np.ndarray, axis: int, reverse: bool, lambda_step: int, lambda_jump: int) -> None:
    # move the scan axis to the front: views of (L, M, D)
    c = np.moveaxis(cost, axis, 0)
    t = np.moveaxis(tableau, axis, 0)
    n = c.shape[0]
    order = range(n - 1, -1, -1) if reverse else range(n)
    prev = None
    for i in order:
        if prev is None:
            t[i] = c[i]
        else:
            dynamic_step(t[prev], c[i], lambda_step, lambda_jump, out=t[i])
        prev = i


def allocate_tableaus(shape: tuple[int, int, int]) -> Tableaus:
    return Tableaus(*(np.zeros(shape, dtype=np.int32) for _ in range(4)))


def aggregate(
    cost: np.ndarray,
    lambda_step: int,
    lambda_jump: int,
    out: Tableaus | None = None,
) -> Tableaus:
    """
    Fill the left-to-right, right-to-left, top-down and bottom-up tableaus.

    `cost` has shape (H, W, D). The four sweeps are independent of each other.
    """
    if cost.ndim != 3:
        raise ValueError("cost must have shape (H, W, D)")
    if out is None or out.left.shape != cost.shape:
        out = allocate_tableaus(cost.shape)
    cost = cost.astype(np.int32, copy=False)
    logger.debug("aggregating %s cost volume", cost.shape)
    _sweep(cost, out.left, axis=1, reverse=False, lambda_step=lambda_step, lambda_jump=lambda_jump)
    _sweep(cost, out.right, axis=1, reverse=True, lambda_step=lambda_step, lambda_jump=lambda_jump)
    _sweep(cost, out.top, axis=0, reverse=False, lambda_step=lambda_step, lambda_jump=lambda_jump)
    _sweep(cost, out.bottom, axis=0, reverse=True, lambda_step=lambda_step, lambda_jump=lambda_jump)
    return out


def fused_scores(cost: np.ndarray, tableaus: Tableaus) -> np.ndarray:
    """Four-path sum with the doubly counted raw cost removed, shape (H, W, D)."""
    total = tableaus.left.astype(np.int64) + tableaus.right + tableaus.top + tableaus.bottom
    return total - 2 * cost.astype(np.int64)


def fuse(cost: np.ndarray, tableaus: Tableaus) -> DisparityResult:
    """Best disparity per pixel; ties go to the smallest disparity."""
    score = fused_scores(cost, tableaus)
    disparity = np.argmin(score, axis=-1)
    best = np.take_along_axis(score, disparity[..., None], axis=-1)[..., 0]
    return DisparityResult(disparity.astype(np.uint8), best)


def optimize(cost: np.ndarray, lambda_step: int, lambda_jump: int, out: Tableaus | None = None) -> DisparityResult:
    tableaus = aggregate(cost, lambda_step, lambda_jump, out=out)
    return fuse(cost, tableaus)
