import numpy as np
import pytest

from curvestereo.stereo.optimizer import aggregate, dynamic_step, fuse, fused_scores, optimize


def _random_cost(rng: np.random.Generator, shape=(6, 7, 9)) -> np.ndarray:
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


def test_dynamic_step_hand_computed():
    out = dynamic_step(np.array([0, 10, 20]), np.array([1, 1, 1]), lambda_step=5, lambda_jump=15)
    assert out.tolist() == [1, 6, 16]


def test_dynamic_step_matches_definition():
    rng = np.random.default_rng(0)
    prev = rng.integers(0, 500, size=11)
    err = rng.integers(0, 256, size=11)
    ls, lj = 7, 40
    got = dynamic_step(prev, err, ls, lj)
    best = prev.min()
    for d in range(11):
        cands = [prev[d], best + lj]
        if d > 0:
            cands.append(prev[d - 1] + ls)
        if d < 10:
            cands.append(prev[d + 1] + ls)
        assert got[d] == err[d] + min(cands)


def test_first_element_of_each_sweep_is_the_raw_cost():
    cost = _random_cost(np.random.default_rng(1))
    t = aggregate(cost, 5, 32)
    assert np.array_equal(t.left[:, 0], cost[:, 0])
    assert np.array_equal(t.right[:, -1], cost[:, -1])
    assert np.array_equal(t.top[0], cost[0])
    assert np.array_equal(t.bottom[-1], cost[-1])


def test_left_sweep_matches_scalar_recurrence():
    cost = _random_cost(np.random.default_rng(2), shape=(2, 5, 4)).astype(np.int64)
    t = aggregate(cost, 3, 20)
    for row in range(2):
        prev = cost[row, 0]
        for col in range(1, 5):
            prev = dynamic_step(prev, cost[row, col], 3, 20)
            assert np.array_equal(t.left[row, col], prev)


def test_larger_jump_penalty_never_decreases_tableaus():
    cost = _random_cost(np.random.default_rng(3))
    low = aggregate(cost, 5, 10)
    high = aggregate(cost, 5, 60)
    for a, b in zip(low, high):
        assert np.all(b >= a)


def test_fused_disparity_is_optimal():
    cost = _random_cost(np.random.default_rng(4))
    tableaus = aggregate(cost, 5, 32)
    result = fuse(cost, tableaus)
    scores = fused_scores(cost, tableaus)
    chosen = np.take_along_axis(scores, result.disparity[..., None].astype(np.int64), axis=-1)[..., 0]
    assert np.array_equal(chosen, result.score)
    assert np.all(scores >= chosen[..., None])
    assert result.disparity.dtype == np.uint8


def test_ties_go_to_the_smallest_disparity():
    cost = np.zeros((3, 4, 5), dtype=np.uint8)
    result = optimize(cost, 5, 32)
    assert np.all(result.disparity == 0)
    assert np.all(result.score == 0)


def test_single_pixel_fusion_subtracts_double_cost():
    cost = np.array([[[4, 1, 9]]], dtype=np.uint8)
    tableaus = aggregate(cost, 5, 32)
    # each tableau is the raw cost: 4c - 2c = 2c
    assert fused_scores(cost, tableaus).tolist() == [[[8, 2, 18]]]
    assert fuse(cost, tableaus).disparity.tolist() == [[1]]


def test_smoothing_fills_a_weak_pixel():
    # a column of pixels preferring disparity 2, except one noisy pixel
    cost = np.full((1, 9, 4), 50, dtype=np.uint8)
    cost[..., 2] = 0
    cost[0, 4] = [40, 50, 45, 50]
    result = optimize(cost, lambda_step=5, lambda_jump=30)
    assert result.disparity.tolist() == [[2] * 9]


def test_rejects_non_volume():
    with pytest.raises(ValueError):
        aggregate(np.zeros((4, 4), dtype=np.uint8), 5, 32)


def test_reuses_provided_tableaus():
    cost = _random_cost(np.random.default_rng(5))
    first = aggregate(cost, 5, 32)
    again = aggregate(cost, 5, 32, out=first)
    assert again is first
