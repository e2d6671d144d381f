"""Bellman backup tests."""

from __future__ import annotations

import numpy as np
import pytest

from plite.core.model import TransitionKind
from plite.dp.backup import bellman_backup, greedy_actions, merge_backups
from plite.dp.discretization import build_factored_grid
from plite.dp.transitions import build_transition_kernel
from plite.models.gridworld import build_gridworld_mdp


def _gridworld_kernel(state_indices=None):
    mdp = build_gridworld_mdp()
    return build_transition_kernel(
        mdp,
        TransitionKind.DISTRIBUTION,
        build_factored_grid(mdp.state_variables, {"x": 20.0}),
        build_factored_grid(mdp.action_variables),
        state_indices=state_indices,
    )


def test_first_backup_from_zero_values_returns_rewards() -> None:
    kernel = _gridworld_kernel()
    result = bellman_backup(kernel, np.zeros(6), 0.99)

    np.testing.assert_allclose(result.q_values, kernel.rewards)
    np.testing.assert_allclose(result.values, [0.0, 0.0, 1.0, 1.0, 0.0, 0.0])
    # ties at zero go to the first declared action (W)
    np.testing.assert_array_equal(result.policy, [0, 0, 2, 2, 0, 0])
    assert result.residual == pytest.approx(1.0)


def test_backup_matches_hand_computed_q_values() -> None:
    kernel = _gridworld_kernel()
    values = np.array([0.0, 10.0, 20.0, 30.0, 40.0, 50.0])
    result = bellman_backup(kernel, values, 0.5)

    # x=20: W -> 0.8*V(0) + 0.2*V(20), E -> 0.8*V(40) + 0.2*V(20), stop -> V(20)
    np.testing.assert_allclose(result.q_values[1], [0.5 * 2.0, 0.5 * 18.0, 0.5 * 10.0])
    # x=40 stop earns 1
    assert result.q_values[2, 2] == pytest.approx(1.0 + 0.5 * 20.0)
    np.testing.assert_allclose(result.values, result.q_values.max(axis=1))
    assert result.residual == pytest.approx(np.max(np.abs(result.values - values)))


def test_backup_is_deterministic_and_does_not_mutate_inputs() -> None:
    kernel = _gridworld_kernel()
    values = np.linspace(0.0, 5.0, 6)
    before = values.copy()
    weights_before = kernel.weights.copy()

    first = bellman_backup(kernel, values, 0.9)
    second = bellman_backup(kernel, values, 0.9)

    np.testing.assert_array_equal(values, before)
    np.testing.assert_array_equal(kernel.weights, weights_before)
    np.testing.assert_array_equal(first.q_values, second.q_values)
    np.testing.assert_array_equal(first.policy, second.policy)


def test_backup_accepts_read_only_value_snapshot() -> None:
    kernel = _gridworld_kernel()
    values = np.ones(6)
    values.setflags(write=False)
    result = bellman_backup(kernel, values, 0.9)
    assert result.values.shape == (6,)


def test_shard_backup_reads_full_value_table() -> None:
    full = _gridworld_kernel()
    shard = _gridworld_kernel(state_indices=[1, 2])
    values = np.array([3.0, 1.0, 4.0, 1.0, 5.0, 9.0])

    full_result = bellman_backup(full, values, 0.9)
    shard_result = bellman_backup(shard, values, 0.9)

    np.testing.assert_allclose(shard_result.q_values, full_result.q_values[1:3])
    np.testing.assert_array_equal(shard_result.state_indices, [1, 2])
    assert shard_result.residual == pytest.approx(
        np.max(np.abs(shard_result.values - values[[1, 2]]))
    )


def test_greedy_actions_break_near_ties_toward_first_action() -> None:
    q = np.array(
        [
            [1.0, 1.0, 0.0],
            [0.0, 2.0, 2.0 + 1e-14],
            [0.0, 0.5, 1.0],
        ]
    )
    np.testing.assert_array_equal(greedy_actions(q), [0, 1, 2])


def test_merge_orders_results_by_state_index() -> None:
    kernel = _gridworld_kernel()
    values = np.arange(6, dtype=float)
    full = bellman_backup(kernel, values, 0.9)
    parts = [
        bellman_backup(_gridworld_kernel(indices), values, 0.9)
        for indices in ([3, 4, 5], [0, 1, 2])
    ]

    merged = merge_backups(parts, 6, 3)

    np.testing.assert_allclose(merged.q_values, full.q_values)
    np.testing.assert_allclose(merged.values, full.values)
    np.testing.assert_array_equal(merged.policy, full.policy)
    assert merged.residual == pytest.approx(full.residual)


def test_merge_rejects_overlapping_or_missing_shards() -> None:
    values = np.zeros(6)
    left = bellman_backup(_gridworld_kernel([0, 1, 2]), values, 0.9)
    overlap = bellman_backup(_gridworld_kernel([2, 3, 4, 5]), values, 0.9)
    right = bellman_backup(_gridworld_kernel([3, 4]), values, 0.9)

    with pytest.raises(ValueError, match="overlap"):
        merge_backups([left, overlap], 6, 3)
    with pytest.raises(ValueError, match="uncovered"):
        merge_backups([left, right], 6, 3)
