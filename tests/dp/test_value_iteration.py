"""Value iteration solver tests."""

from __future__ import annotations

from dataclasses import replace
import logging

import numpy as np
import pytest

from plite.core.errors import DiscretizationError, TransitionProbeWarning
from plite.core.model import MDP, LazyFunction, TransitionKind
from plite.core.variables import RangeVar, ValuesVar
from plite.dp import solve, solve_value_iteration
from plite.dp.config import ValueIterationConfig
from plite.dp.policy import extract_policy
from plite.dp.value_iteration import SolverStatus
from plite.models.gridworld import build_gridworld_mdp


def test_gridworld_converges_to_walk_then_stop(gridworld_mdp, gridworld_config) -> None:
    result = solve_value_iteration(gridworld_mdp, gridworld_config)

    assert result.converged is True
    assert result.status is SolverStatus.CONVERGED
    assert result.final_residual < gridworld_config.tol
    assert result.iterations == len(result.residual_history)
    assert result.transition_kind is TransitionKind.DISTRIBUTION
    assert result.q_values.shape == (6, 3)

    v20 = 0.99 * 0.8 * 100.0 / (1.0 - 0.99 * 0.2)
    v0 = 0.99 * 0.8 * v20 / (1.0 - 0.99 * 0.2)
    expected = np.array([v0, v20, 100.0, 100.0, v20, v0])
    np.testing.assert_allclose(result.values, expected, atol=1e-3)

    policy = extract_policy(result)
    for x in (0.0, 10.0, 20.0, 25.0):
        assert policy(x) == ("E",)
    for x in (40.0, 50.0, 60.0):
        assert policy(x) == ("stop",)
    for x in (80.0, 90.0, 100.0):
        assert policy(x) == ("W",)


def test_solve_alias_points_to_value_iteration() -> None:
    assert solve is solve_value_iteration


def test_two_state_model_matches_closed_form(two_state_mdp) -> None:
    config = ValueIterationConfig(max_iters=2000, tol=1e-10, discount=0.9, seed=0)
    result = solve(two_state_mdp, config)

    assert result.converged
    # state order follows the declared labels: a, b
    np.testing.assert_allclose(result.values, [9.0, 10.0], atol=1e-8)
    np.testing.assert_allclose(result.q_values, [[8.1, 9.0], [10.0, 8.1]], atol=1e-8)
    np.testing.assert_array_equal(result.policy, [1, 0])


def test_residuals_never_increase(two_state_mdp) -> None:
    config = ValueIterationConfig(max_iters=2000, tol=1e-8, discount=0.9)
    result = solve(two_state_mdp, config)

    history = np.asarray(result.residual_history)
    assert np.all(np.diff(history) <= 1e-12)
    np.testing.assert_allclose(history[:3], [1.0, 0.9, 0.81])


def test_max_iters_reached_is_reported_not_raised(gridworld_mdp, gridworld_config, caplog) -> None:
    config = replace(gridworld_config, max_iters=3)
    with caplog.at_level(logging.WARNING, logger="plite.dp.value_iteration"):
        result = solve_value_iteration(gridworld_mdp, config)

    assert result.converged is False
    assert result.status is SolverStatus.MAX_ITERS_REACHED
    assert result.iterations == 3
    assert result.final_residual >= config.tol
    assert "reached max_iters" in caplog.text


def test_finite_horizon_with_undiscounted_rewards(two_state_mdp) -> None:
    config = ValueIterationConfig(max_iters=5, discount=1.0, finite_horizon=True)
    result = solve(two_state_mdp, config)

    assert result.iterations == 5
    assert result.status is SolverStatus.MAX_ITERS_REACHED
    np.testing.assert_allclose(result.values, [4.0, 5.0])


def test_undiscounted_infinite_horizon_is_rejected(two_state_mdp) -> None:
    with pytest.raises(ValueError, match="finite_horizon"):
        solve(two_state_mdp, ValueIterationConfig(discount=1.0))


def test_invalid_step_fails_before_any_model_call() -> None:
    calls: list[str] = []

    def transition(x, move):
        calls.append("transition")
        return [((x,), 1.0)]

    def reward(x, move):
        calls.append("reward")
        return 0.0

    mdp = MDP(
        state_variables=(RangeVar("x", 0.0, 100.0),),
        action_variables=(ValuesVar("move", ("W", "E")),),
        transition=LazyFunction(transition, argnames=("x", "move")),
        reward=LazyFunction(reward, argnames=("x", "move")),
    )
    with pytest.raises(DiscretizationError):
        solve(mdp, ValueIterationConfig(state_discretization={"x": 200.0}))
    assert calls == []


def test_probe_warning_does_not_block_solve() -> None:
    # leaks half of the mass every step
    mdp = MDP(
        state_variables=(ValuesVar("s", ("a", "b")),),
        action_variables=(ValuesVar("act", ("stay",)),),
        transition=LazyFunction(lambda s, act: [((s,), 0.5)], argnames=("s", "act")),
        reward=LazyFunction(lambda s, act: 1.0, argnames=("s", "act")),
    )
    config = ValueIterationConfig(max_iters=500, tol=1e-10, discount=0.9)
    with pytest.warns(TransitionProbeWarning):
        result = solve(mdp, config)

    assert result.converged
    assert len(result.report.warnings) == 1
    np.testing.assert_allclose(result.values, 1.0 / (1.0 - 0.45), atol=1e-8)


def test_dense_and_distribution_conventions_agree(gridworld_config) -> None:
    sparse = solve(build_gridworld_mdp(), gridworld_config)
    dense = solve(build_gridworld_mdp(dense=True), gridworld_config)

    assert dense.transition_kind is TransitionKind.PROBABILITY
    np.testing.assert_allclose(dense.values, sparse.values, atol=1e-9)
    np.testing.assert_array_equal(dense.policy, sparse.policy)


def test_verbose_run_shows_progress(gridworld_mdp, gridworld_config) -> None:
    pytest.importorskip("tqdm")
    quiet = solve(gridworld_mdp, gridworld_config)
    loud = solve(gridworld_mdp, replace(gridworld_config, verbose=True))
    np.testing.assert_array_equal(loud.values, quiet.values)
    assert loud.iterations == quiet.iterations


def test_result_elapsed_time_and_report(gridworld_mdp, gridworld_config) -> None:
    result = solve(gridworld_mdp, gridworld_config)
    assert result.elapsed_time >= 0.0
    assert result.report.transition_kind is result.transition_kind
    assert result.state_grid.axes == ((0.0, 20.0, 40.0, 60.0, 80.0, 100.0),)
    assert result.action_grid.points() == (("W",), ("E",), ("stop",))
