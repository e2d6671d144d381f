"""Tabular transition kernels over a discretized factored MDP."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import numbers
from typing import Any, Iterable, Sequence

import numpy as np

from plite.core.errors import TransitionBoundsError, TransitionShapeError
from plite.core.model import MDP, TransitionKind
from plite.dp.discretization import FactoredGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionKernel:
    """Rewards and successor weights for a block of grid states.

    Row ``local_state * n_actions + action`` of the sparse kernel holds the
    successor grid indices (``cols``) and their weights for one state-action
    pair. Weights already fold in multilinear interpolation.
    """

    state_indices: np.ndarray
    rewards: np.ndarray
    rows: np.ndarray
    cols: np.ndarray
    weights: np.ndarray

    @property
    def n_states(self) -> int:
        return int(self.rewards.shape[0])

    @property
    def n_actions(self) -> int:
        return int(self.rewards.shape[1])


def build_transition_kernel(
    mdp: MDP,
    kind: TransitionKind,
    state_grid: FactoredGrid,
    action_grid: FactoredGrid,
    state_indices: Sequence[int] | np.ndarray | None = None,
) -> TransitionKernel:
    """Evaluate reward and transition functions for every (state, action) pair.

    Args:
        mdp: Model whose callables are evaluated.
        kind: Resolved transition calling convention.
        state_grid: Discretized state space.
        action_grid: Discretized action space.
        state_indices: Grid states to cover; defaults to all of them.

    Returns:
        Kernel for ``state_indices`` in the given order.
    """
    if state_indices is None:
        indices = np.arange(len(state_grid), dtype=np.int64)
    else:
        indices = np.asarray(state_indices, dtype=np.int64)

    actions = action_grid.points()
    n_actions = len(actions)
    successors = state_grid.points() if kind is TransitionKind.PROBABILITY else ()

    rewards = np.zeros((len(indices), n_actions), dtype=np.float64)
    rows: list[int] = []
    cols: list[int] = []
    weights: list[float] = []

    for local, state_idx in enumerate(indices):
        state = state_grid.point(int(state_idx))
        for action_idx, action in enumerate(actions):
            rewards[local, action_idx] = float(mdp.reward(*state, *action))
            if kind is TransitionKind.DISTRIBUTION:
                branches = _distribution_weights(mdp, state_grid, state, action)
            else:
                branches = _dense_weights(mdp, successors, state, action)
            row = local * n_actions + action_idx
            for next_idx, weight in branches:
                rows.append(row)
                cols.append(next_idx)
                weights.append(weight)

    logger.debug(
        "Built transition kernel for %d states x %d actions (%d nonzeros).",
        len(indices),
        n_actions,
        len(weights),
    )
    return TransitionKernel(
        state_indices=indices,
        rewards=rewards,
        rows=np.asarray(rows, dtype=np.int64),
        cols=np.asarray(cols, dtype=np.int64),
        weights=np.asarray(weights, dtype=np.float64),
    )


def _distribution_weights(
    mdp: MDP,
    state_grid: FactoredGrid,
    state: tuple[Any, ...],
    action: tuple[Any, ...],
) -> Iterable[tuple[int, float]]:
    """Map a T(s,a) successor list onto grid indices by interpolation.

    Every entry is checked the way the pre-solve probe checks its sample, so a
    malformed grid state the probe never drew still fails the build.
    """
    outcomes: dict[int, float] = {}
    n_state_vars = len(state_grid.variables)
    for item in mdp.transition(*state, *action):
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise TransitionShapeError(
                f"transition from state {state} under action {action} returned "
                f"{item!r}, which is not a (state, probability) pair"
            )
        next_state, probability = item
        if not isinstance(next_state, (list, tuple, np.ndarray)) or len(next_state) != n_state_vars:
            raise TransitionShapeError(
                f"transition from state {state} under action {action} returned "
                f"successor {next_state!r} that does not have {n_state_vars} coordinates "
                f"{state_grid.names}"
            )
        if not _is_real_scalar(probability):
            raise TransitionShapeError(
                f"transition from state {state} under action {action} returned "
                f"probability {probability!r} for successor {next_state!r}, "
                "which is not a real number"
            )
        probability = float(probability)
        if not math.isfinite(probability) or not (0.0 <= probability <= 1.0):
            raise TransitionBoundsError(
                f"transition from state {state} under action {action} returned "
                f"probability {probability!r} for successor {next_state!r}, "
                "which is not a valid probability value bounded to [0,1]"
            )
        if probability == 0.0:
            continue
        try:
            corners = state_grid.interpolation_weights(tuple(next_state))
        except ValueError as exc:
            raise TransitionBoundsError(
                f"transition from state {state} under action {action} returned "
                f"successor {next_state!r} that cannot be placed on the state grid: {exc}"
            ) from exc
        for next_idx, corner_weight in corners:
            outcomes[next_idx] = outcomes.get(next_idx, 0.0) + probability * corner_weight
    return outcomes.items()


def _dense_weights(
    mdp: MDP,
    successors: tuple[tuple[Any, ...], ...],
    state: tuple[Any, ...],
    action: tuple[Any, ...],
) -> Iterable[tuple[int, float]]:
    """Enumerate every grid successor of a T(s,a,s') function."""
    for next_idx, next_state in enumerate(successors):
        value = mdp.transition(*state, *action, *next_state)
        if not _is_real_scalar(value):
            raise TransitionShapeError(
                f"transition from state {state} under action {action} to {next_state} "
                f"returned {value!r} instead of a scalar probability"
            )
        probability = float(value)
        if not math.isfinite(probability):
            raise TransitionBoundsError(
                f"transition from state {state} under action {action} to {next_state} "
                f"returned a non-finite probability {probability!r}"
            )
        if probability != 0.0:
            yield next_idx, probability


def _is_real_scalar(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))
