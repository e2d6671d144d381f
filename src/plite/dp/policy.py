"""Policy extraction and reporting helpers for solved MDPs."""

from __future__ import annotations

from collections import Counter
from typing import Any

import numpy as np
import pandas as pd

from plite.dp.backup import greedy_actions
from plite.dp.value_iteration import ValueIterationResult


class GreedyPolicy:
    """Greedy policy over an interpolated Q-table.

    Calling the policy with one value per state variable, in declared order,
    returns the action tuple with the highest interpolated Q-value. Ties go to
    the action declared first in the action grid.
    """

    def __init__(self, result: ValueIterationResult) -> None:
        self._q_values = result.q_values
        self._state_grid = result.state_grid
        self._actions = result.action_grid.points()

    @property
    def actions(self) -> tuple[tuple[Any, ...], ...]:
        return self._actions

    def q_values(self, *state: Any) -> np.ndarray:
        """Interpolated Q-values of every grid action at ``state``."""
        weights = self._state_grid.interpolation_weights(state)
        q_row = np.zeros(self._q_values.shape[1], dtype=np.float64)
        for state_idx, weight in weights:
            q_row += weight * self._q_values[state_idx]
        return q_row

    def action_index(self, *state: Any) -> int:
        q_row = self.q_values(*state)
        return int(greedy_actions(q_row[np.newaxis, :])[0])

    def __call__(self, *state: Any) -> tuple[Any, ...]:
        return self._actions[self.action_index(*state)]


def extract_policy(result: ValueIterationResult) -> GreedyPolicy:
    """Wrap a solved Q-table into a queryable greedy policy."""
    return GreedyPolicy(result)


def policy_rows(result: ValueIterationResult) -> list[dict[str, object]]:
    """Build flat rows (one per grid state) for policy/value inspection."""
    state_names = result.state_grid.names
    action_names = result.action_grid.names
    actions = result.action_grid.points()

    rows: list[dict[str, object]] = []
    for state_idx, state in enumerate(result.state_grid.iter_points()):
        action_idx = int(result.policy[state_idx])
        row: dict[str, object] = {"state_index": state_idx}
        row.update(zip(state_names, state))
        row["value"] = float(result.values[state_idx])
        row["action_index"] = action_idx
        row.update(
            (f"action_{name}", value) for name, value in zip(action_names, actions[action_idx])
        )
        rows.append(row)
    return rows


def policy_table(result: ValueIterationResult) -> pd.DataFrame:
    """Tabulate grid states with their values and greedy actions."""
    return pd.DataFrame(policy_rows(result)).set_index("state_index")


def summarize_solution(result: ValueIterationResult) -> dict[str, object]:
    """Summarize solver diagnostics and the greedy action histogram."""
    actions = result.action_grid.points()
    counter = Counter(actions[int(idx)] for idx in result.policy)
    return {
        "status": result.status.value,
        "converged": result.converged,
        "iterations": result.iterations,
        "final_residual": result.final_residual,
        "elapsed_time": result.elapsed_time,
        "transition_kind": result.transition_kind.value,
        "n_states": len(result.state_grid),
        "n_actions": len(result.action_grid),
        "action_histogram": {str(action): count for action, count in counter.items()},
        "value_summary": {
            "min": float(np.min(result.values)),
            "max": float(np.max(result.values)),
            "mean": float(np.mean(result.values)),
        },
        "n_warnings": len(result.report.warnings),
    }
