"""Bellman backup over precomputed transition kernels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from plite.dp.transitions import TransitionKernel

_TIE_TOL = 1e-12


@dataclass(frozen=True)
class BackupResult:
    """One Bellman backup over a block of grid states."""

    state_indices: np.ndarray
    q_values: np.ndarray
    values: np.ndarray
    policy: np.ndarray
    residual: float


def bellman_backup(
    kernel: TransitionKernel,
    values: np.ndarray,
    discount: float,
) -> BackupResult:
    """Compute ``Q(s, a) = R(s, a) + discount * E[V(s')]`` for the kernel's states.

    ``values`` is the full previous value table and is only read. The residual
    is the sup-norm change over the kernel's states.
    """
    n_states, n_actions = kernel.rewards.shape
    expected = np.bincount(
        kernel.rows,
        weights=kernel.weights * values[kernel.cols],
        minlength=n_states * n_actions,
    )
    q_values = kernel.rewards + discount * expected.reshape(n_states, n_actions)
    next_values = q_values.max(axis=1)
    policy = greedy_actions(q_values)

    if n_states == 0:
        residual = 0.0
    else:
        residual = float(np.max(np.abs(next_values - values[kernel.state_indices])))
    return BackupResult(
        state_indices=kernel.state_indices,
        q_values=q_values,
        values=next_values,
        policy=policy,
        residual=residual,
    )


def greedy_actions(q_values: np.ndarray) -> np.ndarray:
    """Row-wise argmax, breaking near-ties toward the first declared action."""
    best = q_values.max(axis=1, keepdims=True)
    return np.argmax(q_values >= best - _TIE_TOL, axis=1).astype(np.int64)


def merge_backups(
    results: Sequence[BackupResult],
    n_states: int,
    n_actions: int,
) -> BackupResult:
    """Merge per-shard backups into full tables keyed by state index."""
    q_values = np.zeros((n_states, n_actions), dtype=np.float64)
    values = np.zeros(n_states, dtype=np.float64)
    policy = np.zeros(n_states, dtype=np.int64)
    covered = np.zeros(n_states, dtype=bool)
    residual = 0.0

    for result in results:
        idx = result.state_indices
        if np.any(covered[idx]):
            raise ValueError("Backup shards overlap on at least one state index.")
        q_values[idx] = result.q_values
        values[idx] = result.values
        policy[idx] = result.policy
        covered[idx] = True
        residual = max(residual, result.residual)

    if not covered.all():
        missing = int(np.count_nonzero(~covered))
        raise ValueError(f"Backup shards left {missing} state(s) uncovered.")

    return BackupResult(
        state_indices=np.arange(n_states, dtype=np.int64),
        q_values=q_values,
        values=values,
        policy=policy,
        residual=residual,
    )
