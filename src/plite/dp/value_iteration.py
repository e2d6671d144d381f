"""Value-iteration solver for discretized factored MDPs."""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import time
from typing import Callable

import numpy as np

from plite.core.model import MDP, TransitionKind
from plite.dp.backup import BackupResult, bellman_backup
from plite.dp.config import ValueIterationConfig
from plite.dp.discretization import FactoredGrid, build_factored_grid
from plite.dp.model_checks import ValidationReport, validate
from plite.dp.parallel import ShardedBackup
from plite.dp.transitions import build_transition_kernel

logger = logging.getLogger(__name__)


class SolverStatus(Enum):
    """Convergence controller states."""

    READY = "ready"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERS_REACHED = "max_iters_reached"


@dataclass(frozen=True)
class ValueIterationResult:
    """Outputs from a value-iteration solve."""

    q_values: np.ndarray
    values: np.ndarray
    policy: np.ndarray
    state_grid: FactoredGrid
    action_grid: FactoredGrid
    transition_kind: TransitionKind
    iterations: int
    converged: bool
    status: SolverStatus
    elapsed_time: float
    final_residual: float
    residual_history: tuple[float, ...]
    report: ValidationReport


def solve_value_iteration(
    mdp: MDP,
    config: ValueIterationConfig,
) -> ValueIterationResult:
    """Validate ``mdp`` against ``config`` and run value iteration.

    Raises a :class:`~plite.core.errors.ValidationError` before any backup when
    the model and config are inconsistent. Hitting ``config.max_iters`` is not
    an error: the result is returned with ``status=MAX_ITERS_REACHED``.
    """
    report = validate(mdp, config)
    start = time.perf_counter()

    state_grid = build_factored_grid(mdp.state_variables, config.state_discretization)
    action_grid = build_factored_grid(mdp.action_variables, config.action_discretization)
    n_states = len(state_grid)
    n_actions = len(action_grid)
    logger.info(
        "Solving %s MDP over %d states x %d actions (%s).",
        report.transition_kind.value,
        n_states,
        n_actions,
        f"parallel, {config.nthreads} {config.executor} workers"
        if config.parallel
        else "serial",
    )

    logger.debug("Controller %s: model validated and grids built.", SolverStatus.READY.value)

    backup: Callable[[np.ndarray, float], BackupResult]
    with ExitStack() as stack:
        if config.parallel:
            backup = stack.enter_context(
                ShardedBackup(
                    mdp=mdp,
                    kind=report.transition_kind,
                    state_grid=state_grid,
                    action_grid=action_grid,
                    nthreads=config.nthreads,
                    executor=config.executor,
                )
            )
        else:
            kernel = build_transition_kernel(
                mdp,
                report.transition_kind,
                state_grid,
                action_grid,
            )
            backup = partial(bellman_backup, kernel)

        logger.debug("Controller %s.", SolverStatus.ITERATING.value)
        values_vec, q_values, policy_vec, history, converged = _iterate(
            backup=backup,
            n_states=n_states,
            n_actions=n_actions,
            config=config,
        )

    elapsed = time.perf_counter() - start
    iterations = len(history)
    final_residual = history[-1]
    status = SolverStatus.CONVERGED if converged else SolverStatus.MAX_ITERS_REACHED

    if converged:
        logger.info(
            "Value iteration converged in %d iterations (residual=%.3e, %.3fs).",
            iterations,
            final_residual,
            elapsed,
        )
    elif config.finite_horizon:
        logger.info(
            "Value iteration ran the %d-step horizon (residual=%.3e, %.3fs).",
            iterations,
            final_residual,
            elapsed,
        )
    else:
        logger.warning(
            "Value iteration reached max_iters=%d without converging "
            "(residual=%.3e > tol=%.3e, %.3fs).",
            iterations,
            final_residual,
            config.tol,
            elapsed,
        )

    return ValueIterationResult(
        q_values=q_values,
        values=values_vec,
        policy=policy_vec,
        state_grid=state_grid,
        action_grid=action_grid,
        transition_kind=report.transition_kind,
        iterations=iterations,
        converged=converged,
        status=status,
        elapsed_time=elapsed,
        final_residual=final_residual,
        residual_history=tuple(history),
        report=report,
    )


solve = solve_value_iteration


def _iterate(
    *,
    backup: Callable[[np.ndarray, float], BackupResult],
    n_states: int,
    n_actions: int,
    config: ValueIterationConfig,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, list[float], bool]:
    values_vec = np.zeros(n_states, dtype=np.float64)
    q_values = np.zeros((n_states, n_actions), dtype=np.float64)
    policy_vec = np.zeros(n_states, dtype=np.int64)
    history: list[float] = []
    converged = False

    iterator = range(1, config.max_iters + 1)
    show_tqdm = config.verbose
    progress = iterator
    if show_tqdm:
        # Import tqdm lazily to avoid notebook-side effects when progress is disabled.
        from tqdm.auto import tqdm

        progress = tqdm(
            iterator,
            desc=config.progress_desc,
            dynamic_ncols=True,
            leave=False,
        )

    try:
        for _ in progress:
            result = backup(values_vec, config.discount)
            values_vec = result.values
            q_values = result.q_values
            policy_vec = result.policy
            history.append(result.residual)

            if show_tqdm:
                progress.set_postfix({"residual": f"{result.residual:.3e}"}, refresh=False)

            if result.residual < config.tol:
                converged = True
                break
    finally:
        if show_tqdm:
            progress.close()

    return values_vec, q_values, policy_vec, history, converged
