"""Discretized value iteration for factored MDPs."""

from plite.dp.config import ValueIterationConfig, load_solver_config
from plite.dp.discretization import FactoredGrid, build_factored_grid, build_grid
from plite.dp.model_checks import ValidationReport, validate
from plite.dp.policy import GreedyPolicy, extract_policy, policy_table
from plite.dp.value_iteration import (
    SolverStatus,
    ValueIterationResult,
    solve,
    solve_value_iteration,
)

__all__ = [
    "FactoredGrid",
    "GreedyPolicy",
    "SolverStatus",
    "ValidationReport",
    "ValueIterationConfig",
    "ValueIterationResult",
    "build_factored_grid",
    "build_grid",
    "extract_policy",
    "load_solver_config",
    "policy_table",
    "solve",
    "solve_value_iteration",
    "validate",
]
