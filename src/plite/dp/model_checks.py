"""Pre-solve checks for a factored MDP and its solver configuration.

Checks run fail-fast in a fixed order: discretization coverage, argument
order, then a random probe of the transition function. Structural problems
raise a :class:`~plite.core.errors.ValidationError` subclass. Findings that a
single random probe can produce on an unreachable or sparse state (a scalar
probability outside [0, 1], a distribution whose mass is not 1) are only
reported as :class:`~plite.core.errors.TransitionProbeWarning`.

The probe samples a handful of random state-action points, so it catches
systematic mistakes (wrong arity, wrong bounds, malformed return values) but
cannot prove the transition function correct everywhere; enumerating a
continuous domain is not possible.
"""

from __future__ import annotations

from dataclasses import dataclass
import numbers
from typing import Any, Sequence
import warnings

import numpy as np

from plite.core.errors import (
    ConsistencyError,
    TransitionBoundsError,
    TransitionProbeWarning,
    TransitionShapeError,
)
from plite.core.model import MDP, TransitionKind
from plite.core.variables import Variable, VariableKind
from plite.dp.config import ValueIterationConfig
from plite.dp.discretization import check_step

_PROB_SUM_TOL = 1e-9


@dataclass(frozen=True)
class CheckResult:
    """One validation check result."""

    name: str
    passed: bool
    details: str
    metric: float | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "passed": self.passed,
            "details": self.details,
        }
        if self.metric is not None:
            payload["metric"] = self.metric
        return payload


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of a successful validation run."""

    transition_kind: TransitionKind
    checks: tuple[CheckResult, ...]

    @property
    def warnings(self) -> tuple[CheckResult, ...]:
        return tuple(check for check in self.checks if not check.passed)

    def to_dict(self) -> dict[str, object]:
        return {
            "transition_kind": self.transition_kind.value,
            "checks": [check.to_dict() for check in self.checks],
            "warnings": [check.to_dict() for check in self.warnings],
        }


def validate(
    mdp: MDP,
    config: ValueIterationConfig,
    *,
    rng: np.random.Generator | None = None,
) -> ValidationReport:
    """Run every pre-solve check and resolve the transition convention."""
    config.validate()
    checks: list[CheckResult] = list(check_discretization(mdp, config))
    kind = check_argument_order(mdp)
    checks.append(
        CheckResult(
            name="argument_order",
            passed=True,
            details=f"transition is a {kind.value} type function",
        )
    )
    if rng is None:
        rng = np.random.default_rng(config.seed)
    checks.extend(check_transition(mdp, kind, n_probes=config.n_probes, rng=rng))
    return ValidationReport(transition_kind=kind, checks=tuple(checks))


def check_discretization(
    mdp: MDP, config: ValueIterationConfig
) -> tuple[CheckResult, ...]:
    """Check that all range variables have valid discretization steps."""
    for var in mdp.state_variables:
        if var.kind is VariableKind.RANGE:
            check_step(var, config.state_discretization.get(var.name))
    for var in mdp.action_variables:
        if var.kind is VariableKind.RANGE:
            check_step(var, config.action_discretization.get(var.name))

    results = [
        CheckResult(
            name="discretization",
            passed=True,
            details="all range variables have valid discretization steps",
        )
    ]
    unused = sorted(
        {
            *(set(config.state_discretization) - set(mdp.state_names)),
            *(set(config.action_discretization) - set(mdp.action_names)),
        }
    )
    if unused:
        results.append(
            CheckResult(
                name="unused_discretization",
                passed=False,
                details=f"discretization steps given for undeclared variables: {', '.join(unused)}",
            )
        )
    return tuple(results)


def check_argument_order(mdp: MDP) -> TransitionKind:
    """Check reward/transition argument names and infer the transition convention."""
    state_names = mdp.state_names
    sa_names = state_names + mdp.action_names
    reward_args = mdp.reward.argnames
    transition_args = mdp.transition.argnames

    if len(reward_args) != len(sa_names):
        raise ConsistencyError(
            "the number of reward function input arguments must be the same as "
            "the sum of the number of state and action variables "
            f"(expected {len(sa_names)}, got {len(reward_args)})"
        )
    if reward_args != sa_names:
        raise ConsistencyError(
            "reward function input arguments must be the state variables followed by "
            f"the action variables in both naming and order: expected {sa_names}, "
            f"got {reward_args}"
        )

    if len(transition_args) == len(sa_names):
        kind = TransitionKind.DISTRIBUTION
    elif len(transition_args) == len(sa_names) + len(state_names):
        kind = TransitionKind.PROBABILITY
    else:
        raise ConsistencyError(
            "the number of transition function input arguments must be the sum of "
            "the number of state and action variables, optionally plus the number "
            f"of next state variables (expected {len(sa_names)} or "
            f"{len(sa_names) + len(state_names)}, got {len(transition_args)})"
        )

    if transition_args[: len(sa_names)] != sa_names:
        raise ConsistencyError(
            "transition and reward function state and action variable input arguments "
            f"must be consistent in both naming and order: expected {sa_names}, "
            f"got {transition_args[: len(sa_names)]}"
        )
    if kind is TransitionKind.PROBABILITY and transition_args[len(sa_names):] != state_names:
        raise ConsistencyError(
            "transition type T(s,a,s')'s state s and next state s' variable input "
            f"arguments must be consistent in both naming and order: expected "
            f"{state_names}, got {transition_args[len(sa_names):]}"
        )
    return kind


def check_transition(
    mdp: MDP,
    kind: TransitionKind,
    *,
    n_probes: int = 1,
    rng: np.random.Generator | None = None,
) -> tuple[CheckResult, ...]:
    """Probe the transition function at random arguments."""
    if rng is None:
        rng = np.random.default_rng()
    results: list[CheckResult] = []
    for _ in range(n_probes):
        args = sample_transition_args(mdp, kind, rng)
        value = mdp.transition(*args)
        if _is_real_scalar(value):
            if kind is not TransitionKind.PROBABILITY:
                raise TransitionShapeError(
                    _probe_message(
                        mdp,
                        args,
                        "transition function declares T(s,a) arguments but returned "
                        "a scalar instead of a list of (state, probability) pairs",
                        return_value=value,
                    )
                )
            results.append(_check_probability_probe(mdp, args, float(value)))
        elif isinstance(value, (list, tuple)):
            if kind is not TransitionKind.DISTRIBUTION:
                raise TransitionShapeError(
                    _probe_message(
                        mdp,
                        args,
                        "transition function declares T(s,a,s') arguments but returned "
                        "a sequence instead of a scalar probability",
                        return_value=value,
                    )
                )
            results.append(_check_distribution_probe(mdp, args, value))
        else:
            raise TransitionShapeError(
                _probe_message(
                    mdp,
                    args,
                    "transition function provided is not a correctly defined "
                    "T(s,a,s') or T(s,a) type function, check the return type "
                    f"({type(value).__name__})",
                    return_value=value,
                )
            )
    return tuple(results)


def sample_transition_args(
    mdp: MDP, kind: TransitionKind, rng: np.random.Generator
) -> list[Any]:
    """Draw one uniform random value per transition argument, by position."""
    variables: tuple[Variable, ...] = mdp.state_variables + mdp.action_variables
    if kind is TransitionKind.PROBABILITY:
        variables = variables + mdp.state_variables
    return [sample_variable(var, rng) for var in variables]


def sample_variable(var: Variable, rng: np.random.Generator) -> Any:
    if var.kind is VariableKind.RANGE:
        return float(rng.uniform(var.min_value, var.max_value))
    if var.kind is VariableKind.VALUES:
        return var.values[int(rng.integers(len(var.values)))]
    raise TypeError(f"Unsupported variable kind for {var.name}: {var.kind}")


def _check_probability_probe(mdp: MDP, args: list[Any], probability: float) -> CheckResult:
    if 0.0 <= probability <= 1.0:
        return CheckResult(
            name="transition_probe",
            passed=True,
            details="sampled T(s,a,s') value is a valid probability",
            metric=probability,
        )
    # Possibly a non-existent sampled state, so only warn.
    message = _probe_message(
        mdp,
        args,
        "transition function provided is of type T(s,a,s'), but the value returned "
        "from a random state is not a valid probability value bounded to [0,1]",
        return_value=probability,
    )
    warnings.warn(message, TransitionProbeWarning, stacklevel=3)
    return CheckResult(
        name="transition_probe",
        passed=False,
        details=message,
        metric=probability,
    )


def _check_distribution_probe(
    mdp: MDP, args: list[Any], distribution: Sequence[Any]
) -> CheckResult:
    n_state_vars = len(mdp.state_variables)
    total = 0.0
    for item in distribution:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise TransitionShapeError(
                _probe_message(
                    mdp,
                    args,
                    "transition function provided is of type T(s,a), but one of the "
                    "returned entries is not a (state, probability) pair",
                    return_value=item,
                )
            )
        state, prob = item
        if not isinstance(state, (list, tuple, np.ndarray)) or len(state) != n_state_vars:
            raise TransitionShapeError(
                _probe_message(
                    mdp,
                    args,
                    "transition function provided is of type T(s,a), but one of the "
                    f"states returned does not have {n_state_vars} coordinates "
                    f"{mdp.state_names}",
                    return_value=state,
                )
            )
        for var, coord in zip(mdp.state_variables, state):
            if not var.contains(coord):
                raise TransitionBoundsError(
                    _probe_message(
                        mdp,
                        args,
                        "transition function provided is of type T(s,a), but one of "
                        "the states returned from a random state is either not bounded "
                        f"by its range or not in the set of values (variable {var.name})",
                        return_value=state,
                        probability=prob,
                    )
                )
        if not _is_real_scalar(prob):
            raise TransitionShapeError(
                _probe_message(
                    mdp,
                    args,
                    "transition function provided is of type T(s,a), but one of the "
                    "probabilities returned is not a real number",
                    return_value=state,
                    probability=prob,
                )
            )
        if not (0.0 <= float(prob) <= 1.0):
            raise TransitionBoundsError(
                _probe_message(
                    mdp,
                    args,
                    "transition function provided is of type T(s,a), but one of the "
                    "probabilities returned from a random state is not a valid "
                    "probability value bounded to [0,1]",
                    return_value=state,
                    probability=prob,
                )
            )
        total += float(prob)

    if abs(total - 1.0) > _PROB_SUM_TOL:
        # Possibly a non-existent sampled state, so only warn.
        message = _probe_message(
            mdp,
            args,
            "transition function provided is of type T(s,a), but the transition "
            "probabilities returned from a random state do not sum to 1.0 "
            f"(sum={total:.12g})",
            return_value=list(distribution),
        )
        warnings.warn(message, TransitionProbeWarning, stacklevel=3)
        return CheckResult(
            name="transition_probe",
            passed=False,
            details=message,
            metric=total,
        )
    return CheckResult(
        name="transition_probe",
        passed=True,
        details=f"sampled T(s,a) distribution over {len(distribution)} states is valid",
        metric=total,
    )


def _is_real_scalar(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))


def _probe_message(
    mdp: MDP,
    args: list[Any],
    headline: str,
    *,
    return_value: object,
    probability: object | None = None,
) -> str:
    lines = [
        headline,
        f"argument names: {mdp.transition.argnames}",
        f"random state: {args}",
        f"return value: {return_value!r}",
    ]
    if probability is not None:
        lines.append(f"probability: {probability!r}")
    return "\n".join(lines)
