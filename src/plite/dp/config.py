"""Solver configuration schema and YAML helpers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
import warnings

import yaml

from plite.core.errors import DiscretizationError

MAX_ITERS = 1000
TOL = 1e-4

EXECUTORS = ("process", "thread")


def default_nthreads() -> int:
    """Approximate the physical core count as half of the logical cores."""
    return max(1, (os.cpu_count() or 2) // 2)


@dataclass(frozen=True)
class ValueIterationConfig:
    """Configuration for discretized value iteration.

    Attributes:
        max_iters: Iteration cap. Finite-horizon problems rely on reaching it.
        tol: Stop once the sup-norm value residual drops below this.
        discount: Discount factor in (0, 1]; 1 requires ``finite_horizon``.
        verbose: Show a progress bar with the current residual.
        state_discretization: Step per range state variable name, read-only.
        action_discretization: Step per range action variable name, read-only.
        parallel: Distribute backups over a worker pool.
        nthreads: Worker count, resolved when the config is built.
        executor: ``"process"`` or ``"thread"`` worker pool.
        seed: Seed for the random transition probe.
        n_probes: Number of random transition probes run before solving.
        finite_horizon: Allow ``discount == 1`` and treat the cap as the horizon.
    """

    max_iters: int = MAX_ITERS
    tol: float = TOL
    discount: float = 0.99
    verbose: bool = False
    state_discretization: Mapping[str, float] = field(default_factory=dict)
    action_discretization: Mapping[str, float] = field(default_factory=dict)
    parallel: bool = False
    nthreads: int | None = None
    executor: str = "process"
    seed: int | None = None
    n_probes: int = 1
    finite_horizon: bool = False
    progress_desc: str = "Value Iteration"

    def __post_init__(self) -> None:
        if self.nthreads is None:
            object.__setattr__(self, "nthreads", default_nthreads())
        object.__setattr__(
            self,
            "state_discretization",
            _freeze_steps(self.state_discretization, namespace="state"),
        )
        object.__setattr__(
            self,
            "action_discretization",
            _freeze_steps(self.action_discretization, namespace="action"),
        )

    def validate(self) -> None:
        if self.max_iters <= 0:
            raise ValueError("max_iters must be positive.")
        if self.tol <= 0.0:
            raise ValueError("tol must be positive.")
        if not (0.0 < self.discount <= 1.0):
            raise ValueError("discount must be in (0, 1].")
        if self.discount == 1.0 and not self.finite_horizon:
            raise ValueError("discount=1 is only permitted with finite_horizon=True.")
        if self.nthreads is None or self.nthreads <= 0:
            raise ValueError("nthreads must be positive.")
        if self.executor not in EXECUTORS:
            raise ValueError(f"executor must be one of {EXECUTORS}, got {self.executor!r}.")
        if self.n_probes < 0:
            raise ValueError("n_probes must be non-negative.")

    def with_state_step(self, varname: str, step: float) -> "ValueIterationConfig":
        """Return a copy discretizing state variable ``varname`` with ``step``."""
        if varname in self.state_discretization:
            warnings.warn(
                f"state variable {varname} already discretized, "
                "replacing existing discretization scheme",
                UserWarning,
                stacklevel=2,
            )
        updated = {**self.state_discretization, varname: step}
        return replace(self, state_discretization=updated)

    def with_action_step(self, varname: str, step: float) -> "ValueIterationConfig":
        """Return a copy discretizing action variable ``varname`` with ``step``."""
        if varname in self.action_discretization:
            warnings.warn(
                f"action variable {varname} already discretized, "
                "replacing existing discretization scheme",
                UserWarning,
                stacklevel=2,
            )
        updated = {**self.action_discretization, varname: step}
        return replace(self, action_discretization=updated)

    def to_dict(self) -> dict[str, Any]:
        """Convert the config to a plain dict."""
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["state_discretization"] = dict(self.state_discretization)
        payload["action_discretization"] = dict(self.action_discretization)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ValueIterationConfig":
        """Create a config from a plain dict, ignoring unset keys."""
        known = {name for name in cls.__dataclass_fields__}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown solver config keys: {', '.join(unknown)}")
        kwargs = dict(payload)
        for key in ("state_discretization", "action_discretization"):
            raw = kwargs.get(key)
            if raw is None:
                kwargs.pop(key, None)
            elif not isinstance(raw, dict):
                raise ValueError(f"{key} must be a mapping of variable name to step.")
        for key in ("tol", "discount"):
            if key in kwargs:
                kwargs[key] = float(kwargs[key])
        for key in ("max_iters", "n_probes"):
            if key in kwargs:
                kwargs[key] = int(kwargs[key])
        if kwargs.get("nthreads") is not None:
            kwargs["nthreads"] = int(kwargs["nthreads"])
        return cls(**kwargs)


def _freeze_steps(steps: Mapping[str, Any], *, namespace: str) -> Mapping[str, float]:
    """Coerce steps to floats and wrap them read-only."""
    frozen: dict[str, float] = {}
    for name, step in steps.items():
        if step is None:
            raise DiscretizationError(
                f"{namespace} variable {name} does not have a discretization scheme"
            )
        try:
            frozen[str(name)] = float(step)
        except (TypeError, ValueError) as exc:
            raise DiscretizationError(
                f"{namespace} variable {name} has a non-numeric discretization step: {step!r}"
            ) from exc
    return MappingProxyType(frozen)


def save_solver_config(config: ValueIterationConfig, output_path: Path) -> None:
    """Serialize a solver config to YAML."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False))


def load_solver_config(path: Path) -> ValueIterationConfig:
    """Load a solver config from YAML."""
    payload = yaml.safe_load(Path(path).read_text())
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a mapping in solver config YAML: {path}")
    return ValueIterationConfig.from_dict(payload)
