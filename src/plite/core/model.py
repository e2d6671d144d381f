"""Read-only factored MDP model consumed by the solvers.

The authoring side (declaring variables, attaching callables) lives outside
this package; the solvers only rely on the attributes below.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import inspect
from typing import Any, Callable, Iterable

from plite.core.variables import Variable


class TransitionKind(Enum):
    """Calling convention of a transition function."""

    # T(s, a) -> [(next_state, probability), ...]
    DISTRIBUTION = "T(s,a)"
    # T(s, a, s') -> probability
    PROBABILITY = "T(s,a,s')"


@dataclass(frozen=True)
class LazyFunction:
    """Callable paired with its ordered argument names."""

    fn: Callable[..., Any]
    argnames: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "argnames", tuple(str(name) for name in self.argnames))

    def __call__(self, *args: Any) -> Any:
        return self.fn(*args)

    @classmethod
    def from_callable(
        cls,
        fn: Callable[..., Any],
        argnames: Iterable[str] | None = None,
    ) -> "LazyFunction":
        """Wrap ``fn``, reading argument names from its signature when omitted."""
        if argnames is None:
            parameters = inspect.signature(fn).parameters.values()
            argnames = [
                parameter.name
                for parameter in parameters
                if parameter.kind
                in (
                    inspect.Parameter.POSITIONAL_ONLY,
                    inspect.Parameter.POSITIONAL_OR_KEYWORD,
                )
            ]
        return cls(fn=fn, argnames=tuple(argnames))


@dataclass(frozen=True)
class MDP:
    """Immutable factored MDP.

    Attributes:
        state_variables: State variables in declared order.
        action_variables: Action variables in declared order.
        transition: Transition function, either ``T(s, a)`` or ``T(s, a, s')``.
        reward: Reward function ``R(s, a)``.
    """

    state_variables: tuple[Variable, ...]
    action_variables: tuple[Variable, ...]
    transition: LazyFunction
    reward: LazyFunction

    def __post_init__(self) -> None:
        object.__setattr__(self, "state_variables", tuple(self.state_variables))
        object.__setattr__(self, "action_variables", tuple(self.action_variables))
        if not self.state_variables:
            raise ValueError("MDP requires at least one state variable.")
        if not self.action_variables:
            raise ValueError("MDP requires at least one action variable.")
        _check_unique_names(self.state_variables, namespace="state")
        _check_unique_names(self.action_variables, namespace="action")

    @property
    def state_names(self) -> tuple[str, ...]:
        return tuple(var.name for var in self.state_variables)

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(var.name for var in self.action_variables)

    def state_variable(self, name: str) -> Variable:
        for var in self.state_variables:
            if var.name == name:
                return var
        raise KeyError(f"Unknown state variable: {name}")

    def action_variable(self, name: str) -> Variable:
        for var in self.action_variables:
            if var.name == name:
                return var
        raise KeyError(f"Unknown action variable: {name}")


def _check_unique_names(variables: tuple[Variable, ...], *, namespace: str) -> None:
    seen: set[str] = set()
    for var in variables:
        if var.name in seen:
            raise ValueError(f"Duplicate {namespace} variable name: {var.name}")
        seen.add(var.name)
