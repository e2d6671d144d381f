"""Factored state and action variable declarations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Hashable, Union


class VariableKind(Enum):
    """Closed set of variable kinds."""

    RANGE = "range"
    VALUES = "values"


@dataclass(frozen=True)
class RangeVar:
    """Continuous variable bounded by a closed interval.

    Attributes:
        name: Variable name, unique within its state or action namespace.
        min_value: Lower bound.
        max_value: Upper bound, strictly greater than ``min_value``.
    """

    name: str
    min_value: float
    max_value: float
    kind: VariableKind = field(default=VariableKind.RANGE, init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "min_value", float(self.min_value))
        object.__setattr__(self, "max_value", float(self.max_value))
        if not (math.isfinite(self.min_value) and math.isfinite(self.max_value)):
            raise ValueError(f"Range variable {self.name} must have finite bounds.")
        if self.min_value >= self.max_value:
            raise ValueError(
                f"Range variable {self.name} requires min_value < max_value, got "
                f"[{self.min_value}, {self.max_value}]."
            )

    @property
    def span(self) -> float:
        return self.max_value - self.min_value

    def contains(self, value: object) -> bool:
        try:
            numeric = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        return self.min_value <= numeric <= self.max_value


@dataclass(frozen=True)
class ValuesVar:
    """Discrete variable over an ordered set of distinct labels."""

    name: str
    values: tuple[Hashable, ...]
    kind: VariableKind = field(default=VariableKind.VALUES, init=False)

    def __post_init__(self) -> None:
        values = tuple(self.values)
        if not values:
            raise ValueError(f"Values variable {self.name} must declare at least one value.")
        if len(set(values)) != len(values):
            raise ValueError(f"Values variable {self.name} has duplicate values: {values}.")
        object.__setattr__(self, "values", values)

    def contains(self, value: object) -> bool:
        try:
            return value in self.values
        except (TypeError, ValueError):
            return False


Variable = Union[RangeVar, ValuesVar]
