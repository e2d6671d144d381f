"""Continuous-to-discrete utilities for factored state and action spaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import product
import logging
import math
from typing import Any, Hashable, Iterable, Iterator, Mapping, Sequence

import numpy as np

from plite.core.errors import DiscretizationError
from plite.core.variables import RangeVar, Variable, VariableKind

logger = logging.getLogger(__name__)

# Relative slack when deciding whether the last regular point already sits on max.
_GRID_ATOL = 1e-9


def build_grid(variable: Variable, step: float | None = None) -> tuple[Any, ...]:
    """Return the ordered representative points of one variable.

    Values variables return their declared labels and ignore ``step``. Range
    variables return ``min, min + step, ...`` closed by an extra point at
    exactly ``max`` whenever the last regular point falls short of it.
    """
    if variable.kind is VariableKind.VALUES:
        return tuple(variable.values)
    if variable.kind is VariableKind.RANGE:
        return _range_grid(variable, step)
    raise TypeError(f"Unsupported variable kind for {variable.name}: {variable.kind}")


def check_step(variable: RangeVar, step: object) -> float:
    """Validate a discretization step for a range variable and return it."""
    if step is None:
        raise DiscretizationError(
            f"range variable {variable.name} does not have a discretization scheme"
        )
    try:
        resolved = float(step)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise DiscretizationError(
            f"range variable {variable.name} has a non-numeric discretization step: {step!r}"
        ) from exc
    if not math.isfinite(resolved) or resolved <= 0.0:
        raise DiscretizationError(
            f"range variable {variable.name} needs a positive finite step, got {step!r}"
        )
    if resolved > variable.span:
        raise DiscretizationError(
            f"range variable {variable.name} has a discretization step {resolved} "
            f"larger than its range {variable.span}"
        )
    return resolved


@dataclass(frozen=True)
class FactoredGrid:
    """Cartesian-product grid over several variables in declared order.

    Flat indices follow row-major order: the last variable varies fastest,
    matching :func:`itertools.product` over :attr:`axes`.
    """

    variables: tuple[Variable, ...]
    axes: tuple[tuple[Any, ...], ...]
    _numeric_axes: tuple[np.ndarray | None, ...] = field(
        init=False, repr=False, compare=False
    )
    _label_index: tuple[dict[Hashable, int] | None, ...] = field(
        init=False, repr=False, compare=False
    )
    _strides: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "axes", tuple(tuple(axis) for axis in self.axes))
        if len(self.variables) != len(self.axes):
            raise ValueError(
                f"Expected one axis per variable, got {len(self.axes)} axes for "
                f"{len(self.variables)} variables."
            )
        if any(len(axis) == 0 for axis in self.axes):
            raise ValueError("Grid axes must be non-empty.")

        numeric: list[np.ndarray | None] = []
        labels: list[dict[Hashable, int] | None] = []
        for var, axis in zip(self.variables, self.axes):
            if var.kind is VariableKind.RANGE:
                numeric.append(np.asarray(axis, dtype=np.float64))
                labels.append(None)
            else:
                numeric.append(None)
                labels.append({label: idx for idx, label in enumerate(axis)})

        strides: list[int] = []
        stride = 1
        for axis in reversed(self.axes):
            strides.append(stride)
            stride *= len(axis)
        object.__setattr__(self, "_numeric_axes", tuple(numeric))
        object.__setattr__(self, "_label_index", tuple(labels))
        object.__setattr__(self, "_strides", tuple(reversed(strides)))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(var.name for var in self.variables)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(len(axis) for axis in self.axes)

    def __len__(self) -> int:
        return math.prod(self.shape)

    def points(self) -> tuple[tuple[Any, ...], ...]:
        """Enumerate every grid point in flat-index order."""
        return tuple(self.iter_points())

    def iter_points(self) -> Iterator[tuple[Any, ...]]:
        return product(*self.axes)

    def point(self, index: int) -> tuple[Any, ...]:
        if not (0 <= index < len(self)):
            raise IndexError(f"Grid index {index} out of bounds for size {len(self)}.")
        coords = np.unravel_index(index, self.shape)
        return tuple(axis[int(coord)] for axis, coord in zip(self.axes, coords))

    def index_of(self, point: Sequence[Any]) -> int:
        """Return the flat index of a point lying exactly on the grid."""
        self._check_arity(point)
        index = 0
        for axis_idx, value in enumerate(point):
            labels = self._label_index[axis_idx]
            if labels is not None:
                if value not in labels:
                    raise KeyError(
                        f"{value!r} is not a grid value of {self.variables[axis_idx].name}"
                    )
                coord = labels[value]
            else:
                grid = self._numeric_axes[axis_idx]
                matches = np.flatnonzero(np.isclose(grid, float(value), rtol=0.0, atol=_GRID_ATOL))
                if matches.size == 0:
                    raise KeyError(
                        f"{value!r} is not a grid point of {self.variables[axis_idx].name}"
                    )
                coord = int(matches[0])
            index += coord * self._strides[axis_idx]
        return index

    def interpolation_weights(self, point: Sequence[Any]) -> tuple[tuple[int, float], ...]:
        """Multilinear interpolation weights of ``point`` over grid indices.

        Range coordinates outside the grid are clamped to the nearest boundary.
        Values coordinates must be declared labels.
        """
        self._check_arity(point)
        per_axis = [
            self._axis_weights(axis_idx, value) for axis_idx, value in enumerate(point)
        ]
        weights: list[tuple[int, float]] = []
        for corner in product(*per_axis):
            index = 0
            weight = 1.0
            for axis_idx, (coord, axis_weight) in enumerate(corner):
                index += coord * self._strides[axis_idx]
                weight *= axis_weight
            if weight > 0.0:
                weights.append((index, weight))
        return tuple(weights)

    def _axis_weights(self, axis_idx: int, value: Any) -> tuple[tuple[int, float], ...]:
        labels = self._label_index[axis_idx]
        var = self.variables[axis_idx]
        if labels is not None:
            try:
                coord = labels.get(value)
            except TypeError:
                coord = None
            if coord is None:
                raise ValueError(f"{value!r} is not a declared value of {var.name}")
            return ((coord, 1.0),)
        try:
            numeric = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{value!r} is not numeric for range variable {var.name}") from exc
        if not math.isfinite(numeric):
            raise ValueError(f"{value!r} is not finite for range variable {var.name}")
        return _linear_weights(numeric, self._numeric_axes[axis_idx])

    def _check_arity(self, point: Sequence[Any]) -> None:
        if len(point) != len(self.variables):
            raise ValueError(
                f"Expected a point with {len(self.variables)} coordinates "
                f"{self.names}, got {len(point)}."
            )


def build_factored_grid(
    variables: Iterable[Variable],
    discretization: Mapping[str, float] | None = None,
) -> FactoredGrid:
    """Build the composite grid over ``variables`` using per-name steps."""
    steps = dict(discretization or {})
    variables = tuple(variables)
    axes = tuple(build_grid(var, steps.get(var.name)) for var in variables)
    grid = FactoredGrid(variables=variables, axes=axes)
    logger.debug("Built grid over %s with shape %s (%d points).", grid.names, grid.shape, len(grid))
    return grid


def _range_grid(variable: RangeVar, step: float | None) -> tuple[float, ...]:
    resolved = check_step(variable, step)
    n_steps = int(math.floor(variable.span / resolved + _GRID_ATOL))
    points = variable.min_value + resolved * np.arange(n_steps + 1, dtype=np.float64)
    slack = _GRID_ATOL * max(1.0, abs(variable.max_value))
    if variable.max_value - points[-1] > slack:
        points = np.append(points, variable.max_value)
    else:
        points[-1] = variable.max_value
    return tuple(float(value) for value in points)


def _linear_weights(value: float, grid: np.ndarray) -> tuple[tuple[int, float], ...]:
    """Return a piecewise-linear interpolation over neighboring grid indices."""
    if len(grid) == 1 or value <= grid[0]:
        return ((0, 1.0),)
    if value >= grid[-1]:
        return ((len(grid) - 1, 1.0),)

    right = int(np.searchsorted(grid, value, side="right"))
    left = right - 1
    right_weight = (value - grid[left]) / (grid[right] - grid[left])
    if right_weight <= 0.0:
        return ((left, 1.0),)
    return (
        (left, 1.0 - float(right_weight)),
        (right, float(right_weight)),
    )
