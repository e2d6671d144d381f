"""Variable declaration tests."""

from __future__ import annotations

import math

import pytest

from plite.core.variables import RangeVar, ValuesVar, VariableKind


def test_range_var_is_tagged_and_coerces_bounds() -> None:
    var = RangeVar("x", 0, 100)
    assert var.kind is VariableKind.RANGE
    assert var.min_value == 0.0
    assert isinstance(var.max_value, float)
    assert var.span == 100.0


@pytest.mark.parametrize("bounds", [(1.0, 1.0), (2.0, 1.0), (0.0, math.inf), (math.nan, 1.0)])
def test_range_var_rejects_invalid_bounds(bounds: tuple[float, float]) -> None:
    with pytest.raises(ValueError):
        RangeVar("x", *bounds)


def test_range_var_contains_closed_interval() -> None:
    var = RangeVar("x", -1.0, 1.0)
    assert var.contains(-1.0)
    assert var.contains(1.0)
    assert var.contains(0)
    assert not var.contains(1.0001)
    assert not var.contains("east")
    assert not var.contains(math.nan)


def test_values_var_preserves_declared_order() -> None:
    var = ValuesVar("move", ["W", "E", "stop"])
    assert var.kind is VariableKind.VALUES
    assert var.values == ("W", "E", "stop")
    assert var.contains("stop")
    assert not var.contains("N")
    assert not var.contains(["W"])


def test_values_var_rejects_empty_and_duplicates() -> None:
    with pytest.raises(ValueError, match="at least one"):
        ValuesVar("move", ())
    with pytest.raises(ValueError, match="duplicate"):
        ValuesVar("move", ("W", "W"))


def test_variable_kind_is_fixed_after_construction() -> None:
    var = RangeVar("x", 0.0, 1.0)
    with pytest.raises(AttributeError):
        var.kind = VariableKind.VALUES  # type: ignore[misc]
