"""Factored MDP model tests."""

from __future__ import annotations

import pytest

from plite.core.model import MDP, LazyFunction
from plite.core.variables import RangeVar, ValuesVar


def _reward(x, move):
    return 0.0


def _transition(x, move, *, scale=1.0):
    return [((x,), 1.0)]


def test_lazy_function_reads_argnames_from_signature() -> None:
    lazy = LazyFunction.from_callable(_transition)
    assert lazy.argnames == ("x", "move")
    assert lazy(3.0, "E") == [((3.0,), 1.0)]


def test_lazy_function_keeps_explicit_argnames() -> None:
    lazy = LazyFunction.from_callable(lambda *args: 0.0, argnames=["x", "move", "x"])
    assert lazy.argnames == ("x", "move", "x")


def test_mdp_exposes_ordered_names() -> None:
    mdp = MDP(
        state_variables=[RangeVar("x", 0.0, 1.0), ValuesVar("goal", ("no", "yes"))],
        action_variables=[ValuesVar("move", ("W", "E"))],
        transition=LazyFunction.from_callable(_transition),
        reward=LazyFunction.from_callable(_reward),
    )
    assert mdp.state_names == ("x", "goal")
    assert mdp.action_names == ("move",)
    assert mdp.state_variable("goal").values == ("no", "yes")
    with pytest.raises(KeyError):
        mdp.action_variable("x")


def test_mdp_rejects_duplicate_names_within_a_namespace() -> None:
    with pytest.raises(ValueError, match="Duplicate state"):
        MDP(
            state_variables=(RangeVar("x", 0.0, 1.0), RangeVar("x", 0.0, 2.0)),
            action_variables=(ValuesVar("move", ("W",)),),
            transition=LazyFunction.from_callable(_transition),
            reward=LazyFunction.from_callable(_reward),
        )


def test_mdp_allows_same_name_across_namespaces() -> None:
    mdp = MDP(
        state_variables=(RangeVar("x", 0.0, 1.0),),
        action_variables=(RangeVar("x", -1.0, 1.0),),
        transition=LazyFunction.from_callable(_transition),
        reward=LazyFunction.from_callable(_reward),
    )
    assert mdp.state_names == mdp.action_names == ("x",)


def test_mdp_requires_state_and_action_variables() -> None:
    with pytest.raises(ValueError, match="state variable"):
        MDP(
            state_variables=(),
            action_variables=(ValuesVar("move", ("W",)),),
            transition=LazyFunction.from_callable(_transition),
            reward=LazyFunction.from_callable(_reward),
        )
