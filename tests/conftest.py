"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from plite.core.model import MDP, LazyFunction
from plite.core.variables import ValuesVar
from plite.dp.config import ValueIterationConfig
from plite.models.gridworld import build_gridworld_mdp

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


def _other(s: str) -> str:
    return "b" if s == "a" else "a"


def two_state_transition(s: str, act: str) -> list[tuple[tuple[str], float]]:
    if act == "stay":
        return [((s,), 1.0)]
    return [((_other(s),), 1.0)]


def two_state_reward(s: str, act: str) -> float:
    return 1.0 if s == "b" and act == "stay" else 0.0


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def two_state_mdp() -> MDP:
    """Rewarded only for staying in ``b``; V*(b) = 1/(1-g), V*(a) = g/(1-g)."""
    return MDP(
        state_variables=(ValuesVar("s", ("a", "b")),),
        action_variables=(ValuesVar("act", ("stay", "switch")),),
        transition=LazyFunction(two_state_transition, argnames=("s", "act")),
        reward=LazyFunction(two_state_reward, argnames=("s", "act")),
    )


@pytest.fixture
def gridworld_mdp() -> MDP:
    return build_gridworld_mdp()


@pytest.fixture
def gridworld_config() -> ValueIterationConfig:
    return ValueIterationConfig(
        max_iters=5000,
        tol=1e-6,
        discount=0.99,
        state_discretization={"x": 20.0},
        seed=0,
    )
