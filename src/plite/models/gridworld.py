"""One-dimensional grid world: walk to the midpoint and stop there.

State ``x`` is a position in ``[min_x, max_x]``; action ``move`` is one of
``W``, ``E`` or ``stop``. Moving shifts ``x`` by ``move_step`` with probability
``success`` (staying put otherwise), clamped to the bounds. Stopping within
``radius`` of ``goal`` earns a reward of 1.

With the default ``radius`` of half a move, a grid whose step equals
``move_step`` does not contain ``goal`` itself when the midpoint falls between
grid points (step 20 on ``[0, 100]`` gives 40 and 60 around 50). Both
neighbours are then rewarded, so the greedy policy moves ``E`` below 40,
stops on ``[40, 60]`` and moves ``W`` above 60, rather than switching from
``E`` to ``W`` exactly at the midpoint.

Functions are module-level and bound with :func:`functools.partial` so the
model can be shipped to process-pool workers.
"""

from __future__ import annotations

from functools import partial
import math

from plite.core.model import MDP, LazyFunction
from plite.core.variables import RangeVar, ValuesVar

MOVES = ("W", "E", "stop")


def gridworld_transition(
    x: float,
    move: str,
    *,
    move_step: float,
    min_x: float,
    max_x: float,
    success: float,
) -> list[tuple[tuple[float], float]]:
    """T(s, a): distribution over next positions."""
    if move == "stop":
        return [((x,), 1.0)]
    shift = move_step if move == "E" else -move_step
    target = min(max(x + shift, min_x), max_x)
    if success >= 1.0 or target == x:
        return [((target,), 1.0)]
    return [((target,), success), ((x,), 1.0 - success)]


def gridworld_probability(
    x: float,
    move: str,
    x_next: float,
    *,
    move_step: float,
    min_x: float,
    max_x: float,
    success: float,
) -> float:
    """T(s, a, s'): probability of landing on ``x_next``."""
    distribution = gridworld_transition(
        x,
        move,
        move_step=move_step,
        min_x=min_x,
        max_x=max_x,
        success=success,
    )
    return sum(
        prob
        for (target,), prob in distribution
        if math.isclose(target, x_next, rel_tol=0.0, abs_tol=1e-9)
    )


def gridworld_reward(x: float, move: str, *, goal: float, radius: float) -> float:
    """R(s, a): 1 for stopping close enough to the goal."""
    return 1.0 if move == "stop" and abs(x - goal) <= radius else 0.0


def build_gridworld_mdp(
    *,
    min_x: float = 0.0,
    max_x: float = 100.0,
    move_step: float = 20.0,
    goal: float | None = None,
    radius: float | None = None,
    success: float = 0.8,
    dense: bool = False,
) -> MDP:
    """Build the grid-world MDP.

    Args:
        min_x: Left edge.
        max_x: Right edge.
        move_step: Distance covered by a successful ``W``/``E`` move.
        goal: Rewarded position, the midpoint by default.
        radius: Reward tolerance around ``goal``, half a move by default.
        success: Probability that a move succeeds.
        dense: Use the ``T(s, a, s')`` convention instead of ``T(s, a)``.
    """
    if goal is None:
        goal = 0.5 * (min_x + max_x)
    if radius is None:
        radius = 0.5 * move_step

    bounds = {"move_step": move_step, "min_x": min_x, "max_x": max_x, "success": success}
    if dense:
        transition = LazyFunction(
            partial(gridworld_probability, **bounds),
            argnames=("x", "move", "x"),
        )
    else:
        transition = LazyFunction(
            partial(gridworld_transition, **bounds),
            argnames=("x", "move"),
        )
    return MDP(
        state_variables=(RangeVar("x", min_x, max_x),),
        action_variables=(ValuesVar("move", MOVES),),
        transition=transition,
        reward=LazyFunction(
            partial(gridworld_reward, goal=goal, radius=radius),
            argnames=("x", "move"),
        ),
    )
