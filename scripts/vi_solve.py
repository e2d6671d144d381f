"""Solve the grid-world example by discretized value iteration."""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path

from plite.dp.config import ValueIterationConfig, load_solver_config
from plite.dp.policy import extract_policy, policy_table, summarize_solution
from plite.dp.value_iteration import solve_value_iteration
from plite.models.gridworld import build_gridworld_mdp


def main() -> int:
    parser = argparse.ArgumentParser(description="Solve the grid-world MDP via value iteration.")
    parser.add_argument(
        "--solver-config",
        type=Path,
        default=Path("configs/gridworld.yaml"),
        help="Path to solver config YAML.",
    )
    parser.add_argument("--move-step", type=float, default=20.0)
    parser.add_argument("--success", type=float, default=0.8)
    parser.add_argument(
        "--dense",
        action="store_true",
        help="Use the T(s,a,s') transition convention.",
    )
    parser.add_argument("--parallel", action="store_true")
    parser.add_argument("--nthreads", type=int, default=None)
    parser.add_argument("--max-iters", type=int, default=None)
    parser.add_argument("--tol", type=float, default=None)
    parser.add_argument(
        "--query",
        type=float,
        nargs="*",
        default=[10.0, 50.0, 90.0],
        help="Positions at which to print the greedy action.",
    )
    parser.add_argument("--show-table", action="store_true")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    config = _load_config(args.solver_config)
    overrides: dict[str, object] = {}
    if args.parallel:
        overrides["parallel"] = True
    if args.nthreads is not None:
        overrides["nthreads"] = args.nthreads
    if args.max_iters is not None:
        overrides["max_iters"] = args.max_iters
    if args.tol is not None:
        overrides["tol"] = args.tol
    config = replace(config, **overrides)
    if "x" not in config.state_discretization:
        config = config.with_state_step("x", args.move_step)

    mdp = build_gridworld_mdp(move_step=args.move_step, success=args.success, dense=args.dense)
    result = solve_value_iteration(mdp, config)
    policy = extract_policy(result)

    print(json.dumps(summarize_solution(result), indent=2, sort_keys=True))
    for x in args.query:
        print(f"policy(x={x:g}) = {policy(x)[0]}")
    if args.show_table:
        print(policy_table(result).to_string())
    return 0


def _load_config(path: Path) -> ValueIterationConfig:
    if not path.exists():
        return ValueIterationConfig()
    return load_solver_config(path)


if __name__ == "__main__":
    raise SystemExit(main())
