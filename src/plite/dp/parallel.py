"""Sharded Bellman backups over a worker pool.

Grid states are split into contiguous shards. Process workers each own one
shard: the immutable model is shipped once, the worker builds and keeps its
shard's transition kernel, and every iteration then sends only a read-only
snapshot of the previous value table. Thread workers share memory, so their
shard kernels stay in the parent and are handed to the pool directly.
Results are merged by state index, so completion order does not matter, and
the merged table only becomes visible once every shard has returned.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Sequence, TypeVar

import numpy as np

from plite.core.errors import WorkerFailure
from plite.core.model import MDP, TransitionKind
from plite.dp.backup import BackupResult, bellman_backup, merge_backups
from plite.dp.discretization import FactoredGrid
from plite.dp.transitions import TransitionKernel, build_transition_kernel

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Kernel owned by a single-shard worker process.
_SHARD_KERNEL: TransitionKernel | None = None


@dataclass(frozen=True)
class _ShardContext:
    """Read-only inputs every worker needs to build a shard kernel."""

    mdp: MDP
    kind: TransitionKind
    state_grid: FactoredGrid
    action_grid: FactoredGrid


def partition_states(n_states: int, n_shards: int) -> list[np.ndarray]:
    """Split ``range(n_states)`` into at most ``n_shards`` contiguous non-empty shards."""
    if n_states <= 0:
        raise ValueError("n_states must be positive.")
    if n_shards <= 0:
        raise ValueError("n_shards must be positive.")
    indices = np.arange(n_states, dtype=np.int64)
    return list(np.array_split(indices, min(n_shards, n_states)))


class ShardedBackup:
    """Worker pool computing one Bellman backup per call.

    Use as a context manager; the pool lives for the whole solve and the shard
    kernels are built by the workers on entry.
    """

    def __init__(
        self,
        *,
        mdp: MDP,
        kind: TransitionKind,
        state_grid: FactoredGrid,
        action_grid: FactoredGrid,
        nthreads: int,
        executor: str = "process",
    ) -> None:
        if executor not in ("process", "thread"):
            raise ValueError(f"Unknown executor kind: {executor!r}")
        self._context = _ShardContext(
            mdp=mdp,
            kind=kind,
            state_grid=state_grid,
            action_grid=action_grid,
        )
        self._n_states = len(state_grid)
        self._n_actions = len(action_grid)
        self._shards = partition_states(self._n_states, nthreads)
        self._nthreads = nthreads
        self._executor_kind = executor
        self._executors: list[Executor] = []
        self._kernels: list[TransitionKernel] = []

    @property
    def n_shards(self) -> int:
        return len(self._shards)

    def __enter__(self) -> "ShardedBackup":
        try:
            if self._executor_kind == "process":
                # One single-worker pool per shard pins each kernel to its process.
                self._executors = [
                    ProcessPoolExecutor(max_workers=1) for _ in self._shards
                ]
                futures = [
                    pool.submit(_load_shard_kernel, self._context, shard)
                    for pool, shard in zip(self._executors, self._shards)
                ]
                nonzeros = _gather(futures, stage="transition kernel build")
            else:
                self._executors = [ThreadPoolExecutor(max_workers=self._nthreads)]
                futures = [
                    self._executors[0].submit(_build_shard_kernel, self._context, shard)
                    for shard in self._shards
                ]
                self._kernels = _gather(futures, stage="transition kernel build")
                nonzeros = [kernel.weights.size for kernel in self._kernels]
        except BaseException:
            self.close()
            raise
        logger.debug(
            "Built %d shard kernels (%d nonzeros) on %d %s workers.",
            self.n_shards,
            sum(nonzeros),
            self._nthreads,
            self._executor_kind,
        )
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        for pool in self._executors:
            pool.shutdown(wait=True, cancel_futures=True)
        self._executors = []
        self._kernels = []

    def __call__(self, values: np.ndarray, discount: float) -> BackupResult:
        if not self._executors:
            raise RuntimeError("ShardedBackup must be entered before use.")
        snapshot = np.array(values, dtype=np.float64, copy=True)
        snapshot.setflags(write=False)
        if self._executor_kind == "process":
            futures = [
                pool.submit(_backup_loaded_shard, snapshot, discount)
                for pool in self._executors
            ]
        else:
            futures = [
                self._executors[0].submit(bellman_backup, kernel, snapshot, discount)
                for kernel in self._kernels
            ]
        results = _gather(futures, stage="backup")
        return merge_backups(results, self._n_states, self._n_actions)


def _build_shard_kernel(context: _ShardContext, shard: np.ndarray) -> TransitionKernel:
    return build_transition_kernel(
        context.mdp,
        context.kind,
        context.state_grid,
        context.action_grid,
        state_indices=shard,
    )


def _load_shard_kernel(context: _ShardContext, shard: np.ndarray) -> int:
    """Build this worker's shard kernel and keep it for later backups."""
    global _SHARD_KERNEL
    _SHARD_KERNEL = _build_shard_kernel(context, shard)
    return int(_SHARD_KERNEL.weights.size)


def _backup_loaded_shard(values: np.ndarray, discount: float) -> BackupResult:
    if _SHARD_KERNEL is None:
        raise RuntimeError("No shard kernel loaded in this worker.")
    return bellman_backup(_SHARD_KERNEL, values, discount)


def _gather(futures: Sequence[Future[T]], *, stage: str) -> list[T]:
    """Collect every result or fail the whole stage on the first error."""
    results: list[T] = []
    try:
        for future in futures:
            results.append(future.result())
    except Exception as exc:
        for future in futures:
            future.cancel()
        raise WorkerFailure(
            f"worker failed during {stage}; partial results discarded: {exc}"
        ) from exc
    return results
