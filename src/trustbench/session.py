# Copyright (c) Syntropy Systems
"""Caller-facing control surface: start, stop and query evaluations."""
from __future__ import annotations

import itertools
import logging
from threading import Lock
from typing import TYPE_CHECKING

from typing_extensions import Self

from trustbench.executor import BatchExecutor, SingleRunExecutor
from trustbench.pool import WorkerPool

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import TracebackType

    from trustbench.executor import BatchHandle, RunHandle
    from trustbench.state import EvaluationState, TerminalState
    from trustbench.suite import SuiteConfig

logger = logging.getLogger(__name__)


class EvaluationSession:
    """Owns a worker pool and tracks the runs started through it.

    Runs are identified by integer handles. ``results`` never blocks: it
    reports Running until the run resolves.
    """

    pool: WorkerPool
    _owns_pool: bool
    _single: SingleRunExecutor
    _batch: BatchExecutor
    _runs: dict[int, RunHandle]
    _ids: itertools.count[int]
    _lock: Lock

    def __init__(self, pool: WorkerPool | None = None, max_workers: int | None = None) -> None:
        """Create a session.

        Args:
            pool: Worker pool to run on; a new one is created (and shut down
                with the session) when omitted
            max_workers: Size of the created pool

        """
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else WorkerPool(max_workers=max_workers)
        self._single = SingleRunExecutor(self.pool)
        self._batch = BatchExecutor(self.pool)
        self._runs = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    def run(
        self,
        seed: int,
        config: SuiteConfig,
        callback: Callable[[TerminalState], None] | None = None,
    ) -> int:
        """Start one evaluation and return its handle."""
        task = config.build_task(seed)
        handle = self._single.submit(task, callback)
        with self._lock:
            run_id = next(self._ids)
            self._runs[run_id] = handle
        logger.info("Run %d started (seed %d)", run_id, seed)
        return run_id

    def _handle(self, run_id: int) -> RunHandle:
        with self._lock:
            handle = self._runs.get(run_id)
        if handle is None:
            msg = f"Unknown run handle: {run_id}"
            raise KeyError(msg)
        return handle

    def stop(self, run_id: int) -> None:
        """Request cancellation of a run; a no-op if it already resolved."""
        self._handle(run_id).cancel()

    def results(self, run_id: int) -> EvaluationState:
        """Return the run's current state without blocking."""
        return self._handle(run_id).state

    def task_progress(self, run_id: int) -> float:
        """Return the fraction of ticks the run has stepped."""
        return self._handle(run_id).task.progress

    def wait(self, run_id: int, timeout: float | None = None) -> TerminalState:
        """Block until the run resolves."""
        return self._handle(run_id).result(timeout=timeout)

    def run_batch(
        self,
        seeds: Iterable[int],
        config: SuiteConfig,
        on_progress: Callable[[TerminalState], None] | None = None,
        on_finished: Callable[[list[TerminalState]], None] | None = None,
    ) -> BatchHandle:
        """Start one independent evaluation per seed."""
        tasks = config.build_tasks(seeds)
        return self._batch.run_batch(tasks, on_progress, on_finished)

    def close(self, wait: bool = True) -> None:  # noqa: FBT001, FBT002
        """Shut down the pool if the session created it."""
        if self._owns_pool:
            self.pool.shutdown(wait=wait)

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - close the session."""
        self.close()
