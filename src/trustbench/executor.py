# Copyright (c) Syntropy Systems
"""Asynchronous execution of evaluation tasks, one at a time or in batches."""
from __future__ import annotations

import logging
from concurrent.futures import Future
from functools import partial
from threading import Lock, RLock
from typing import TYPE_CHECKING, Optional

from trustbench.errors import InvariantViolation, TaskAlreadySubmittedError
from trustbench.state import IDLE, RUNNING, Faulted

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from trustbench.pool import WorkerPool
    from trustbench.state import EvaluationState, TerminalState
    from trustbench.task import EvaluationTask

logger = logging.getLogger(__name__)


def _execute(task: EvaluationTask, future: Future[TerminalState]) -> None:
    """Worker body: run the task and resolve its future exactly once."""
    try:
        state: TerminalState = task.run()
    except InvariantViolation as e:
        logger.critical("Invariant violated while running seed %d: %s", task.seed, e)
        future.set_exception(e)
        return
    except BaseException as e:  # noqa: BLE001
        logger.exception("Evaluation for seed %d escaped the task loop", task.seed)
        if not task.log.sealed:
            # Readings past the last finished tick are partial
            _ = task.log.discard_tick(task.ticks_done + 1)
            task.log.seal()
        state = Faulted(tick=None, error=e, log=task.log)

    future.set_result(state)


class RunHandle:
    """Handle on one submitted task: its result future and cancel control."""

    task: EvaluationTask
    future: Future[TerminalState]

    def __init__(self, task: EvaluationTask, future: Future[TerminalState]) -> None:
        self.task = task
        self.future = future

    def cancel(self) -> None:
        """Request cancellation; a no-op once the run has resolved."""
        self.task.cancel()

    @property
    def state(self) -> EvaluationState:
        """Return Running until resolution, then the terminal state.

        Never blocks.
        """
        if not self.future.done():
            return RUNNING
        return self.future.result()

    def done(self) -> bool:
        """Return whether the run has resolved."""
        return self.future.done()

    def result(self, timeout: float | None = None) -> TerminalState:
        """Block until the run resolves and return its terminal state."""
        return self.future.result(timeout=timeout)

    def add_done_callback(self, callback: Callable[[TerminalState], None]) -> None:
        """Call ``callback`` with the terminal state once the run resolves.

        If the run already resolved, the callback fires immediately in the
        calling thread. Exceptions raised by the callback are logged.
        """

        def _deliver(future: Future[TerminalState]) -> None:
            if future.exception() is not None:
                return
            try:
                callback(future.result())
            except Exception:
                logger.exception("Result callback for seed %d failed", self.task.seed)

        self.future.add_done_callback(_deliver)

    def __repr__(self) -> str:
        return f"RunHandle(seed={self.task.seed}, state={self.state.status})"


def start_task(
    pool: WorkerPool,
    task: EvaluationTask,
    callback: Callable[[Future[TerminalState]], None] | None = None,
) -> RunHandle:
    """Claim ``task``, queue it on ``pool`` and return its handle.

    ``callback`` is attached to the raw future before the task is queued,
    so it can never miss the resolution.
    """
    if pool.is_shutdown:
        msg = "Cannot start a task on a pool that has been shut down"
        raise RuntimeError(msg)
    task.claim()

    future: Future[TerminalState] = Future()
    # A running future cannot be cancelled through Future.cancel(); only the
    # task's own cooperative flag stops a run.
    _ = future.set_running_or_notify_cancel()
    if callback is not None:
        future.add_done_callback(callback)

    pool.submit(partial(_execute, task, future))
    return RunHandle(task, future)


class SingleRunExecutor:
    """Runs evaluation tasks one submission at a time on a worker pool.

    The executor's observable state is Idle before the first submission,
    Running while the latest submitted task runs, and that task's terminal
    state afterwards, until the next submission.
    """

    pool: WorkerPool
    _current: Optional[RunHandle]
    _lock: Lock

    def __init__(self, pool: WorkerPool) -> None:
        self.pool = pool
        self._current = None
        self._lock = Lock()

    def submit(
        self,
        task: EvaluationTask,
        callback: Callable[[TerminalState], None] | None = None,
    ) -> RunHandle:
        """Start ``task`` asynchronously.

        Args:
            task: A task that has not been submitted before
            callback: Receives the terminal state exactly once

        Returns:
            A RunHandle with the result future and cancel control

        """
        handle = start_task(self.pool, task)
        if callback is not None:
            handle.add_done_callback(callback)

        with self._lock:
            self._current = handle

        logger.info("Submitted evaluation for seed %d", task.seed)
        return handle

    @property
    def current(self) -> Optional[RunHandle]:
        """Return the handle of the most recent submission."""
        return self._current

    @property
    def state(self) -> EvaluationState:
        """Return the state of the most recent submission."""
        current = self._current
        if current is None:
            return IDLE
        return current.state

    def cancel(self) -> None:
        """Cancel the most recent submission, if any."""
        current = self._current
        if current is not None:
            current.cancel()


class BatchHandle:
    """Progress, completion and cancel-all control for one batch.

    Per-task resolutions are recorded under a single lock, and the progress
    and finished callbacks are invoked while holding it. Progress callbacks
    are therefore serialized in arrival order, and the finished callback
    runs exactly once, after the last progress callback.
    """

    tasks: tuple[EvaluationTask, ...]
    handles: list[RunHandle]
    _on_progress: Optional[Callable[[TerminalState], None]]
    _on_finished: Optional[Callable[[list[TerminalState]], None]]
    _states: list[Optional[TerminalState]]
    _remaining: int
    _lock: RLock
    _finished: Future[list[TerminalState]]

    def __init__(
        self,
        tasks: Iterable[EvaluationTask],
        on_progress: Callable[[TerminalState], None] | None = None,
        on_finished: Callable[[list[TerminalState]], None] | None = None,
    ) -> None:
        self.tasks = tuple(tasks)
        self.handles = []
        self._on_progress = on_progress
        self._on_finished = on_finished
        self._states = [None] * len(self.tasks)
        self._remaining = len(self.tasks)
        self._lock = RLock()
        self._finished = Future()
        _ = self._finished.set_running_or_notify_cancel()
        if not self.tasks:
            with self._lock:
                self._finish()

    def _violation(self, msg: str, error: InvariantViolation | None = None) -> None:
        error = error or InvariantViolation(msg)
        logger.critical("Batch invariant violated: %s", msg)
        if not self._finished.done():
            self._finished.set_exception(error)

    def task_done(self, index: int, future: Future[TerminalState]) -> None:
        """Record the resolution of the task at ``index`` (a future done-callback)."""
        with self._lock:
            error = future.exception()
            if error is not None:
                violation = error if isinstance(error, InvariantViolation) else None
                self._violation(str(error), violation)
                return

            state = future.result()
            if not state.terminal:
                self._violation(f"Task {index} reported non-terminal state {state.status}")
                return
            if self._states[index] is not None:
                self._violation(f"Task {index} resolved twice")
                return

            self._states[index] = state
            self._remaining -= 1
            self._notify(self._on_progress, state)

            if self._remaining == 0:
                self._finish()

    def _finish(self) -> None:
        if self._finished.done():
            self._violation("Batch finished twice")
            return
        results: list[TerminalState] = [s for s in self._states if s is not None]
        self._finished.set_result(results)
        logger.info(
            "Batch of %d finished: %s",
            len(results),
            ", ".join(sorted({s.status for s in results})) or "empty",
        )
        self._notify(self._on_finished, results)

    def _notify(self, callback: Callable[[object], None] | None, payload: object) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Batch callback failed")

    def cancel_all(self) -> None:
        """Request cancellation of every task in the batch.

        Tasks that already resolved are unaffected; running and queued tasks
        resolve to Interrupted at their next tick boundary.
        """
        for task in self.tasks:
            task.cancel()

    def __call__(self) -> None:
        """Alias for cancel_all(), so the handle can be used as a canceller."""
        self.cancel_all()

    @property
    def states(self) -> list[EvaluationState]:
        """Return per-task states in submission order, Running if unresolved."""
        with self._lock:
            return [RUNNING if s is None else s for s in self._states]

    @property
    def resolved(self) -> int:
        """Return the number of tasks that reached a terminal state."""
        with self._lock:
            return len(self.tasks) - self._remaining

    @property
    def progress(self) -> float:
        """Return the resolved fraction of the batch (1.0 for an empty batch)."""
        if not self.tasks:
            return 1.0
        return self.resolved / len(self.tasks)

    def done(self) -> bool:
        """Return whether every task has resolved."""
        return self._finished.done()

    def wait(self, timeout: float | None = None) -> list[TerminalState]:
        """Block until every task resolved; return states in submission order."""
        return self._finished.result(timeout=timeout)

    def __len__(self) -> int:
        return len(self.tasks)


class BatchExecutor:
    """Runs many independent evaluation tasks concurrently on a worker pool."""

    pool: WorkerPool

    def __init__(self, pool: WorkerPool) -> None:
        self.pool = pool

    def run_batch(
        self,
        tasks: Iterable[EvaluationTask],
        on_progress: Callable[[TerminalState], None] | None = None,
        on_finished: Callable[[list[TerminalState]], None] | None = None,
    ) -> BatchHandle:
        """Start every task and return the batch handle.

        Args:
            tasks: Independent tasks; none may share a stepper or have been
                submitted before
            on_progress: Called once per task as it resolves, in arrival order
            on_finished: Called once with all terminal states, in submission order

        Returns:
            A BatchHandle; call ``cancel_all()`` (or the handle itself) to stop

        """
        task_list = list(tasks)
        if self.pool.is_shutdown:
            msg = "Cannot start a batch on a pool that has been shut down"
            raise RuntimeError(msg)

        seen: set[int] = set()
        steppers: set[int] = set()
        for task in task_list:
            if id(task) in seen or task.claimed:
                msg = f"Task for seed {task.seed} was already submitted"
                raise TaskAlreadySubmittedError(msg)
            if id(task.stepper) in steppers:
                msg = f"Task for seed {task.seed} shares its stepper with another task"
                raise ValueError(msg)
            seen.add(id(task))
            steppers.add(id(task.stepper))

        batch = BatchHandle(task_list, on_progress, on_finished)
        logger.info("Starting batch of %d evaluation(s)", len(task_list))

        for index, task in enumerate(task_list):
            handle = start_task(self.pool, task, partial(batch.task_done, index))
            batch.handles.append(handle)

        return batch
