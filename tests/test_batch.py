# Copyright (c) Syntropy Systems
"""Tests for batch execution."""

from __future__ import annotations

import threading
from collections.abc import Callable

import pytest

from trustbench.errors import TaskAlreadySubmittedError
from trustbench.executor import BatchExecutor, SingleRunExecutor
from trustbench.pool import WorkerPool
from trustbench.state import RUNNING, Completed, Faulted, Interrupted, TerminalState
from trustbench.task import EvaluationTask

MakeTask = Callable[..., EvaluationTask]
TIMEOUT = 5.0


class BatchRecorder:
    """Collects progress and finished notifications."""

    def __init__(self) -> None:
        self.progress: list[TerminalState] = []
        self.finished: list[list[TerminalState]] = []
        self.done = threading.Event()
        self.finished_after_progress: list[int] = []

    def on_progress(self, state: TerminalState) -> None:
        self.progress.append(state)

    def on_finished(self, states: list[TerminalState]) -> None:
        self.finished_after_progress.append(len(self.progress))
        self.finished.append(states)
        self.done.set()


class TestBatch:
    """Tests for BatchExecutor."""

    def test_progress_and_finished(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test N tasks give N progress calls and one finished call, last."""
        tasks = [make_task(duration=10, seed=s) for s in range(1, 9)]
        recorder = BatchRecorder()

        handle = BatchExecutor(pool).run_batch(tasks, recorder.on_progress, recorder.on_finished)
        assert recorder.done.wait(TIMEOUT)

        assert len(recorder.progress) == 8
        assert len(recorder.finished) == 1
        assert recorder.finished_after_progress == [8]
        assert all(isinstance(s, Completed) for s in recorder.progress)
        assert handle.done()
        assert handle.progress == 1.0

    def test_results_in_submission_order(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test the aggregate result lists states in submission order."""
        tasks = [make_task(duration=5 * s, seed=s) for s in range(1, 6)]

        results = BatchExecutor(pool).run_batch(tasks).wait(timeout=TIMEOUT)

        assert [state.log.seed for state in results] == [1, 2, 3, 4, 5]  # type: ignore[union-attr]
        assert [state.log for state in results] == [t.log for t in tasks]  # type: ignore[union-attr]

    def test_progress_in_arrival_order(self, make_task: MakeTask) -> None:
        """Test progress follows resolution order on a single worker."""
        tasks = [make_task(duration=3, seed=s) for s in (5, 3, 8)]
        recorder = BatchRecorder()

        with WorkerPool(max_workers=1, name="serial") as serial:
            _ = BatchExecutor(serial).run_batch(tasks, recorder.on_progress, recorder.on_finished)
            assert recorder.done.wait(TIMEOUT)

        assert [s.log.seed for s in recorder.progress] == [5, 3, 8]  # type: ignore[union-attr]

    def test_fault_isolation(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test one failing task does not affect the others."""
        tasks = [
            make_task(duration=6, seed=1),
            make_task(duration=6, seed=2, fail_at=3),
            make_task(duration=6, seed=3),
        ]

        results = BatchExecutor(pool).run_batch(tasks).wait(timeout=TIMEOUT)

        assert isinstance(results[0], Completed)
        assert isinstance(results[1], Faulted)
        assert results[1].tick == 3
        assert isinstance(results[2], Completed)
        assert len(results[2].log) == 12

    def test_cancel_all(self, make_task: MakeTask) -> None:
        """Test cancel_all interrupts running and queued tasks."""
        gate = threading.Event()
        tasks = [make_task(duration=50, seed=s, gate=gate) for s in range(1, 5)]
        recorder = BatchRecorder()

        with WorkerPool(max_workers=2, name="cancel") as small:
            handle = BatchExecutor(small).run_batch(
                tasks, recorder.on_progress, recorder.on_finished
            )
            assert tasks[0].stepper.entered.wait(TIMEOUT)  # type: ignore[attr-defined]
            assert tasks[1].stepper.entered.wait(TIMEOUT)  # type: ignore[attr-defined]
            assert handle.states[3] is RUNNING

            handle.cancel_all()
            gate.set()
            results = handle.wait(timeout=TIMEOUT)

        assert all(isinstance(s, Interrupted) for s in results)
        assert [s.tick for s in results[:2]] == [2, 2]  # type: ignore[union-attr]
        assert [s.tick for s in results[2:]] == [1, 1]  # type: ignore[union-attr]
        assert [len(s.log) for s in results[2:]] == [0, 0]  # type: ignore[union-attr]
        assert recorder.done.wait(TIMEOUT)
        assert len(recorder.finished) == 1

    def test_handle_is_a_canceller(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test calling the handle cancels the batch."""
        gate = threading.Event()
        tasks = [make_task(duration=10, seed=s, gate=gate) for s in (1, 2)]

        handle = BatchExecutor(pool).run_batch(tasks)
        for task in tasks:
            assert task.stepper.entered.wait(TIMEOUT)  # type: ignore[attr-defined]
        handle()
        gate.set()

        results = handle.wait(timeout=TIMEOUT)
        assert all(isinstance(s, Interrupted) and s.tick == 2 for s in results)

    def test_cancel_after_finish_is_noop(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test cancelling a finished batch changes no result."""
        handle = BatchExecutor(pool).run_batch([make_task(), make_task(seed=2)])
        results = handle.wait(timeout=TIMEOUT)

        handle.cancel_all()

        assert handle.states == results
        assert all(isinstance(s, Completed) for s in handle.states)

    def test_empty_batch(self, pool: WorkerPool) -> None:
        """Test an empty batch finishes immediately with no progress."""
        recorder = BatchRecorder()

        handle = BatchExecutor(pool).run_batch([], recorder.on_progress, recorder.on_finished)

        assert handle.done()
        assert handle.wait(timeout=0) == []
        assert recorder.progress == []
        assert recorder.finished == [[]]
        assert len(handle) == 0
        assert handle.progress == 1.0


class TestBatchValidation:
    """Tests for rejecting invalid batches."""

    def test_duplicate_task(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test the same task cannot appear twice."""
        task = make_task()

        with pytest.raises(TaskAlreadySubmittedError):
            _ = BatchExecutor(pool).run_batch([task, task])
        assert not task.claimed

    def test_already_submitted_task(self, pool: WorkerPool, make_task: MakeTask) -> None:
        """Test a task submitted elsewhere is rejected."""
        task = make_task()
        _ = SingleRunExecutor(pool).submit(task).result(timeout=TIMEOUT)

        with pytest.raises(TaskAlreadySubmittedError):
            _ = BatchExecutor(pool).run_batch([task])

    def test_shared_stepper(self, pool: WorkerPool, make_stepper) -> None:
        """Test tasks sharing a stepper are rejected before anything starts."""
        stepper = make_stepper()
        first = EvaluationTask(stepper, duration=2, metrics=["A"])
        second = EvaluationTask(stepper, duration=2, metrics=["B"])

        with pytest.raises(ValueError, match="shares its stepper"):
            _ = BatchExecutor(pool).run_batch([first, second])
        assert stepper.ticks == []

    def test_pool_already_shut_down(self, make_task: MakeTask) -> None:
        """Test a batch on a closed pool is refused without claiming tasks."""
        closed = WorkerPool(max_workers=1, name="closed")
        closed.shutdown()
        tasks = [make_task(seed=1), make_task(seed=2)]

        with pytest.raises(RuntimeError, match="shut down"):
            _ = BatchExecutor(closed).run_batch(tasks)
        assert not any(task.claimed for task in tasks)


class TestBatchBaseExceptions:
    """Tests for steppers raising exceptions outside the Exception hierarchy."""

    def test_system_exit_is_isolated(self, make_task: MakeTask) -> None:
        """Test a SystemExit from one step faults only its own run."""
        exiting = make_task(duration=5, seed=1, fail_at=2, error=SystemExit)
        healthy = make_task(duration=5, seed=2)
        recorder = BatchRecorder()

        with WorkerPool(max_workers=1, name="exit") as serial:
            handle = BatchExecutor(serial).run_batch(
                [exiting, healthy], recorder.on_progress, recorder.on_finished
            )
            results = handle.wait(timeout=TIMEOUT)
            assert recorder.done.wait(TIMEOUT)

        faulted, completed = results
        assert isinstance(faulted, Faulted)
        assert faulted.tick is None
        assert isinstance(faulted.error, SystemExit)
        assert faulted.log is not None
        assert faulted.log.sealed
        assert faulted.log.last_tick == 1
        assert len(faulted.log) == 2
        assert isinstance(completed, Completed)
        assert len(recorder.progress) == 2
        assert len(recorder.finished) == 1

    def test_worker_survives_keyboard_interrupt(self, make_task: MakeTask) -> None:
        """Test queued tasks still run after a KeyboardInterrupt in a step."""
        tasks = [
            make_task(duration=3, seed=1, fail_at=1, error=KeyboardInterrupt),
            make_task(duration=3, seed=2),
            make_task(duration=3, seed=3),
        ]

        with WorkerPool(max_workers=1, name="interrupt") as serial:
            results = BatchExecutor(serial).run_batch(tasks).wait(timeout=TIMEOUT)
            assert serial.worker_count == 1

        assert isinstance(results[0], Faulted)
        assert isinstance(results[0].error, KeyboardInterrupt)
        assert len(results[0].log) == 0  # type: ignore[arg-type]
        assert [type(s) for s in results[1:]] == [Completed, Completed]
