# Copyright (c) Syntropy Systems
"""Cancellable evaluation task: the tick loop over a stepper."""
from __future__ import annotations

import logging
from threading import Event, Lock
from typing import TYPE_CHECKING, Optional

from trustbench.errors import InvariantViolation, TaskAlreadySubmittedError
from trustbench.evaluation_log import EvaluationLog
from trustbench.models.evaluation import ProtocolRef, Reading
from trustbench.state import Completed, Faulted, Interrupted

if TYPE_CHECKING:
    from collections.abc import Iterable

    from trustbench.state import TerminalState
    from trustbench.stepper import Snapshot, Stepper

logger = logging.getLogger(__name__)


class EvaluationTask:
    """A stepper, a duration and a metric set bound into one run.

    The task subscribes to the stepper at construction. After every
    ``step(tick)`` the subscription appends one reading per metric and
    service to the task's log, metrics in the order given here and services
    in the order the snapshot reports them.

    The loop checks the cancellation flag before stepping each tick, so a
    cancellation requested while tick ``k`` is stepping resolves to
    ``Interrupted(k + 1, log)`` with tick ``k`` fully recorded. A step that
    raises resolves to ``Faulted(tick, error, log)`` and leaves no readings
    for that tick.
    """

    stepper: Stepper
    duration: int
    metrics: tuple[str, ...]
    seed: int
    log: EvaluationLog
    _cancel: Event
    _claim_lock: Lock
    _claimed: bool
    _started: bool
    _stepping: bool
    _tick: int
    _ticks_done: int
    _outcome: Optional[TerminalState]

    def __init__(
        self,
        stepper: Stepper,
        duration: int,
        metrics: Iterable[str],
        seed: int | None = None,
    ) -> None:
        """Bind a stepper to a duration and metric set.

        Args:
            stepper: Simulation driver, already seeded and initialized
            duration: Number of ticks to run (ticks are 1-indexed)
            metrics: Metric names to sample after every tick
            seed: Seed recorded in the log; defaults to the stepper's seed

        """
        if duration <= 0:
            msg = f"Duration must be positive, got {duration}"
            raise ValueError(msg)

        self.stepper = stepper
        self.duration = duration
        self.metrics = tuple(dict.fromkeys(metrics))
        if not self.metrics:
            msg = "At least one metric is required"
            raise ValueError(msg)
        self.seed = stepper.seed if seed is None else seed

        self.log = EvaluationLog(
            protocol=ProtocolRef(
                trust_model=str(stepper.trust_model),
                scenario=str(stepper.scenario),
            ),
            metrics=self.metrics,
            seed=self.seed,
        )

        self._cancel = Event()
        self._claim_lock = Lock()
        self._claimed = False
        self._started = False
        self._stepping = False
        self._tick = 0
        self._ticks_done = 0
        self._outcome = None

        stepper.subscribe(self._record)

    def _record(self, snapshot: Snapshot) -> None:
        """Stepper subscription: sample every (metric, service) pair."""
        if not self._stepping:
            return
        tick = self._tick
        for metric in self.metrics:
            for service in snapshot.services:
                value = snapshot.result(service, metric)
                self.log.append(
                    Reading(tick=tick, metric=metric, service=service, value=value)
                )

    def cancel(self) -> None:
        """Request cooperative cancellation.

        Safe from any thread and idempotent. After the task has resolved
        this does nothing.
        """
        if self._outcome is not None:
            return
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        """Return whether cancellation has been requested."""
        return self._cancel.is_set()

    @property
    def claimed(self) -> bool:
        """Return whether the task has been handed to an executor."""
        return self._claimed

    def claim(self) -> None:
        """Mark the task as handed to an executor.

        Raises TaskAlreadySubmittedError on a second claim, so one task can
        never be driven by two workers.
        """
        with self._claim_lock:
            if self._claimed:
                msg = f"Task for seed {self.seed} was already submitted"
                raise TaskAlreadySubmittedError(msg)
            self._claimed = True

    def run(self) -> TerminalState:
        """Drive the tick loop to a terminal state.

        Must be called at most once, from a single thread.
        """
        if self._started:
            msg = f"Task for seed {self.seed} has already been run"
            raise InvariantViolation(msg)
        self._started = True

        logger.debug(
            "Starting evaluation: %s vs %s, seed %d, %d ticks",
            self.log.protocol.trust_model,
            self.log.protocol.scenario,
            self.seed,
            self.duration,
        )

        outcome: TerminalState | None = None
        for tick in range(1, self.duration + 1):
            if self._cancel.is_set():
                outcome = Interrupted(tick=tick, log=self.log)
                break

            self._tick = tick
            self._stepping = True
            try:
                self.stepper.step(tick)
            except InvariantViolation:
                raise
            except Exception as e:  # noqa: BLE001
                self.log.discard_tick(tick)
                logger.warning("Step failed at tick %d (seed %d): %s", tick, self.seed, e)
                outcome = Faulted(tick=tick, error=e, log=self.log)
                break
            finally:
                self._stepping = False

            self._ticks_done = tick

        if outcome is None:
            outcome = Completed(log=self.log)

        self.log.seal()
        self._outcome = outcome
        logger.debug("Evaluation for seed %d finished: %s", self.seed, outcome.status)
        return outcome

    @property
    def outcome(self) -> Optional[TerminalState]:
        """Return the terminal state once the loop has exited."""
        return self._outcome

    @property
    def ticks_done(self) -> int:
        """Return the number of ticks stepped successfully so far."""
        return self._ticks_done

    @property
    def progress(self) -> float:
        """Return the fraction of the duration stepped so far."""
        return self._ticks_done / self.duration

    def __repr__(self) -> str:
        return (
            f"EvaluationTask(seed={self.seed}, duration={self.duration}, "
            f"metrics={list(self.metrics)!r})"
        )
