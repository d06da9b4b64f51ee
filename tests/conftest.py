# Copyright (c) Syntropy Systems
"""Pytest fixtures for trustbench tests."""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Callable, Generator, Sequence
from pathlib import Path
from typing import Optional

import pytest
import yaml

from trustbench.config import TrustbenchConfig
from trustbench.pool import WorkerPool
from trustbench.task import EvaluationTask

# Store original cwd at module load time
_original_cwd = Path.cwd()

GATE_TIMEOUT = 5.0


class FakeSnapshot:
    """Snapshot whose value for (service, metric) is derived from the tick."""

    def __init__(
        self,
        tick: int,
        services: Sequence[int],
        fail_after: Optional[int] = None,
        value: Optional[float] = None,
    ) -> None:
        self.tick = tick
        self._value = value
        self._services = tuple(services)
        self._fail_after = fail_after
        self._queries = 0

    @property
    def services(self) -> tuple[int, ...]:
        return self._services

    def result(self, service: int, metric: str) -> float:
        if self._fail_after is not None and self._queries >= self._fail_after:
            msg = f"metric '{metric}' unavailable at tick {self.tick}"
            raise RuntimeError(msg)
        self._queries += 1
        if self._value is not None:
            return self._value
        return float(self.tick * 100 + service) + len(metric) / 100


class FakeStepper:
    """Scriptable stepper for exercising the task loop.

    ``fail_at`` makes step() raise ``error`` before notifying subscribers.
    ``fail_mid_tick`` makes the snapshot raise after one query, so the
    failing tick has partial readings. ``gate`` blocks every step until it
    is set. ``on_step`` is called with the tick at the start of each step.
    ``value`` replaces every metric value.
    """

    trust_model = "Fake Model"
    scenario = "Fake Scenario"

    def __init__(
        self,
        seed: int = 1,
        services: Sequence[int] = (0,),
        fail_at: Optional[int] = None,
        fail_mid_tick: Optional[int] = None,
        gate: Optional[threading.Event] = None,
        on_step: Optional[Callable[[int], None]] = None,
        error: type[BaseException] = RuntimeError,
        value: Optional[float] = None,
    ) -> None:
        self.seed = seed
        self.services = tuple(services)
        self.fail_at = fail_at
        self.fail_mid_tick = fail_mid_tick
        self.gate = gate
        self.on_step = on_step
        self.error = error
        self.value = value
        self.ticks: list[int] = []
        self.entered = threading.Event()
        self._subscribers: list[Callable[[FakeSnapshot], None]] = []

    def subscribe(self, callback: Callable[[FakeSnapshot], None]) -> None:
        self._subscribers.append(callback)

    def step(self, tick: int) -> None:
        self.ticks.append(tick)
        self.entered.set()
        if self.on_step is not None:
            self.on_step(tick)
        if self.gate is not None:
            _ = self.gate.wait(GATE_TIMEOUT)
        if tick == self.fail_at:
            msg = f"boom at tick {tick}"
            raise self.error(msg)

        fail_after = 1 if tick == self.fail_mid_tick else None
        snapshot = FakeSnapshot(tick, self.services, fail_after=fail_after, value=self.value)
        for callback in self._subscribers:
            callback(snapshot)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def trustbench_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary trustbench project directory."""
    project_dir = temp_dir / ".trustbench"
    project_dir.mkdir()
    (temp_dir / "results").mkdir()

    with (project_dir / "config.yaml").open("w") as f:
        yaml.dump(TrustbenchConfig().to_dict(), f)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def pool() -> Generator[WorkerPool, None, None]:
    """A small worker pool, shut down after the test."""
    pool = WorkerPool(max_workers=4, name="test")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def make_stepper() -> type[FakeStepper]:
    """The scriptable stepper class."""
    return FakeStepper


@pytest.fixture
def make_task() -> Callable[..., EvaluationTask]:
    """Build a task around a fresh FakeStepper.

    Keyword arguments other than duration, metrics and seed go to the
    stepper.
    """

    def _make(
        duration: int = 5,
        metrics: Sequence[str] = ("A", "B"),
        seed: int = 1,
        **stepper_kwargs: object,
    ) -> EvaluationTask:
        stepper = FakeStepper(seed=seed, **stepper_kwargs)  # type: ignore[arg-type]
        return EvaluationTask(stepper, duration=duration, metrics=metrics)

    return _make


@pytest.fixture
def suite_file(temp_dir: Path) -> Path:
    """A small demo suite file."""
    path = temp_dir / "suite.yaml"
    with path.open("w") as f:
        yaml.dump(
            {
                "name": "small",
                "stepper": "trustbench.demo:create_stepper",
                "params": {"agents": 5, "services": 2, "interactions": 3},
                "duration": 10,
                "metrics": ["accuracy", "utility"],
                "seeds": {"start": 1, "stop": 3},
            },
            f,
        )
    return path
