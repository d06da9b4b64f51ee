# Copyright (c) Syntropy Systems
"""Suite configuration: what to evaluate and how to build its tasks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, TypedDict, cast

import yaml

from trustbench.stepper import load_factory
from trustbench.task import EvaluationTask

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from trustbench.models.base import JSONValue
    from trustbench.stepper import StepperFactory

DEFAULT_STEPPER = "trustbench.demo:create_stepper"


class SeedSpec(TypedDict, total=False):
    """Seed selection for batch runs."""

    values: list[int]
    start: int
    stop: int


@dataclass
class SuiteConfig:
    """Configuration of an evaluation: stepper, parameters, duration, metrics."""

    duration: int
    metrics: list[str]
    stepper: str = DEFAULT_STEPPER
    params: dict[str, JSONValue] = field(default_factory=dict)
    name: Optional[str] = None
    seeds: Optional[SeedSpec] = None

    def __post_init__(self) -> None:
        if self.duration <= 0:
            msg = f"Suite duration must be positive, got {self.duration}"
            raise ValueError(msg)
        if not self.metrics:
            msg = "Suite must list at least one metric"
            raise ValueError(msg)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> SuiteConfig:
        """Build a suite from a parsed mapping."""
        if "duration" not in data:
            msg = "Suite config must have 'duration' field"
            raise ValueError(msg)
        if "metrics" not in data:
            msg = "Suite config must have 'metrics' field"
            raise ValueError(msg)

        duration = data["duration"]
        if not isinstance(duration, int) or isinstance(duration, bool):
            msg = f"Suite 'duration' must be an integer, got {duration!r}"
            raise ValueError(msg)

        metrics = data["metrics"]
        if isinstance(metrics, str):
            metrics = [m.strip() for m in metrics.split(",") if m.strip()]
        if not isinstance(metrics, list):
            msg = "Suite 'metrics' must be a list of metric names"
            raise ValueError(msg)

        params = data.get("params") or {}
        if not isinstance(params, dict):
            msg = "Suite 'params' must be a mapping"
            raise ValueError(msg)

        return cls(
            duration=duration,
            metrics=[str(m) for m in metrics],
            stepper=cast("str", data.get("stepper", DEFAULT_STEPPER)),
            params=cast("dict[str, JSONValue]", params),
            name=cast("Optional[str]", data.get("name")),
            seeds=cast("Optional[SeedSpec]", data.get("seeds")),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> SuiteConfig:
        """Load suite configuration from YAML file."""
        with path.open() as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            msg = f"Suite config {path} must be a mapping"
            raise ValueError(msg)

        return cls.from_dict(cast("dict[str, object]", data))

    def factory(self) -> StepperFactory:
        """Resolve the configured stepper factory."""
        return load_factory(self.stepper)

    def build_task(self, seed: int, duration: int | None = None) -> EvaluationTask:
        """Build one task around a freshly created stepper."""
        return self.build_tasks([seed], duration=duration)[0]

    def build_tasks(
        self,
        seeds: Iterable[int] | None = None,
        duration: int | None = None,
    ) -> list[EvaluationTask]:
        """Build one independent task per seed.

        Every task gets its own stepper instance: steppers carry mutable
        simulation state and are not safe to step from two threads.
        """
        selected = list(seeds) if seeds is not None else self.seed_list()
        factory = self.factory()
        return [
            EvaluationTask(
                factory(seed, **self.params),
                duration=self.duration if duration is None else duration,
                metrics=self.metrics,
                seed=seed,
            )
            for seed in selected
        ]

    def seed_list(self) -> list[int]:
        """Return the seeds selected by the suite (default: seed 1 only)."""
        return resolve_seeds(self.seeds)


def resolve_seeds(spec: SeedSpec | None) -> list[int]:
    """Expand a seed specification into a list of seeds.

    Supports:
    - values: explicit list of seeds
    - start/stop: inclusive range
    """
    if not spec:
        return [1]

    if "values" in spec:
        seeds = [int(s) for s in spec["values"]]
        if not seeds:
            msg = "Seed list must not be empty"
            raise ValueError(msg)
        return seeds

    if "start" in spec or "stop" in spec:
        start = int(spec.get("start", 1))
        stop = int(spec.get("stop", start))
        if stop < start:
            msg = f"Seed range stop ({stop}) is before start ({start})"
            raise ValueError(msg)
        return list(range(start, stop + 1))

    msg = "Seeds must have 'values' or 'start'/'stop'"
    raise ValueError(msg)
