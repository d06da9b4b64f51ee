# Copyright (c) Syntropy Systems
"""A small self-contained stepper for trying trustbench out.

A beta-reputation trust model observes random interactions with a
population of agents whose hidden capabilities are drawn once per service.
Metrics compare the model's estimates with those capabilities. The formulas
are deliberately simple; real trust models and scenarios plug in through
``trustbench.stepper.StepperFactory``.
"""
from __future__ import annotations

import itertools
import random
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from trustbench.stepper import Snapshot

METRICS = ("accuracy", "utility", "mean_absolute_error")


class DemoSnapshot:
    """Metric values of a DemoStepper after one step."""

    time: int
    _values: dict[tuple[int, str], float]
    _services: tuple[int, ...]

    def __init__(self, time: int, services: Sequence[int], values: dict[tuple[int, str], float]) -> None:
        self.time = time
        self._services = tuple(services)
        self._values = values

    @property
    def services(self) -> tuple[int, ...]:
        return self._services

    def result(self, service: int, metric: str) -> float:
        try:
            return self._values[(service, metric)]
        except KeyError:
            msg = f"Invalid query for metric '{metric}' and service '{service}'"
            raise ValueError(msg) from None


def kendalls_tau_a(estimates: Sequence[float], truth: Sequence[float]) -> float:
    """Kendall's tau-a rank correlation, rescaled to [0, 1]."""
    concordant = 0
    discordant = 0
    for i, j in itertools.combinations(range(len(truth)), 2):
        sign = (estimates[i] - estimates[j]) * (truth[i] - truth[j])
        if sign > 0:
            concordant += 1
        elif sign < 0:
            discordant += 1
    pairs = len(truth) * (len(truth) - 1) / 2
    if pairs == 0:
        return 1.0
    return ((concordant - discordant) / pairs + 1) / 2


class DemoStepper:
    """Beta-reputation model evaluated against a random population."""

    trust_model: str = "Beta Reputation"
    scenario: str = "Random"

    seed: int
    agents: int
    interactions: int
    fail_at: Optional[int]
    _rng: random.Random
    _services: tuple[int, ...]
    _capabilities: dict[int, list[float]]
    _positive: dict[int, list[float]]
    _negative: dict[int, list[float]]
    _subscribers: list[Callable[[Snapshot], None]]

    def __init__(
        self,
        seed: int,
        agents: int = 20,
        services: int = 1,
        interactions: int = 5,
        fail_at: int | None = None,
    ) -> None:
        """Build the population.

        Args:
            seed: Seed of the private random generator
            agents: Number of agents per service
            services: Number of evaluated services
            interactions: Interactions observed per service per tick
            fail_at: Raise from step() at this tick (fault injection)

        """
        if agents < 2:
            msg = "At least two agents are needed to rank them"
            raise ValueError(msg)
        if services < 1:
            msg = "At least one service is required"
            raise ValueError(msg)

        self.seed = seed
        self.agents = agents
        self.interactions = interactions
        self.fail_at = fail_at
        self._rng = random.Random(seed)  # noqa: S311
        self._services = tuple(range(services))
        self._capabilities = {
            s: [self._rng.random() for _ in range(agents)] for s in self._services
        }
        self._positive = {s: [0.0] * agents for s in self._services}
        self._negative = {s: [0.0] * agents for s in self._services}
        self._subscribers = []

    def subscribe(self, callback: Callable[[Snapshot], None]) -> None:
        self._subscribers.append(callback)

    def step(self, tick: int) -> None:
        if self.fail_at is not None and tick == self.fail_at:
            msg = f"Injected fault at tick {tick}"
            raise RuntimeError(msg)

        for service in self._services:
            capabilities = self._capabilities[service]
            for _ in range(self.interactions):
                agent = self._rng.randrange(self.agents)
                if self._rng.random() < capabilities[agent]:
                    self._positive[service][agent] += 1
                else:
                    self._negative[service][agent] += 1

        snapshot = DemoSnapshot(tick, self._services, self._evaluate())
        for callback in self._subscribers:
            callback(snapshot)

    def estimates(self, service: int) -> list[float]:
        """Return the expected value of each agent's beta distribution."""
        pos = self._positive[service]
        neg = self._negative[service]
        return [(p + 1) / (p + n + 2) for p, n in zip(pos, neg)]

    def _evaluate(self) -> dict[tuple[int, str], float]:
        values: dict[tuple[int, str], float] = {}
        for service in self._services:
            truth = self._capabilities[service]
            estimates = self.estimates(service)
            best = max(range(self.agents), key=estimates.__getitem__)

            values[(service, "accuracy")] = kendalls_tau_a(estimates, truth)
            values[(service, "utility")] = truth[best] / max(truth)
            values[(service, "mean_absolute_error")] = sum(
                abs(e - t) for e, t in zip(estimates, truth)
            ) / self.agents
        return values


def create_stepper(seed: int, **params: int) -> DemoStepper:
    """Stepper factory for suite files: ``stepper: trustbench.demo:create_stepper``."""
    return DemoStepper(seed=seed, **params)
