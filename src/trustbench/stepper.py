# Copyright (c) Syntropy Systems
"""Interfaces of the simulation collaborators driven by an evaluation task.

A stepper combines a trust model and a scenario and is advanced one tick at
a time. trustbench never looks inside it: it only calls ``step``, reads the
service indices, and pulls metric values from the snapshot handed to its
subscribers.
"""
from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Protocol

from trustbench.errors import StepperLoadError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from trustbench.models.base import JSONValue


class Snapshot(Protocol):
    """Read access to the simulation right after a step."""

    @property
    def services(self) -> Sequence[int]:
        ...

    def result(self, service: int, metric: str) -> float:
        ...


class Stepper(Protocol):
    """A trust model bound to a scenario, advanced tick by tick."""

    @property
    def trust_model(self) -> str:
        ...

    @property
    def scenario(self) -> str:
        ...

    @property
    def seed(self) -> int:
        ...

    def step(self, tick: int) -> None:
        """Advance the simulation and notify subscribers once."""
        ...

    def subscribe(self, callback: Callable[[Snapshot], None]) -> None:
        ...


class StepperFactory(Protocol):
    """Builds a fresh, independently seeded stepper."""

    def __call__(self, seed: int, **params: JSONValue) -> Stepper:
        ...


def load_factory(path: str) -> StepperFactory:
    """Resolve a ``package.module:attribute`` path to a stepper factory."""
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"Stepper factory must look like 'package.module:factory', got '{path}'"
        raise StepperLoadError(msg)

    try:
        target: object = importlib.import_module(module_name)
    except ImportError as e:
        msg = f"Cannot import module '{module_name}': {e}"
        raise StepperLoadError(msg) from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            msg = f"Module '{module_name}' has no attribute '{attr_path}'"
            raise StepperLoadError(msg) from e

    if not callable(target):
        msg = f"Stepper factory '{path}' is not callable"
        raise StepperLoadError(msg)

    return target  # type: ignore[return-value]
