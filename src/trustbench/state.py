# Copyright (c) Syntropy Systems
"""Lifecycle states of an evaluation run."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Optional, Union

from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from trustbench.evaluation_log import EvaluationLog


@dataclass(frozen=True)
class Idle:
    """No run has started yet."""

    status: ClassVar[str] = "idle"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Running:
    """A run is in progress."""

    status: ClassVar[str] = "running"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Completed:
    """The run reached its configured duration."""

    log: EvaluationLog

    status: ClassVar[str] = "completed"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class Interrupted:
    """Cancellation was observed before stepping ``tick``."""

    tick: int
    log: EvaluationLog

    status: ClassVar[str] = "interrupted"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class Faulted:
    """Stepping failed.

    ``tick`` is None when the failure escaped the task loop and the tick it
    happened at is unknown. ``log`` holds the readings of every tick before
    the failing one, when the task got far enough to have a log.
    """

    tick: Optional[int]
    error: BaseException
    log: Optional[EvaluationLog] = None

    status: ClassVar[str] = "faulted"
    terminal: ClassVar[bool] = True


EvaluationState: TypeAlias = Union[Idle, Running, Completed, Interrupted, Faulted]
TerminalState: TypeAlias = Union[Completed, Interrupted, Faulted]

IDLE = Idle()
RUNNING = Running()


def describe(state: EvaluationState) -> str:
    """Render a state as a one-line status message."""
    if isinstance(state, Interrupted):
        return f"Interrupted at {state.tick}"
    if isinstance(state, Faulted):
        where = "unknown tick" if state.tick is None else str(state.tick)
        return f"Faulted at {where}: {state.error}"
    return type(state).__name__


def log_of(state: EvaluationState) -> Optional[EvaluationLog]:
    """Return the log carried by a state, if any."""
    if isinstance(state, (Completed, Interrupted, Faulted)):
        return state.log
    return None
