# Copyright (c) Syntropy Systems
"""Exceptions raised by the trustbench orchestration core."""
from __future__ import annotations


class TrustbenchError(Exception):
    """Base class for trustbench errors."""


class InvariantViolation(TrustbenchError):
    """An orchestration invariant was broken.

    These are defects in trustbench itself (a terminal state delivered twice,
    a sealed log mutated, a task run twice). They are never converted into
    an evaluation state; executors log them at CRITICAL level and surface
    them through the affected future.
    """


class TaskAlreadySubmittedError(TrustbenchError):
    """An evaluation task was handed to an executor more than once."""


class StepperLoadError(TrustbenchError):
    """A stepper factory path could not be resolved."""
