"""
trustbench - Evaluation orchestration for trust models.

Run a trust model against a scenario tick by tick, cancel cooperatively,
fan out seeds in parallel, export the readings.
"""

from trustbench.evaluation_log import EvaluationLog
from trustbench.executor import BatchExecutor, BatchHandle, RunHandle, SingleRunExecutor
from trustbench.models.evaluation import Reading
from trustbench.pool import WorkerPool
from trustbench.session import EvaluationSession
from trustbench.state import (
    Completed,
    EvaluationState,
    Faulted,
    Idle,
    Interrupted,
    Running,
    describe,
)
from trustbench.task import EvaluationTask

__version__ = "0.1.0"
__all__ = [
    "BatchExecutor",
    "BatchHandle",
    "Completed",
    "EvaluationLog",
    "EvaluationSession",
    "EvaluationState",
    "EvaluationTask",
    "Faulted",
    "Idle",
    "Interrupted",
    "Reading",
    "RunHandle",
    "Running",
    "SingleRunExecutor",
    "WorkerPool",
    "__version__",
    "describe",
]
