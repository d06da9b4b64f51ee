# Copyright (c) Syntropy Systems
"""Bounded pool of daemon worker threads."""
from __future__ import annotations

import logging
import os
import queue
from threading import Lock, Semaphore, Thread
from typing import TYPE_CHECKING, Optional

from typing_extensions import Self

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

logger = logging.getLogger(__name__)

_STOP = None


def default_worker_count() -> int:
    """Return the pool size matching hardware parallelism."""
    return os.cpu_count() or 1


class WorkerPool:
    """Runs submitted jobs on up to ``max_workers`` daemon threads.

    Threads are started lazily, only when no idle worker can take a new job,
    and are daemon threads so an abandoned pool never blocks interpreter
    shutdown. Jobs beyond capacity wait in a FIFO queue. Shutting down lets
    every queued job run before the workers exit.
    """

    max_workers: int
    name: str
    _queue: queue.SimpleQueue[Optional[Callable[[], None]]]
    _idle: Semaphore
    _lock: Lock
    _threads: list[Thread]
    _shutdown: bool

    def __init__(self, max_workers: int | None = None, name: str = "trustbench") -> None:
        """Create an empty pool.

        Args:
            max_workers: Upper bound on worker threads (default: CPU count)
            name: Prefix for worker thread names

        """
        if max_workers is None:
            max_workers = default_worker_count()
        if max_workers <= 0:
            msg = f"max_workers must be positive, got {max_workers}"
            raise ValueError(msg)

        self.max_workers = max_workers
        self.name = name
        self._queue = queue.SimpleQueue()
        self._idle = Semaphore(0)
        self._lock = Lock()
        self._threads = []
        self._shutdown = False

    def submit(self, job: Callable[[], None]) -> None:
        """Queue a job for execution on a worker thread."""
        with self._lock:
            if self._shutdown:
                msg = "Cannot submit to a pool that has been shut down"
                raise RuntimeError(msg)
            self._queue.put(job)
            self._adjust_thread_count()

    def _adjust_thread_count(self) -> None:
        # An idle worker will pick the job up
        if self._idle.acquire(timeout=0):
            return

        if len(self._threads) < self.max_workers:
            thread = Thread(
                target=self._worker_loop,
                name=f"{self.name}-worker-{len(self._threads)}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _worker_loop(self) -> None:
        while True:
            job = self._queue.get()
            if job is _STOP:
                return
            try:
                job()
            except BaseException:  # noqa: BLE001
                # A worker outlives its jobs, SystemExit included
                logger.exception("Worker job raised an unhandled exception")
            finally:
                self._idle.release()

    def shutdown(self, wait: bool = True) -> None:  # noqa: FBT001, FBT002
        """Stop accepting jobs; workers exit after draining the queue.

        Safe to call more than once.
        """
        with self._lock:
            threads = list(self._threads)
            if not self._shutdown:
                self._shutdown = True
                for _ in threads:
                    self._queue.put(_STOP)

        if wait:
            for thread in threads:
                thread.join()

    @property
    def worker_count(self) -> int:
        """Return the number of threads started so far."""
        return len(self._threads)

    @property
    def is_shutdown(self) -> bool:
        """Return whether shutdown has been requested."""
        return self._shutdown

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - shut down and wait for workers."""
        self.shutdown(wait=True)
