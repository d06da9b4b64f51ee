# Copyright (c) Syntropy Systems
"""Append-only accumulator of readings for a single evaluation run."""
from __future__ import annotations

from typing import TYPE_CHECKING

from trustbench.errors import InvariantViolation
from trustbench.models.evaluation import EvaluationRecord, ProtocolRef, Reading

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class EvaluationLog:
    """Ordered readings of one run plus the run's identity.

    The log is owned by the task that created it. While the task runs,
    readings may only be appended, in non-decreasing tick order, and each
    (tick, metric, service) triple may appear once. When the task reaches a
    terminal state the log is sealed and any further mutation raises
    InvariantViolation.
    """

    protocol: ProtocolRef
    metrics: tuple[str, ...]
    seed: int
    _readings: list[Reading]
    _keys: set[tuple[int, str, int]]
    _sealed: bool

    def __init__(
        self,
        protocol: ProtocolRef,
        metrics: Iterable[str],
        seed: int,
    ) -> None:
        self.protocol = protocol
        self.metrics = tuple(dict.fromkeys(metrics))
        self.seed = seed
        self._readings = []
        self._keys = set()
        self._sealed = False

    def append(self, reading: Reading) -> None:
        """Append a reading, enforcing tick order and triple uniqueness."""
        if self._sealed:
            msg = f"Cannot append to sealed log (seed {self.seed})"
            raise InvariantViolation(msg)

        if self._readings and reading.tick < self._readings[-1].tick:
            msg = (
                f"Reading for tick {reading.tick} arrived after tick "
                f"{self._readings[-1].tick}"
            )
            raise ValueError(msg)

        if reading.key in self._keys:
            msg = (
                f"Duplicate reading for tick {reading.tick}, metric "
                f"'{reading.metric}', service {reading.service}"
            )
            raise ValueError(msg)

        self._readings.append(reading)
        self._keys.add(reading.key)

    def discard_tick(self, tick: int) -> int:
        """Drop every reading recorded for ``tick`` and later.

        Used when a step fails part-way through notifying subscribers, so
        the failed tick leaves no partial data. Returns the number of
        readings removed.
        """
        if self._sealed:
            msg = f"Cannot discard readings from sealed log (seed {self.seed})"
            raise InvariantViolation(msg)

        keep = len(self._readings)
        while keep > 0 and self._readings[keep - 1].tick >= tick:
            keep -= 1

        removed = self._readings[keep:]
        del self._readings[keep:]
        for reading in removed:
            self._keys.discard(reading.key)
        return len(removed)

    def seal(self) -> None:
        """Freeze the log. Sealing twice is harmless."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        """Return whether the log is frozen."""
        return self._sealed

    @property
    def readings(self) -> tuple[Reading, ...]:
        """Return a snapshot of the readings in insertion order."""
        return tuple(self._readings)

    @property
    def last_tick(self) -> int:
        """Return the highest tick with readings, 0 if none were recorded."""
        if not self._readings:
            return 0
        return self._readings[-1].tick

    def __len__(self) -> int:
        return len(self._readings)

    def __iter__(self) -> Iterator[Reading]:
        return iter(tuple(self._readings))

    def to_record(self) -> EvaluationRecord:
        """Convert the log into its structured export form."""
        return EvaluationRecord(
            protocol=self.protocol,
            metrics=list(self.metrics),
            readings=list(self._readings),
            seed=self.seed,
        )

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return (
            f"EvaluationLog(seed={self.seed}, "
            f"trust_model={self.protocol.trust_model!r}, "
            f"scenario={self.protocol.scenario!r}, "
            f"readings={len(self._readings)}, {state})"
        )
