# Copyright (c) Syntropy Systems
"""Pydantic models for evaluation readings and exported records."""

from __future__ import annotations

from pydantic import Field

from .base import FrozenModel, TrustbenchBaseModel


class Reading(FrozenModel):
    """One sampled metric value for a service at a tick."""

    tick: int = Field(ge=1)
    metric: str
    service: int
    value: float = Field(allow_inf_nan=False)

    @property
    def key(self) -> tuple[int, str, int]:
        """Return the (tick, metric, service) triple identifying this reading."""
        return (self.tick, self.metric, self.service)


class ProtocolRef(FrozenModel):
    """Identity of the evaluated protocol (trust model against scenario)."""

    trust_model: str
    scenario: str


class EvaluationRecord(TrustbenchBaseModel):
    """Structured export of an evaluation log."""

    protocol: ProtocolRef
    metrics: list[str] = Field(default_factory=list)
    readings: list[Reading] = Field(default_factory=list)
    seed: int
