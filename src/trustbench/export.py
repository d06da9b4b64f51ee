# Copyright (c) Syntropy Systems
"""Export evaluation logs to CSV or JSON."""
from __future__ import annotations

import csv
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from trustbench.models.evaluation import EvaluationRecord
from trustbench.state import Completed, Interrupted

if TYPE_CHECKING:
    from trustbench.evaluation_log import EvaluationLog
    from trustbench.state import EvaluationState

logger = logging.getLogger(__name__)

# "Metric" holds the value and "Name" the metric name.
CSV_HEADER = ["run", "tick", "Metric", "Name", "TrustModel", "Scenario"]


def _to_file_name(name: str) -> str:
    """'Beta reputation (v2)' -> 'BetaReputationv2'."""
    words = "".join(word[:1].upper() + word[1:] for word in name.split(" "))
    return re.sub(r"\W+", "", words)


def auto_name(log: EvaluationLog, suffix: str, now: datetime | None = None) -> str:
    """Build ``Scenario-TrustModel-seed-YYYY.MM.DD.HHMMSS.suffix``."""
    stamp = (now or datetime.now()).strftime("%Y.%m.%d.%H%M%S")
    scenario = _to_file_name(log.protocol.scenario)
    model = _to_file_name(log.protocol.trust_model)
    return f"{scenario}-{model}-{log.seed}-{stamp}.{suffix}"


def write_csv(log: EvaluationLog, path: Path) -> Path:
    """Write one row per reading."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for reading in log:
            writer.writerow([
                log.seed,
                reading.tick,
                reading.value,
                reading.metric,
                log.protocol.trust_model,
                log.protocol.scenario,
            ])
    return path


def write_json(log: EvaluationLog, path: Path) -> Path:
    """Write the log as a structured record."""
    path.parent.mkdir(parents=True, exist_ok=True)
    _ = path.write_text(log.to_record().model_dump_json(indent=2))
    return path


def read_record(path: Path) -> EvaluationRecord:
    """Load a JSON export back into an EvaluationRecord."""
    return EvaluationRecord.model_validate_json(path.read_text())


def export_log(log: EvaluationLog, directory: Path, fmt: str = "json") -> Path:
    """Write ``log`` into ``directory`` under an automatic name."""
    fmt = fmt.lower()
    if fmt == "json":
        return write_json(log, directory / auto_name(log, "json"))
    if fmt == "csv":
        return write_csv(log, directory / auto_name(log, "csv"))
    msg = f"Unknown export format: {fmt}"
    raise ValueError(msg)


def export_state(state: EvaluationState, directory: Path, fmt: str = "json") -> Path:
    """Export the log of a Completed or Interrupted run.

    Logs of other states are either missing or not guaranteed to cover the
    ticks they claim, so they are refused.
    """
    if not isinstance(state, (Completed, Interrupted)):
        msg = f"Only completed or interrupted runs can be exported, got {state.status}"
        raise ValueError(msg)

    path = export_log(state.log, directory, fmt)
    logger.info("Exported %d reading(s) for seed %d to %s", len(state.log), state.log.seed, path)
    return path
