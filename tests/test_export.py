# Copyright (c) Syntropy Systems
"""Tests for exporting evaluation logs."""

import csv
from datetime import datetime
from pathlib import Path

import pytest

from trustbench.evaluation_log import EvaluationLog
from trustbench.export import (
    CSV_HEADER,
    auto_name,
    export_log,
    export_state,
    read_record,
    write_csv,
)
from trustbench.models.evaluation import ProtocolRef, Reading
from trustbench.state import Completed, Faulted, Interrupted


@pytest.fixture
def log() -> EvaluationLog:
    log = EvaluationLog(
        ProtocolRef(trust_model="Beta Reputation", scenario="Random"),
        ["accuracy", "utility"],
        seed=3,
    )
    log.append(Reading(tick=1, metric="accuracy", service=0, value=0.5))
    log.append(Reading(tick=1, metric="utility", service=0, value=0.75))
    log.append(Reading(tick=2, metric="accuracy", service=0, value=0.625))
    log.seal()
    return log


class TestAutoName:
    """Tests for automatic export file names."""

    def test_auto_name(self, log: EvaluationLog) -> None:
        """Test names combine scenario, trust model, seed and time."""
        now = datetime(2024, 1, 2, 3, 4, 5)

        assert auto_name(log, "json", now) == "Random-BetaReputation-3-2024.01.02.030405.json"

    def test_auto_name_strips_symbols(self) -> None:
        """Test non-word characters are removed from names."""
        log = EvaluationLog(ProtocolRef(trust_model="eigen trust (v2)", scenario="one-shot"), ["a"], 1)

        name = auto_name(log, "csv", datetime(2024, 1, 1))

        assert name.startswith("Oneshot-EigenTrustv2-1-")
        assert name.endswith(".csv")


class TestWriters:
    """Tests for the CSV and JSON writers."""

    def test_csv_rows(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test one row per reading under the standard header."""
        path = write_csv(log, temp_dir / "out.csv")

        with path.open() as f:
            rows = list(csv.reader(f))

        assert rows[0] == CSV_HEADER
        assert rows[1] == ["3", "1", "0.5", "accuracy", "Beta Reputation", "Random"]
        assert len(rows) == 4

    def test_json_read_back(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test a JSON export loads back into an equal record."""
        path = export_log(log, temp_dir, "json")

        record = read_record(path)

        assert record == log.to_record()
        assert path.parent == temp_dir

    def test_unknown_format(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test unknown formats are rejected."""
        with pytest.raises(ValueError, match="Unknown export format"):
            _ = export_log(log, temp_dir, "xml")

    def test_creates_directory(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test missing parent directories are created."""
        path = export_log(log, temp_dir / "nested" / "results", "CSV")

        assert path.exists()
        assert path.suffix == ".csv"


class TestExportState:
    """Tests for exporting terminal states."""

    def test_export_completed(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test completed runs export their log."""
        path = export_state(Completed(log), temp_dir)

        assert read_record(path).seed == 3

    def test_export_interrupted(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test interrupted runs export the readings collected so far."""
        path = export_state(Interrupted(3, log), temp_dir, "csv")

        assert path.exists()

    def test_export_faulted_rejected(self, log: EvaluationLog, temp_dir: Path) -> None:
        """Test faulted runs cannot be exported."""
        with pytest.raises(ValueError, match="got faulted"):
            _ = export_state(Faulted(2, RuntimeError("x"), log), temp_dir)
