# Copyright (c) Syntropy Systems
"""Configuration management for trustbench."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, cast

import yaml

EXPORT_FORMATS = ("json", "csv")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class TrustbenchConfig:
    """Configuration for trustbench."""

    # Worker threads for batches (None: one per CPU)
    max_workers: Optional[int] = None

    # Directory exported logs are written to, relative to the project root
    output_dir: str = "results"

    # Export format for finished runs: json or csv
    export_format: str = "json"

    # Root log level used by the CLI
    log_level: str = "WARNING"

    def to_dict(self) -> dict[str, object]:
        """Convert to the mapping written to config.yaml."""
        return asdict(self)


def find_trustbench_dir(start_path: Path | None = None) -> Path | None:
    """Return the nearest .trustbench directory at or above start_path (default: cwd)."""
    start = (start_path or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / ".trustbench"
        if candidate.is_dir():
            return candidate
    return None


def load_config(project_dir: Path | None = None) -> TrustbenchConfig:
    """Read ``config.yaml`` from project_dir, or from the nearest project.

    Missing files give the defaults. Values of the wrong type or outside
    the allowed choices are ignored key by key.
    """
    config = TrustbenchConfig()

    if project_dir is None:
        project_dir = find_trustbench_dir()
    if project_dir is None:
        return config

    config_path = project_dir / "config.yaml"
    if not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    max_workers = data.get("max_workers")
    if isinstance(max_workers, int) and not isinstance(max_workers, bool) and max_workers > 0:
        config.max_workers = max_workers
    output_dir = data.get("output_dir")
    if isinstance(output_dir, str) and output_dir:
        config.output_dir = output_dir
    export_format = data.get("export_format")
    if isinstance(export_format, str) and export_format.lower() in EXPORT_FORMATS:
        config.export_format = export_format.lower()
    log_level = data.get("log_level")
    if isinstance(log_level, str) and log_level.upper() in LOG_LEVELS:
        config.log_level = log_level.upper()

    return config


def get_output_dir(project_dir: Path | None = None, config: TrustbenchConfig | None = None) -> Path:
    """Resolve the export directory for a project.

    Relative output directories are resolved against the project root (the
    directory holding .trustbench), or the current directory outside a
    project.
    """
    if project_dir is None:
        project_dir = find_trustbench_dir()
    if config is None:
        config = load_config(project_dir)

    output = Path(config.output_dir).expanduser()
    if output.is_absolute():
        return output

    base = project_dir.parent if project_dir is not None else Path.cwd()
    return base / output

