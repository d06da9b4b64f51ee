# Copyright (c) Syntropy Systems
"""Helpers shared by trustbench CLI commands."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console

from trustbench.config import EXPORT_FORMATS, find_trustbench_dir, get_output_dir, load_config
from trustbench.errors import StepperLoadError
from trustbench.state import Completed, Faulted, Interrupted, describe, log_of
from trustbench.suite import SuiteConfig

if TYPE_CHECKING:
    from pathlib import Path

    from trustbench.config import TrustbenchConfig
    from trustbench.state import EvaluationState, TerminalState
    from trustbench.task import EvaluationTask

console = Console()

STATUS_STYLES = {
    "idle": "dim",
    "running": "blue",
    "completed": "green",
    "interrupted": "yellow",
    "faulted": "red",
}


def styled_status(state: EvaluationState) -> str:
    """Return the state's status wrapped in its rich style."""
    style = STATUS_STYLES.get(state.status, "white")
    return f"[{style}]{state.status}[/{style}]"


def load_suite(suite_file: Path) -> SuiteConfig:
    """Load a suite file or exit with an error message."""
    try:
        return SuiteConfig.from_yaml(suite_file)
    except (OSError, ValueError, TypeError) as e:
        console.print(f"[red]Error loading suite:[/red] {e}")
        raise typer.Exit(1) from e


def build_tasks(
    suite: SuiteConfig,
    seeds: list[int],
    duration: Optional[int],
) -> list[EvaluationTask]:
    """Build one task per seed or exit with an error message."""
    try:
        return suite.build_tasks(seeds, duration=duration)
    except (StepperLoadError, ValueError, TypeError) as e:
        console.print(f"[red]Error building evaluation:[/red] {e}")
        raise typer.Exit(1) from e


def resolve_export(
    output_dir: Optional[Path],
    fmt: Optional[str],
) -> tuple[TrustbenchConfig, Path, str]:
    """Combine CLI options with the project config."""
    project_dir = find_trustbench_dir()
    config = load_config(project_dir)

    fmt = (fmt or config.export_format).lower()
    if fmt not in EXPORT_FORMATS:
        console.print(f"[red]Error:[/red] Export format must be one of {', '.join(EXPORT_FORMATS)}")
        raise typer.Exit(1)

    if output_dir is None:
        output_dir = get_output_dir(project_dir, config)
    return config, output_dir, fmt


def run_line(state: TerminalState, seed: int) -> str:
    """One-line log message for a resolved run."""
    if isinstance(state, Completed):
        return f"[green]Completed[/green] run {seed}"
    if isinstance(state, Interrupted):
        return f"[yellow]Interrupted[/yellow] run {seed} at {state.tick}"
    if isinstance(state, Faulted):
        return f"[red]Faulted[/red] run {seed}: {describe(state)}"
    return f"run {seed}: {describe(state)}"


def readings_count(state: EvaluationState) -> str:
    """Number of readings carried by a state, or '-'."""
    log = log_of(state)
    return "-" if log is None else str(len(log))
