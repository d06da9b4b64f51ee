# Copyright (c) Syntropy Systems
"""trustbench run command."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from trustbench.cli.common import build_tasks, console, load_suite, resolve_export, styled_status
from trustbench.executor import SingleRunExecutor
from trustbench.export import export_state
from trustbench.pool import WorkerPool
from trustbench.state import Completed, Faulted, Interrupted, describe

POLL_INTERVAL = 0.1


def run(
    suite_file: Path = typer.Argument(
        ...,
        help="Path to suite YAML file",
        exists=True,
        dir_okay=False,
    ),
    seed: int = typer.Option(1, "--seed", "-s", help="Seed of the run"),
    duration: Optional[int] = typer.Option(
        None,
        "--duration", "-d",
        min=1,
        help="Number of ticks (overrides the suite)",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Directory for the exported log (default: from config)",
    ),
    fmt: Optional[str] = typer.Option(
        None,
        "--format", "-f",
        help="Export format: json or csv (default: from config)",
    ),
    export: bool = typer.Option(
        True,
        "--export/--no-export",
        help="Export the log of a completed or interrupted run",
    ),
) -> None:
    """Run a single evaluation.

    Press Ctrl-C to stop the run at the next tick; the readings collected
    so far are kept and exported.

    Example:
        trustbench run suite.yaml --seed 7

    """
    suite = load_suite(suite_file)
    _, out_dir, fmt = resolve_export(output_dir, fmt)
    task = build_tasks(suite, [seed], duration)[0]

    pool = WorkerPool(max_workers=1, name="trustbench-run")
    executor = SingleRunExecutor(pool)
    handle = executor.submit(task)

    progress = Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    try:
        with progress:
            bar = progress.add_task(f"seed {seed}", total=task.duration)
            try:
                while not handle.done():
                    progress.update(bar, completed=task.ticks_done)
                    time.sleep(POLL_INTERVAL)
            except KeyboardInterrupt:
                console.print("[yellow]Stopping run at the next tick...[/yellow]")
                handle.cancel()
            state = handle.result()
    finally:
        pool.shutdown(wait=False)

    console.print(f"\n[bold]Run {seed}[/bold] {task.log.protocol.trust_model} vs {task.log.protocol.scenario}")
    console.print(f"  [dim]status:[/dim] {styled_status(state)}")
    console.print(f"  [dim]ticks:[/dim] {task.ticks_done}/{task.duration}")
    console.print(f"  [dim]readings:[/dim] {len(task.log)}")

    if isinstance(state, Faulted):
        console.print(f"  [dim]error:[/dim] {describe(state)}")
        raise typer.Exit(1)

    if export and isinstance(state, (Completed, Interrupted)):
        path = export_state(state, out_dir, fmt)
        console.print(f"  [dim]exported:[/dim] {path}")
