# Copyright (c) Syntropy Systems
"""trustbench batch command."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from trustbench.cli.common import (
    build_tasks,
    console,
    load_suite,
    readings_count,
    resolve_export,
    run_line,
    styled_status,
)
from trustbench.executor import BatchExecutor
from trustbench.export import export_state
from trustbench.pool import WorkerPool
from trustbench.state import Completed, Faulted, Interrupted, TerminalState, describe
from trustbench.suite import SeedSpec, resolve_seeds

POLL_INTERVAL = 0.2


def batch(
    suite_file: Path = typer.Argument(
        ...,
        help="Path to suite YAML file",
        exists=True,
        dir_okay=False,
    ),
    start: Optional[int] = typer.Option(
        None,
        "--start",
        help="First seed (overrides the suite's seeds)",
    ),
    stop: Optional[int] = typer.Option(
        None,
        "--stop",
        help="Last seed, inclusive (overrides the suite's seeds)",
    ),
    duration: Optional[int] = typer.Option(
        None,
        "--duration", "-d",
        min=1,
        help="Number of ticks (overrides the suite)",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        min=1,
        help="Worker threads (default: from config, else CPU count)",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Directory for exported logs (default: from config)",
    ),
    fmt: Optional[str] = typer.Option(
        None,
        "--format", "-f",
        help="Export format: json or csv (default: from config)",
    ),
    export: bool = typer.Option(
        True,
        "--export/--no-export",
        help="Export every log when all runs complete",
    ),
) -> None:
    """Run one evaluation per seed in parallel.

    Logs are exported only when every run completed. Press Ctrl-C to stop
    all runs at their next tick.

    Examples:
        trustbench batch suite.yaml
        trustbench batch suite.yaml --start 1 --stop 30 --workers 4

    """
    suite = load_suite(suite_file)
    config, out_dir, fmt = resolve_export(output_dir, fmt)

    if start is not None or stop is not None:
        first = start if start is not None else 1
        selection: Optional[SeedSpec] = {"start": first, "stop": stop if stop is not None else first}
    else:
        selection = suite.seeds
    try:
        seeds = resolve_seeds(selection)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    tasks = build_tasks(suite, seeds, duration)
    seed_of = {id(task.log): task.seed for task in tasks}

    pool = WorkerPool(max_workers=workers or config.max_workers, name="trustbench-batch")
    progress = Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )
    bar = progress.add_task(suite.name or suite_file.stem, total=len(tasks))

    def on_progress(state: TerminalState) -> None:
        seed = seed_of.get(id(state.log), -1) if state.log is not None else -1
        progress.console.print(run_line(state, seed))
        progress.advance(bar)

    console.print(
        f"[blue]Running {len(tasks)} evaluation(s)[/blue] "
        f"on {pool.max_workers} worker(s), seeds {seeds[0]}-{seeds[-1]}"
    )

    try:
        with progress:
            handle = BatchExecutor(pool).run_batch(tasks, on_progress=on_progress)
            try:
                while not handle.done():
                    time.sleep(POLL_INTERVAL)
            except KeyboardInterrupt:
                console.print("[yellow]Stopping all runs at the next tick...[/yellow]")
                handle.cancel_all()
            results = handle.wait()
    finally:
        pool.shutdown(wait=False)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Seed", style="dim")
    table.add_column("Status")
    table.add_column("Ticks")
    table.add_column("Readings")
    table.add_column("Detail")

    for task, state in zip(tasks, results):
        detail = describe(state) if isinstance(state, (Interrupted, Faulted)) else ""
        table.add_row(
            str(task.seed),
            styled_status(state),
            f"{task.ticks_done}/{task.duration}",
            readings_count(state),
            detail,
        )
    console.print(table)

    if any(isinstance(s, Faulted) for s in results):
        console.print("[red]Some runs failed.[/red]")
        raise typer.Exit(1)
    if any(isinstance(s, Interrupted) for s in results):
        console.print("[yellow]Evaluation was interrupted.[/yellow]")
        return

    console.print("[green]Evaluation completed.[/green]")
    if export:
        for state in results:
            if isinstance(state, Completed):
                _ = export_state(state, out_dir, fmt)
        console.print(f"  [dim]Results saved to[/dim] {out_dir}")
