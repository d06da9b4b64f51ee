# Copyright (c) Syntropy Systems
"""trustbench show command."""
from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.table import Table

from trustbench.cli.common import console
from trustbench.export import read_record
from trustbench.models.evaluation import Reading


def show(
    record_file: Path = typer.Argument(
        ...,
        help="Exported JSON record",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """Summarize an exported evaluation record.

    Shows, per metric and service, the number of readings, the final
    value and the mean value.
    """
    try:
        record = read_record(record_file)
    except (OSError, ValidationError) as e:
        console.print(f"[red]Error reading record:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"\n[bold]{record.protocol.trust_model}[/bold] vs [bold]{record.protocol.scenario}[/bold]")
    console.print(f"  [dim]seed:[/dim] {record.seed}")
    console.print(f"  [dim]metrics:[/dim] {', '.join(record.metrics) or '-'}")
    console.print(f"  [dim]readings:[/dim] {len(record.readings)}")

    if not record.readings:
        console.print("[dim]No readings[/dim]")
        return

    series: dict[tuple[str, int], list[Reading]] = {}
    for reading in record.readings:
        series.setdefault((reading.metric, reading.service), []).append(reading)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Service", style="dim")
    table.add_column("Readings")
    table.add_column("Last tick")
    table.add_column("Final", justify="right")
    table.add_column("Mean", justify="right")

    for (metric, service), readings in series.items():
        mean = sum(r.value for r in readings) / len(readings)
        table.add_row(
            metric,
            str(service),
            str(len(readings)),
            str(readings[-1].tick),
            f"{readings[-1].value:.4f}",
            f"{mean:.4f}",
        )

    console.print(table)
