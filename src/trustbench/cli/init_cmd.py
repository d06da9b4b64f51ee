# Copyright (c) Syntropy Systems
"""trustbench init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from trustbench.config import TrustbenchConfig
from trustbench.suite import DEFAULT_STEPPER

console = Console()

EXAMPLE_SUITE = {
    "name": "demo",
    "stepper": DEFAULT_STEPPER,
    "params": {"agents": 20, "services": 1, "interactions": 5},
    "duration": 500,
    "metrics": ["accuracy", "utility"],
    "seeds": {"start": 1, "stop": 10},
}


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new trustbench project.

    Creates a .trustbench directory with a default configuration, the
    results directory, and an example suite file.
    """
    target = path.resolve()
    project_dir = target / ".trustbench"

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    # Create directory structure
    project_dir.mkdir(parents=True)
    config = TrustbenchConfig()
    results_dir = target / config.output_dir
    results_dir.mkdir(exist_ok=True)

    config_path = project_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)

    suite_path = target / "suite.yaml"
    if not suite_path.exists():
        with suite_path.open("w") as f:
            yaml.dump(EXAMPLE_SUITE, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized trustbench project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]results:[/dim] {results_dir}")
    console.print(f"  [dim]suite:[/dim] {suite_path}")
