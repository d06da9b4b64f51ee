# Copyright (c) Syntropy Systems
"""Main CLI entry point for trustbench."""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from trustbench.cli.batch import batch
from trustbench.cli.init_cmd import init
from trustbench.cli.run import run
from trustbench.cli.show import show
from trustbench.config import LOG_LEVELS, load_config

app = typer.Typer(
    name="trustbench",
    help=(
        "Evaluate trust models against scenarios. Run seeds in parallel, "
        "stop them cooperatively, export the readings."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level", "-L",
        envvar="TRUSTBENCH_LOG_LEVEL",
        help="Log level (default: from .trustbench/config.yaml, else WARNING)",
    ),
) -> None:
    """Configure logging for every command."""
    level = (log_level or load_config().log_level).upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )

    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


# Register commands
_ = app.command()(init)
_ = app.command()(run)
_ = app.command()(batch)
_ = app.command()(show)


if __name__ == "__main__":
    app()
