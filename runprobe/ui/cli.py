"""Main CLI entry point - one subcommand per query."""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from runprobe.core.configs import get_runner_config
from runprobe.runner.client import BaseClient, create_client

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="runprobe - ask a running application about its models and routes.",
)

console = Console()


# ============================================================================
# Shared Setup
# ============================================================================

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _start_client(app_root: Optional[Path], verbose: bool) -> BaseClient:
    """
    Load config and start the worker. Exits on configuration errors.

    A worker that fails to boot is not an error here: create_client hands
    back a NullClient and queries simply find nothing.
    """
    _setup_logging(verbose)
    try:
        config = get_runner_config(app_root=app_root)
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(1)

    if not config.app_module:
        typer.echo("No application configured. Set RUNPROBE_APP or app_module in .runprobe.cfg", err=True)
        raise typer.Exit(1)

    return create_client(config)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def model(
    name: str = typer.Argument(..., help="Model class name, e.g. User or blog.models.User"),
    app_root: Optional[Path] = typer.Option(None, "--app-root", help="Application directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """
    Show the columns of a model.

    Example: runprobe model User
    """
    client = _start_client(app_root, verbose)
    try:
        info = client.model(name)
    finally:
        client.shutdown()

    if info is None:
        typer.echo(f"No model information for {name}", err=True)
        raise typer.Exit(1)

    table = Table(title=name, caption=info.schema_file)
    table.add_column("Column", style="cyan")
    table.add_column("Type", style="green")
    for column, type_ in info.columns:
        table.add_row(column, type_)
    console.print(table)


@app.command()
def route(
    controller: str = typer.Argument(..., help="Controller module or class, e.g. users"),
    action: str = typer.Argument(..., help="Endpoint function name, e.g. index"),
    app_root: Optional[Path] = typer.Option(None, "--app-root", help="Application directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """
    Show the route served by a controller action.

    Example: runprobe route users index
    """
    client = _start_client(app_root, verbose)
    try:
        info = client.route(controller, action)
    finally:
        client.shutdown()

    if info is None:
        typer.echo(f"No route for {controller}#{action}", err=True)
        raise typer.Exit(1)

    file, line = info.source_location
    table = Table(show_header=False)
    table.add_row("Verb", info.verb)
    table.add_row("Path", info.path)
    table.add_row("Source", f"{file}:{line}")
    console.print(table)


def run() -> None:
    app()
