"""Conch CLI.

Commands:
    conch                                  Start the shell
    conch complete SOURCE [--cursor N]     Print completions as JSON
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from conch.completer import Completer
from conch.config import ConchConfig, enable_debug_log, load_config
from conch.environment import NamespaceEnvironment
from conch.exceptions import ConchConfigError

app = typer.Typer(
    name="conch",
    help="Python shell with context-aware tab completion",
)


def _config(debug: bool) -> ConchConfig:
    try:
        config = load_config(Path.cwd())
    except ConchConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if debug or config.debug_log:
        enable_debug_log()
    return config


@app.callback(invoke_without_command=True)
def shell(
    ctx: typer.Context,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Write debug logs to .conch/debug.log"),
    ] = False,
):
    """Start the shell when no command is given."""
    ctx.obj = _config(debug)
    if ctx.invoked_subcommand is None:
        from conch.repl import launch

        launch(ctx.obj)


@app.command("complete")
def complete(
    ctx: typer.Context,
    source: Annotated[str, typer.Argument(help="Source line to complete")],
    cursor: Annotated[
        Optional[int],
        typer.Option("--cursor", "-c", help="Cursor offset (default: end of source)"),
    ] = None,
):
    """Print the completion result for SOURCE as JSON (null when none)."""
    from conch.repl.namespace import seed

    environment = NamespaceEnvironment(seed())
    try:
        result = asyncio.run(Completer(environment, ctx.obj).complete(source, cursor))
    finally:
        environment.close()
    data = None if result is None else result.model_dump()
    typer.echo(json.dumps(data, indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
