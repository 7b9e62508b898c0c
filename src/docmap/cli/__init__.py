"""docmap CLI: operator console for inspecting record schemas and enforcing indexes."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from docmap.cli import indexes, schema

app = typer.Typer(
    name="docmap",
    help="docmap CLI: inspect record schemas and enforce indexes.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    uri: str | None = None
    database: str | None = None
    json_output: bool = False
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from docmap import __version__

        print(f"docmap {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    uri: Optional[str] = typer.Option(
        None, "--uri", envvar="DOCMAP_URI", help="MongoDB connection URI"
    ),
    database: Optional[str] = typer.Option(
        None, "--database", envvar="DOCMAP_DATABASE", help="Database name"
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all docmap commands."""
    state.uri = uri
    state.database = database
    state.json_output = json_output
    state.verbose = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(schema.app, name="schema", help="Inspect compiled record schemas")
app.add_typer(indexes.app, name="indexes", help="Plan and enforce declared indexes")


def main() -> None:
    """Entry point for the docmap CLI."""
    app()
