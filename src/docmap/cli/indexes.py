"""docmap indexes: plan and create the declared indexes."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from docmap.cli import _exitcodes as ec
from docmap.cli._loader import load_models, registry_for
from docmap.cli._output import print_error, print_table
from docmap.config import DocmapConfig
from docmap.context import Context
from docmap.errors import DatabaseError
from docmap.indexes import enforce_indexes, planned_indexes
from docmap.registry import Registry
from docmap.storage import connect

app = typer.Typer(no_args_is_help=True)

_MODELS_HELP = "Python import path for models"
_MODELS_PATH_HELP = "Filesystem path to models"


def _load_registry(models: str | None, models_path: str | None) -> Registry:
    if models is None and models_path is None:
        print_error("One of --models or --models-path is required")
        raise typer.Exit(ec.USAGE_ERROR)
    try:
        return registry_for(load_models(models, models_path))
    except Exception as e:
        print_error(f"Failed to load models: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)


@app.command(name="plan")
def indexes_plan_cmd(
    models: Optional[str] = typer.Option(None, "--models", help=_MODELS_HELP),
    models_path: Optional[str] = typer.Option(None, "--models-path", help=_MODELS_PATH_HELP),
) -> None:
    """List the indexes that `indexes enforce` would create."""
    from docmap.cli import state

    registry = _load_registry(models, models_path)
    rows = []
    for collection, indexes in planned_indexes(registry).items():
        for index in indexes:
            rows.append(
                [
                    collection,
                    index.name or "(anonymous)",
                    ", ".join(f"{key}:{order.value}" for key, order in index.keys),
                    dict(index.options) if index.options else "",
                ]
            )
    if not rows and not state.json_output:
        print("No indexes declared.")
        return
    print_table(["collection", "name", "keys", "options"], rows, json_mode=state.json_output)


@app.command(name="enforce")
def indexes_enforce_cmd(
    models: Optional[str] = typer.Option(None, "--models", help=_MODELS_HELP),
    models_path: Optional[str] = typer.Option(None, "--models-path", help=_MODELS_PATH_HELP),
) -> None:
    """Connect to the database and create every declared index."""
    from docmap.cli import state

    registry = _load_registry(models, models_path)
    config = DocmapConfig.from_env()
    if state.uri:
        config.uri = state.uri
    if state.database:
        config.database = state.database

    try:
        created = asyncio.run(_enforce(config, registry))
    except DatabaseError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)

    rows = [[collection, name] for collection, names in created.items() for name in names]
    if not rows and not state.json_output:
        print("No indexes declared.")
        return
    print_table(["collection", "index"], rows, json_mode=state.json_output)


async def _enforce(config: DocmapConfig, registry: Registry) -> dict[str, list[str]]:
    db = connect(config)
    try:
        return await enforce_indexes(Context.from_config(db, config), registry)
    finally:
        await db.close()
