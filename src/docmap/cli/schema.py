"""docmap schema: inspect compiled record declarations."""

from __future__ import annotations

from typing import Any, Optional

import typer

from docmap.cli import _exitcodes as ec
from docmap.cli._loader import load_models
from docmap.cli._output import print_error, render
from docmap.errors import DescriptorError

app = typer.Typer(no_args_is_help=True)


@app.command(name="show")
def schema_show_cmd(
    models: Optional[str] = typer.Option(None, "--models", help="Python import path for models"),
    models_path: Optional[str] = typer.Option(
        None, "--models-path", help="Filesystem path to models"
    ),
    entity: Optional[str] = typer.Option(None, "--entity", help="Only show this record type"),
    fmt: str = typer.Option("json", "--format", help="Output format: json or yaml"),
) -> None:
    """Print the compiled descriptor of every record type in the models module."""
    from docmap.cli import state

    if models is None and models_path is None:
        print_error("One of --models or --models-path is required")
        raise typer.Exit(ec.USAGE_ERROR)
    if fmt not in ("json", "yaml"):
        print_error("--format must be 'json' or 'yaml'")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        entity_types = load_models(models, models_path)
    except DescriptorError as e:
        print_error(str(e))
        raise typer.Exit(ec.GENERAL_ERROR)
    except Exception as e:
        print_error(f"Failed to load models: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)

    if entity is not None:
        if entity not in entity_types:
            print_error(f"Record type '{entity}' not found")
            raise typer.Exit(ec.GENERAL_ERROR)
        entity_types = {entity: entity_types[entity]}

    data: dict[str, Any] = {
        "entities": {name: cls.__descriptor__.to_dict() for name, cls in entity_types.items()}
    }
    print(render(data, "json" if state.json_output else fmt))
