"""Tests for docmap schema commands."""

import json
import textwrap

import yaml

from tests.cli.conftest import invoke


def test_schema_show_json(runner):
    result = invoke(runner, ["schema", "show", "--models", "tests.conftest"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert set(data["entities"]) == {"User", "Task"}
    user = data["entities"]["User"]
    assert user["collection_name"] == "user"
    assert user["fields"]["id"]["wire_name"] == "_id"
    assert user["projections"]["Profile"] == {"fields": ["id", "email"], "includes_identity": True}


def test_schema_show_yaml(runner):
    result = invoke(
        runner, ["schema", "show", "--models", "tests.conftest", "--format", "yaml"]
    )
    assert result.exit_code == 0
    data = yaml.safe_load(result.output)
    assert data["entities"]["Task"]["fields"]["assignee"]["wire_name"] == "assignedTo"


def test_schema_show_single_entity(runner):
    result = invoke(
        runner, ["schema", "show", "--models", "tests.conftest", "--entity", "Task"]
    )
    assert result.exit_code == 0
    assert list(json.loads(result.output)["entities"]) == ["Task"]


def test_schema_show_unknown_entity(runner):
    result = invoke(
        runner, ["schema", "show", "--models", "tests.conftest", "--entity", "Nope"]
    )
    assert result.exit_code == 1


def test_schema_show_requires_models(runner):
    result = invoke(runner, ["schema", "show"])
    assert result.exit_code == 2


def test_schema_show_bad_format(runner):
    result = invoke(runner, ["schema", "show", "--models", "tests.conftest", "--format", "xml"])
    assert result.exit_code == 2


def test_schema_show_models_path(runner, tmp_path):
    models = tmp_path / "cli_models_ok.py"
    models.write_text(
        textwrap.dedent(
            """
            from docmap import Column, Entity

            class Note(Entity, register=False):
                id: Column[str] = Column(rename="_id")
                body: Column[str]
            """
        )
    )
    result = invoke(runner, ["schema", "show", "--models-path", str(models)])
    assert result.exit_code == 0
    assert json.loads(result.output)["entities"]["Note"]["collection_name"] == "note"


def test_schema_show_invalid_declaration(runner, tmp_path):
    models = tmp_path / "cli_models_broken.py"
    models.write_text(
        textwrap.dedent(
            """
            from docmap import Column, Entity

            class Orphan(Entity, register=False):
                body: Column[str]
            """
        )
    )
    result = invoke(runner, ["schema", "show", "--models-path", str(models)])
    assert result.exit_code == 1
    assert "Orphan" in result.output


def test_schema_show_missing_path(runner):
    result = invoke(runner, ["schema", "show", "--models-path", "/nonexistent/models.py"])
    assert result.exit_code == 1
