"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from docmap.cli import app
from tests.conftest import FakeDatabase

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def fake_db(monkeypatch):
    """Route `indexes enforce` to an in-memory database and capture the config it used."""
    db = FakeDatabase()
    db.configs = []

    def fake_connect(config):
        db.configs.append(config)
        return db

    monkeypatch.setattr("docmap.cli.indexes.connect", fake_connect)
    return db


def invoke(runner: CliRunner, args: list[str]) -> "Result":
    """Invoke the CLI without swallowing unexpected exceptions."""
    return runner.invoke(app, args, catch_exceptions=False)
