"""Tests for the registry and index enforcement."""

from __future__ import annotations

import logging

import pytest

from docmap import (
    Column,
    DescriptorError,
    Entity,
    Index,
    Order,
    Registry,
    default_registry,
    enforce_indexes,
    planned_indexes,
)
from docmap.descriptor import IndexDescriptor
from tests.conftest import Task, User


@pytest.fixture
def registry():
    r = Registry()
    r.register(User)
    r.register(Task)
    return r


class TestRegistry:
    def test_entities_register_by_default(self):
        assert User in default_registry()
        assert default_registry().get("tasks") is Task

    def test_opt_out(self):
        class Unlisted(Entity, register=False):
            id: Column[str] = Column(rename="_id")

        assert Unlisted not in default_registry()

    def test_explicit_registry(self):
        registry = Registry()

        class Listed(Entity, registry=registry):
            id: Column[str] = Column(rename="_id")

        assert registry.entities() == [Listed]
        assert Listed not in default_registry()

    def test_collection_conflict(self, registry):
        class Impostor(Entity, register=False, collection="user"):
            id: Column[str] = Column(rename="_id")

        with pytest.raises(DescriptorError, match="already mapped"):
            registry.register(Impostor)

    def test_clear(self, registry):
        registry.clear()
        assert len(registry) == 0


class TestPlannedIndexes:
    def test_plan(self, registry):
        plan = planned_indexes(registry)
        assert plan == {
            "user": [IndexDescriptor(name=None, keys=(("email", Order.ASC),))],
            "tasks": [
                IndexDescriptor(
                    name="by_status",
                    keys=(("status", Order.ASC), ("priority", Order.DESC)),
                    options={"sparse": True},
                )
            ],
        }

    def test_keys_use_wire_names(self):
        registry = Registry()

        class Renamed(
            Entity, registry=registry, indexes={"_": Index(keys={"assignee": Order.DESC})}
        ):
            id: Column[str] = Column(rename="_id")
            assignee: Column[str] = Column(rename="assignedTo")

        (index,) = planned_indexes(registry)["renamed"]
        assert index.keys == (("assignedTo", Order.DESC),)
        # The descriptor itself keeps field names
        assert Renamed.__descriptor__.indexes[0].keys == (("assignee", Order.DESC),)

    def test_entities_without_indexes_skipped(self):
        registry = Registry()

        class Plain(Entity, registry=registry):
            id: Column[str] = Column(rename="_id")

        assert planned_indexes(registry) == {}


class TestEnforceIndexes:
    @pytest.mark.asyncio
    async def test_anonymous_email_index(self, ctx, db, registry):
        created = await enforce_indexes(ctx, registry)
        assert created["user"] == ["email_1"]
        (index,) = db.collection("user").indexes
        assert index.name is None
        assert index.keys == (("email", Order.ASC),)

    @pytest.mark.asyncio
    async def test_one_call_per_collection(self, ctx, db, registry):
        await enforce_indexes(ctx, registry)
        calls = db.calls_to("create_indexes")
        assert sorted(c["collection"] for c in calls) == ["tasks", "user"]
        assert len(db.collection("tasks").indexes) == 1

    @pytest.mark.asyncio
    async def test_logs_enforcement(self, ctx, registry, caplog):
        with caplog.at_level(logging.INFO, logger="docmap.indexes"):
            await enforce_indexes(ctx, registry)
        assert any("Enforced 1 indexes on user" in r.message for r in caplog.records)


    @pytest.mark.asyncio
    async def test_empty_registry_creates_nothing(self, ctx, db):
        assert await enforce_indexes(ctx, Registry()) == {}
        assert db.calls_to("create_indexes") == []
