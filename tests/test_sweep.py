"""Tests for eager collection sweeps."""

from __future__ import annotations

import asyncio

import pytest
from bson import ObjectId

from mongo_lazy_schema import create_embedded_schema, create_schema
from mongo_lazy_schema.exceptions import ConfigurationError
from mongo_lazy_schema.sweep import _parse_resume_id, stale_query, touch_collection, version_histogram


def upgrade(document):
    return {**document, "_v": 1, "touched": True}


def avatar_schema():
    return create_embedded_schema([lambda avatar: {**avatar, "_v": 1, "url": avatar.get("path")}])


@pytest.fixture
def populated(make_collection):
    documents = [
        {"_id": 1, "_v": 0},
        {"_id": 2, "_v": 1},
        {"_id": 3},
        {"_id": 4, "_v": 0},
        {"_id": 5, "_v": 3},
    ]
    return make_collection(documents)


class TestTouchCollection:
    """Tests for touch_collection."""

    def test_migrates_stale_documents(self, populated):
        client = {"app": {"things": populated}}
        result = asyncio.run(touch_collection(client, "app", "things", create_schema([upgrade]), batch_size=2))

        assert result == {"scanned": 3, "batches": 2, "last_id": 4, "dry_run": False}
        stored = {d["_id"]: d for d in populated.stored()}
        assert stored[1]["touched"] and stored[3]["touched"] and stored[4]["touched"]
        assert "touched" not in stored[2]
        assert stored[5] == {"_id": 5, "_v": 3}
        assert len(populated.bulk_writes) == 2

    def test_dry_run_writes_nothing(self, populated):
        client = {"app": {"things": populated}}
        result = asyncio.run(touch_collection(client, "app", "things", create_schema([upgrade]), dry_run=True))

        assert result["scanned"] == 3
        assert result["dry_run"] is True
        assert populated.bulk_writes == []

    def test_resume_from(self, populated):
        client = {"app": {"things": populated}}
        result = asyncio.run(
            touch_collection(client, "app", "things", create_schema([upgrade]), resume_from=1)
        )
        assert result["scanned"] == 2

    def test_rejects_embedded_schema(self, populated):
        client = {"app": {"things": populated}}
        with pytest.raises(ConfigurationError):
            asyncio.run(touch_collection(client, "app", "things", create_embedded_schema([upgrade])))

    def test_rejects_bad_batch_size(self, populated):
        client = {"app": {"things": populated}}
        with pytest.raises(ConfigurationError):
            asyncio.run(touch_collection(client, "app", "things", create_schema([upgrade]), batch_size=0))


class TestVersionHistogram:
    """Tests for version_histogram."""

    def test_counts_per_version(self, populated):
        client = {"app": {"things": populated}}
        result = asyncio.run(version_histogram(client, "app", "things", create_schema([upgrade])))

        assert result["versions"] == {0: 3, 1: 1, 3: 1}
        assert result["total"] == 5
        assert result["stale"] == 3
        assert result["ahead"] == 1


class TestHelpers:
    def test_stale_query_shape(self):
        schema = create_schema([upgrade, upgrade])
        assert stale_query(schema) == {
            "$or": [{"_v": {"$gte": 0, "$lt": 2}}, {"_v": {"$exists": False}}]
        }

    def test_stale_query_includes_embedded_fields(self):
        schema = create_schema([], embedded={"avatar": avatar_schema()})
        assert stale_query(schema) == {
            "$or": [
                {"avatar._v": {"$gte": 0, "$lt": 1}},
                {"avatar": {"$type": "object", "$ne": {}}, "avatar._v": {"$exists": False}},
            ]
        }

    def test_nothing_can_be_stale(self):
        assert stale_query(create_schema([])) is None

    def test_parse_resume_id(self):
        oid = ObjectId()
        assert _parse_resume_id(str(oid)) == oid
        assert _parse_resume_id("not-an-id") == "not-an-id"
        assert _parse_resume_id(7) == 7
        assert _parse_resume_id(None) is None


class TestEmbeddedStaleness:
    """Parents are swept when only an embedded sub-document is behind."""

    @pytest.fixture
    def parents(self, make_collection):
        return make_collection([
            {"_id": 1, "_v": 0, "avatar": {"_v": 0, "path": "p"}},
            {"_id": 2, "_v": 0, "avatar": {"path": "q"}},
            {"_id": 3, "_v": 0, "avatar": {"_v": 1, "url": "r"}},
            {"_id": 4, "_v": 0},
        ])

    def test_touch_migrates_embedded_only_staleness(self, parents):
        client = {"app": {"things": parents}}
        schema = create_schema([], embedded={"avatar": avatar_schema()})

        result = asyncio.run(touch_collection(client, "app", "things", schema))

        assert result["scanned"] == 2
        assert result["last_id"] == 2
        stored = {d["_id"]: d for d in parents.stored()}
        assert stored[1]["avatar"] == {"_v": 1, "path": "p", "url": "p"}
        assert stored[2]["avatar"] == {"_v": 1, "path": "q", "url": "q"}
        assert stored[3]["avatar"] == {"_v": 1, "url": "r"}

    def test_histogram_counts_embedded_staleness(self, parents):
        client = {"app": {"things": parents}}
        schema = create_schema([], embedded={"avatar": avatar_schema()})

        result = asyncio.run(version_histogram(client, "app", "things", schema))

        assert result["versions"] == {0: 4}
        assert result["stale"] == 2

    def test_touch_skips_when_nothing_can_be_stale(self, parents):
        client = {"app": {"things": parents}}
        result = asyncio.run(touch_collection(client, "app", "things", create_schema([])))

        assert result == {"scanned": 0, "batches": 0, "last_id": None, "dry_run": False}
        assert parents.bulk_writes == []


class TestSweepWriteOptions:
    def test_ordered_writes_forwarded(self, make_collection):
        collection = make_collection([{"_id": 1, "_v": 0}, {"_id": 2, "_v": 0}])
        client = {"app": {"things": collection}}

        asyncio.run(
            touch_collection(
                client, "app", "things", create_schema([upgrade]), batch_size=1, ordered_writes=False
            )
        )

        assert collection.bulk_write_kwargs == [{"ordered": False}, {"ordered": False}]

    def test_schema_setting_used_by_default(self, make_collection):
        collection = make_collection([{"_id": 1, "_v": 0}])
        client = {"app": {"things": collection}}

        asyncio.run(touch_collection(client, "app", "things", create_schema([upgrade], ordered_writes=False)))

        assert collection.bulk_write_kwargs == [{"ordered": False}]

    def test_negative_versions_are_not_swept(self, make_collection):
        collection = make_collection([{"_id": 1, "_v": -1}])
        client = {"app": {"things": collection}}

        result = asyncio.run(touch_collection(client, "app", "things", create_schema([upgrade])))

        assert result["scanned"] == 0
        assert collection.bulk_writes == []
