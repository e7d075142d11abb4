"""Eager helpers for lazily migrated collections.

Documents are normally upgraded when they are read. Documents nobody reads
stay behind; :func:`touch_collection` pushes them through a schema in batches
so the collection can eventually drop old revisions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient

from mongo_lazy_schema.bucketing import VERSION_FIELD
from mongo_lazy_schema.exceptions import ConfigurationError
from mongo_lazy_schema.schema import LazySchema

logger = logging.getLogger(__name__)


def _stale_branches(schema: LazySchema) -> List[Dict[str, Any]]:
    branches: List[Dict[str, Any]] = []
    if schema.schema_version > 0:
        branches.append({VERSION_FIELD: {"$gte": 0, "$lt": schema.schema_version}})
        branches.append({VERSION_FIELD: {"$exists": False}})

    for name, version in schema.config.embedded_versions.items():
        if version <= 0:
            continue
        path = f"{name}.{VERSION_FIELD}"
        branches.append({path: {"$gte": 0, "$lt": version}})
        branches.append({name: {"$type": "object", "$ne": {}}, path: {"$exists": False}})

    return branches


def stale_query(schema: LazySchema) -> Optional[Dict[str, Any]]:
    """Query matching documents ``schema`` would rewrite on read.

    A document is stale when its own version is behind, or when one of its
    embedded sub-documents is. Returns ``None`` when no document can be stale.
    """
    branches = _stale_branches(schema)
    if not branches:
        return None
    return {"$or": branches}


async def version_histogram(
    client: AsyncIOMotorClient,
    database: str,
    collection: str,
    schema: LazySchema,
) -> Dict[str, Any]:
    coll = client[database][collection]
    pipeline = [{"$group": {"_id": f"${VERSION_FIELD}", "count": {"$sum": 1}}}]
    rows = await coll.aggregate(pipeline).to_list(length=None)

    versions: Dict[int, int] = {}
    for row in rows:
        version = 0 if row["_id"] is None else row["_id"]
        versions[version] = versions.get(version, 0) + row["count"]

    query = stale_query(schema)
    stale = await coll.count_documents(query) if query is not None else 0
    schema_version = schema.schema_version

    return {
        "collection": collection,
        "schema_version": schema_version,
        "total": sum(versions.values()),
        "versions": dict(sorted(versions.items())),
        "stale": stale,
        "ahead": sum(count for version, count in versions.items() if version > schema_version),
    }


async def touch_collection(
    client: AsyncIOMotorClient,
    database: str,
    collection: str,
    schema: LazySchema,
    batch_size: int = 500,
    dry_run: bool = False,
    rate_limit_ms: int = 0,
    resume_from: Any = None,
    ordered_writes: Optional[bool] = None,
) -> Dict[str, Any]:
    """Migrate and persist every stale document of ``collection``.

    ``ordered_writes`` overrides the schema's own setting for every batch.
    """
    if schema.embedded:
        raise ConfigurationError("Embedded schemas do not own a collection and cannot be swept")
    if batch_size <= 0:
        raise ConfigurationError("batch_size must be positive")

    scanned = 0
    batches = 0
    last_id = None

    query = stale_query(schema)
    if query is None:
        return {"scanned": scanned, "batches": batches, "last_id": last_id, "dry_run": dry_run}

    coll = client[database][collection]
    resume_value = _parse_resume_id(resume_from)
    if resume_value is not None:
        query = {**query, "_id": {"$gt": resume_value}}

    projection = ["_id"] if dry_run else None
    cursor = coll.find(query, projection=projection).sort("_id", 1).batch_size(batch_size)
    batch: List[Dict[str, Any]] = []

    async for doc in cursor:
        batch.append(doc)
        if len(batch) >= batch_size:
            last_id = await _flush(coll, schema, batch, dry_run, ordered_writes)
            scanned += len(batch)
            batches += 1
            batch = []
            if rate_limit_ms > 0:
                await _sleep_ms(rate_limit_ms)

    if batch:
        last_id = await _flush(coll, schema, batch, dry_run, ordered_writes)
        scanned += len(batch)
        batches += 1

    logger.info("Touched %d documents of %s.%s in %d batches", scanned, database, collection, batches)
    return {"scanned": scanned, "batches": batches, "last_id": last_id, "dry_run": dry_run}


async def _flush(
    coll,
    schema: LazySchema,
    batch: List[Dict[str, Any]],
    dry_run: bool,
    ordered_writes: Optional[bool],
) -> Any:
    if not dry_run:
        await schema(batch, coll, ordered=ordered_writes)
    return batch[-1]["_id"]


async def _sleep_ms(ms: int) -> None:
    await asyncio.sleep(ms / 1000)


def _parse_resume_id(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return ObjectId(value)
        except InvalidId:
            return value
    return value
