"""Shared fixtures: an in-memory stand-in for a motor collection."""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Optional

import pytest
from pymongo import ReplaceOne, UpdateOne


_MISSING = object()


def _lookup(document: Dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches_condition(document: Dict[str, Any], field: str, condition: Any) -> bool:
    value = _lookup(document, field)
    if not isinstance(condition, dict):
        return value == condition
    for operator, operand in condition.items():
        if operator == "$exists":
            if (value is not _MISSING) != bool(operand):
                return False
        elif operator in ("$lt", "$gt", "$gte"):
            if value is _MISSING or value is None:
                return False
            if operator == "$lt" and not value < operand:
                return False
            if operator == "$gt" and not value > operand:
                return False
            if operator == "$gte" and not value >= operand:
                return False
        elif operator == "$ne":
            if value == operand:
                return False
        elif operator == "$type":
            if operand != "object":
                raise NotImplementedError(operand)
            if not isinstance(value, dict):
                return False
        else:
            raise NotImplementedError(operator)
    return True


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif not _matches_condition(document, key, condition):
            return False
    return True


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]) -> None:
        self._documents = documents
        self.batch_size_value: Optional[int] = None

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._documents = sorted(self._documents, key=lambda d: d[key], reverse=direction < 0)
        return self

    def batch_size(self, size: int) -> "FakeCursor":
        self.batch_size_value = size
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self._documents:
            yield document

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        return list(self._documents if length is None else self._documents[:length])


class FakeCollection:
    """Keeps documents by ``_id`` and applies the bulk writes it receives."""

    def __init__(self, documents: Iterable[Dict[str, Any]] = ()) -> None:
        self.documents: Dict[Any, Dict[str, Any]] = {}
        self.bulk_writes: List[List[Any]] = []
        self.bulk_write_kwargs: List[Dict[str, Any]] = []
        self.insert_many(documents)

    def insert_many(self, documents: Iterable[Dict[str, Any]]) -> None:
        for document in documents:
            self.documents[document["_id"]] = copy.deepcopy(document)

    def stored(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(d) for d in self.documents.values()]

    def find(self, query: Optional[Dict[str, Any]] = None, projection: Optional[List[str]] = None) -> FakeCursor:
        found = []
        for document in self.documents.values():
            if matches(document, query or {}):
                if projection is not None:
                    document = {k: v for k, v in document.items() if k in projection or k == "_id"}
                found.append(copy.deepcopy(document))
        return FakeCursor(found)

    async def count_documents(self, query: Dict[str, Any]) -> int:
        return sum(1 for document in self.documents.values() if matches(document, query))

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> FakeCursor:
        group = pipeline[0]["$group"]
        field = group["_id"].lstrip("$")
        counts: Dict[Any, int] = {}
        for document in self.documents.values():
            key = document.get(field)
            counts[key] = counts.get(key, 0) + 1
        return FakeCursor([{"_id": key, "count": count} for key, count in counts.items()])

    async def bulk_write(self, operations: List[Any], ordered: bool = True) -> int:
        self.bulk_writes.append(list(operations))
        self.bulk_write_kwargs.append({"ordered": ordered})
        for operation in operations:
            document_id = operation._filter["_id"]
            if isinstance(operation, ReplaceOne):
                self.documents[document_id] = copy.deepcopy(operation._doc)
            elif isinstance(operation, UpdateOne):
                stored = self.documents[document_id]
                stored.update(copy.deepcopy(operation._doc.get("$set", {})))
                for name in operation._doc.get("$unset", {}):
                    stored.pop(name, None)
            else:
                raise NotImplementedError(type(operation))
        return len(operations)


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def make_collection():
    return FakeCollection
