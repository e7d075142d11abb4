"""Revision chain: the ordered transforms that upgrade documents one version at a time.

Revision ``i`` turns a document at version ``i`` into a document at version
``i + 1``, so the length of the chain is the schema version. Each revision is
normalised once, when the schema is built, into one of two shapes:

* :class:`PerDocument` wraps ``update(document) -> document``
* :class:`Batched` wraps ``update_many(documents) -> documents``

Both may be plain functions or coroutine functions.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Tuple, Union

from mongo_lazy_schema.exceptions import InvalidRevisionError

Document = Dict[str, Any]
MaybeAwaitable = Union[Any, Awaitable[Any]]


@dataclass(frozen=True)
class PerDocument:
    """Transform applied to every document of a bucket independently."""

    update: Callable[[Document], MaybeAwaitable]


@dataclass(frozen=True)
class Batched:
    """Transform applied to a whole bucket in a single call."""

    update_many: Callable[[List[Document]], MaybeAwaitable]


Revision = Union[PerDocument, Batched]

_BATCH_NAMES = ("update_many", "updateMany")
_SINGLE_NAMES = ("update",)


def as_revision(raw: Any) -> Revision:
    """Normalise a user supplied revision into a :data:`Revision`.

    Batch transforms take precedence when an object offers both shapes.
    """
    if isinstance(raw, (PerDocument, Batched)):
        return raw

    if isinstance(raw, Mapping):
        for name in _BATCH_NAMES:
            if callable(raw.get(name)):
                return Batched(raw[name])
        for name in _SINGLE_NAMES:
            if callable(raw.get(name)):
                return PerDocument(raw[name])
        raise InvalidRevisionError(
            f"Revision mapping needs an 'update' or 'update_many' callable, got keys {sorted(raw)}"
        )

    for name in _BATCH_NAMES:
        method = getattr(raw, name, None)
        if callable(method):
            return Batched(method)
    for name in _SINGLE_NAMES:
        method = getattr(raw, name, None)
        if callable(method):
            return PerDocument(method)

    if callable(raw):
        return PerDocument(raw)

    raise InvalidRevisionError(f"Unsupported revision: {raw!r}")


class RevisionChain:
    """Immutable, indexable sequence of revisions."""

    def __init__(self, revisions: Iterable[Any] = ()) -> None:
        self._revisions: Tuple[Revision, ...] = tuple(as_revision(r) for r in revisions)

    @property
    def schema_version(self) -> int:
        return len(self._revisions)

    def __len__(self) -> int:
        return len(self._revisions)

    def __getitem__(self, version: int) -> Revision:
        return self._revisions[version]

    def __iter__(self):
        return iter(self._revisions)

    def __repr__(self) -> str:
        return f"RevisionChain(schema_version={self.schema_version})"


async def resolve(value: MaybeAwaitable) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> List[Any]:
    """Await all ``awaitables`` concurrently, in order.

    If one fails the others are cancelled and awaited before the error is
    re-raised, so nothing keeps running after the caller has failed.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
