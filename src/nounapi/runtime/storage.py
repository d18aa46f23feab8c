"""
In-memory storage for nounapi.

One keyed record map per registered noun, created once at engine
construction. Records are plain dicts with an immutable ``id``.

Only ``create`` against an unregistered noun is an error; every read-style
call on an unknown noun returns an empty result instead.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from typing import Any
from uuid import uuid4

from nounapi.core.matching import matches_filter
from nounapi.runtime.errors import UnknownNounError

StorageRecord = dict[str, Any]

# Alias to keep `list` usable inside InMemoryStorage, which defines list()
_list = list


def generate_id() -> str:
    """Generate a unique record identifier."""
    return str(uuid4())


class InMemoryStorage:
    """
    Per-noun record store.

    Provides create, insert, get, update, delete, list and count. A single lock
    guards the maps so the store stays consistent when used from threads.

    Example:
        storage = InMemoryStorage(["Todo"])
        storage.create("Todo", {"id": "1", "title": "Write tests"})
        storage.list("Todo", filter={"title": "Write tests"})
    """

    def __init__(self, nouns: Iterable[str]):
        self._data: dict[str, dict[str, StorageRecord]] = {noun: {} for noun in nouns}
        self._lock = threading.Lock()

    @property
    def nouns(self) -> list[str]:
        return _list(self._data)

    def create(self, noun: str, record: Mapping[str, Any]) -> StorageRecord:
        """
        Insert (or overwrite) a record keyed by its ``id``.

        Raises:
            UnknownNounError: If the noun was never registered
        """
        store = self._data.get(noun)
        if store is None:
            raise UnknownNounError(noun)
        stored = dict(record)
        with self._lock:
            store[stored["id"]] = stored
        return dict(stored)

    def insert(self, noun: str, record: Mapping[str, Any]) -> StorageRecord | None:
        """
        Insert a record only if its ``id`` is not already taken.

        The existence check and the write happen under one lock, so two
        concurrent inserts of the same id cannot both succeed.

        Returns:
            The stored record, or None when the id already exists

        Raises:
            UnknownNounError: If the noun was never registered
        """
        store = self._data.get(noun)
        if store is None:
            raise UnknownNounError(noun)
        stored = dict(record)
        with self._lock:
            if stored["id"] in store:
                return None
            store[stored["id"]] = stored
        return dict(stored)

    def get(self, noun: str, id: str) -> StorageRecord | None:
        store = self._data.get(noun)
        if store is None:
            return None
        record = store.get(id)
        return dict(record) if record is not None else None

    def has(self, noun: str, id: str) -> bool:
        store = self._data.get(noun)
        return store is not None and id in store

    def update(self, noun: str, id: str, data: Mapping[str, Any]) -> StorageRecord | None:
        """Merge ``data`` over the existing record; ``id`` cannot be changed."""
        store = self._data.get(noun)
        if store is None:
            return None
        with self._lock:
            existing = store.get(id)
            if existing is None:
                return None
            updated = {**existing, **data, "id": id}
            store[id] = updated
        return dict(updated)

    def delete(self, noun: str, id: str) -> bool:
        store = self._data.get(noun)
        if store is None:
            return False
        with self._lock:
            return store.pop(id, None) is not None

    def list(
        self,
        noun: str,
        filter: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> _list[StorageRecord]:
        """
        List records passing every filter equality, then slice.

        Offset is applied before limit; ``limit=None`` returns the whole tail.
        """
        store = self._data.get(noun)
        if store is None:
            return []
        with self._lock:
            records = [dict(r) for r in store.values() if matches_filter(r, filter)]

        start = max(0, offset or 0)
        end = None if limit is None else start + max(0, limit)
        return records[start:end]

    def count(self, noun: str, filter: Mapping[str, Any] | None = None) -> int:
        store = self._data.get(noun)
        if store is None:
            return 0
        if not filter:
            return len(store)
        with self._lock:
            return sum(1 for r in store.values() if matches_filter(r, filter))

    def clear(self) -> None:
        """Remove every record, keeping the registered nouns."""
        with self._lock:
            for store in self._data.values():
                store.clear()


# =============================================================================
# Verb Database Context
# =============================================================================


class NounAccessor:
    """
    Async storage handle for a single noun, handed to verb handlers.

    Methods are coroutines so handlers can ``await`` them, and a sync handler
    may simply return one (``lambda ctx: ctx.db["Todo"].update(...)``).
    """

    def __init__(self, storage: InMemoryStorage, noun: str):
        self._storage = storage
        self.noun = noun

    async def get(self, id: str) -> StorageRecord | None:
        return self._storage.get(self.noun, id)

    async def create(self, data: Mapping[str, Any]) -> StorageRecord:
        record = dict(data)
        record["id"] = record.get("id") or generate_id()
        return self._storage.create(self.noun, record)

    async def update(self, id: str, data: Mapping[str, Any]) -> StorageRecord | None:
        return self._storage.update(self.noun, id, data)

    async def delete(self, id: str) -> bool:
        return self._storage.delete(self.noun, id)

    async def list(
        self, limit: int | None = None, offset: int = 0
    ) -> _list[StorageRecord]:
        return self._storage.list(self.noun, limit=limit, offset=offset)

    async def find(self, filter: Mapping[str, Any]) -> _list[StorageRecord]:
        return self._storage.list(self.noun, filter=filter)


class DbContext:
    """
    Explicit map of noun name to NounAccessor, built once per engine.

    ``db["Todo"]`` raises KeyError for unknown nouns; ``db.accessor(name)``
    returns None instead.
    """

    def __init__(self, storage: InMemoryStorage, nouns: Iterable[str]):
        self._accessors: dict[str, NounAccessor] = {
            noun: NounAccessor(storage, noun) for noun in nouns
        }

    def accessor(self, noun: str) -> NounAccessor | None:
        return self._accessors.get(noun)

    def __getitem__(self, noun: str) -> NounAccessor:
        accessor = self._accessors.get(noun)
        if accessor is None:
            raise KeyError(f"Unknown noun: {noun}")
        return accessor

    def __contains__(self, noun: object) -> bool:
        return noun in self._accessors

    def __iter__(self) -> Iterator[str]:
        return iter(self._accessors)
