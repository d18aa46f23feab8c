"""
Noun operations shared by the REST and GraphQL surfaces.

Both surfaces call the same create/update/delete/verb code so that identical
input produces identical stored records and identical event payloads
regardless of protocol. Client errors are raised as OperationError and
converted by each surface.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from nounapi.core.strings import crud_event_name, verb_event_name
from nounapi.runtime.errors import ErrorCode, OperationError
from nounapi.runtime.event_bus import EventBus
from nounapi.runtime.storage import DbContext, InMemoryStorage, StorageRecord, generate_id
from nounapi.runtime.validation import validate_body
from nounapi.specs.config import APIKeyValidationResult
from nounapi.specs.noun import NounSpec, VerbDefinitions

logger = logging.getLogger(__name__)

# Alias to keep `list` usable inside NounOperations, which defines list()
_list = list


@dataclass(frozen=True)
class VerbContext:
    """
    Argument passed to verb handlers.

    Attributes:
        id: Target record id
        input: Request body (REST) or ``input`` argument (GraphQL)
        db: Per-noun storage accessors
        api_key: Validated key info of the caller, if any
    """

    id: str
    input: Any
    db: DbContext
    api_key: APIKeyValidationResult | None = None


async def _maybe_await(value: Any) -> Any:
    """Await a value if it's awaitable, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value


def _not_found(noun: str) -> OperationError:
    return OperationError(ErrorCode.NOT_FOUND, f"{noun} not found")


class NounOperations:
    """
    CRUD and verb execution against storage, with event emission.

    Example:
        ops = NounOperations(nouns, verbs, storage, events, db)
        record = ops.create("Todo", {"title": "Write docs"})
        await ops.run_verb("Todo", record["id"], "complete", {})
    """

    def __init__(
        self,
        nouns: Mapping[str, NounSpec],
        verbs: VerbDefinitions,
        storage: InMemoryStorage,
        events: EventBus,
        db: DbContext,
    ):
        self.nouns = nouns
        self.verbs = verbs
        self.storage = storage
        self.events = events
        self.db = db

    def _noun(self, noun: str) -> NounSpec:
        spec = self.nouns.get(noun)
        if spec is None:
            raise OperationError(ErrorCode.NOT_FOUND, "Not found")
        return spec

    def _validate(self, spec: NounSpec, body: Any, is_update: bool) -> None:
        errors = validate_body(spec, body, is_update=is_update)
        if errors:
            raise OperationError(
                ErrorCode.VALIDATION_ERROR,
                "Validation error",
                details=[e.to_dict() for e in errors],
            )

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, noun: str, id: str) -> StorageRecord:
        record = self.storage.get(noun, id)
        if record is None:
            raise _not_found(noun)
        return record

    def list(
        self,
        noun: str,
        filter: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> _list[StorageRecord]:
        return self.storage.list(noun, filter=filter or None, limit=limit, offset=offset)

    def count(self, noun: str, filter: Mapping[str, Any] | None = None) -> int:
        return self.storage.count(noun, filter or None)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, noun: str, body: Any) -> StorageRecord:
        """
        Validate and store a new record, then emit ``{noun}Created``.

        Raises:
            OperationError: VALIDATION_ERROR for a bad body, DUPLICATE when a
                client-supplied id already exists
        """
        spec = self._noun(noun)
        self._validate(spec, body, is_update=False)

        record_id = body.get("id") or generate_id()
        record = self.storage.insert(noun, {**body, "id": record_id})
        if record is None:
            raise OperationError(ErrorCode.DUPLICATE, f"{noun} with id {record_id} already exists")

        self.events.emit(crud_event_name(noun, "Created"), record)
        logger.debug("Created %s %s", noun, record_id)
        return record

    def update(self, noun: str, id: str, body: Any) -> StorageRecord:
        """
        Merge a partial body into an existing record, then emit ``{noun}Updated``.

        The existence check runs before validation.
        """
        spec = self._noun(noun)
        if not self.storage.has(noun, id):
            raise _not_found(noun)
        self._validate(spec, body, is_update=True)

        updated = self.storage.update(noun, id, body)
        if updated is None:
            raise _not_found(noun)
        self.events.emit(crud_event_name(noun, "Updated"), updated)
        return updated

    def delete(self, noun: str, id: str) -> None:
        """Remove a record and emit ``{noun}Deleted`` with ``{"id": id}``."""
        if not self.storage.delete(noun, id):
            raise _not_found(noun)
        self.events.emit(crud_event_name(noun, "Deleted"), {"id": id})

    async def run_verb(
        self,
        noun: str,
        id: str,
        verb: str,
        input: Any = None,
        api_key: APIKeyValidationResult | None = None,
    ) -> StorageRecord | None:
        """
        Run a custom verb against a record.

        The handler mutates storage itself; afterwards the record is re-read
        and a past-tense event (``todoCompleted``) is emitted with it.

        Raises:
            OperationError: NOT_FOUND / VERB_NOT_FOUND, or INTERNAL_ERROR if
                the handler raised (its exception is logged, not exposed)
        """
        if not self.storage.has(noun, id):
            raise _not_found(noun)

        handler = self.verbs.get(noun, {}).get(verb)
        if handler is None:
            raise OperationError(ErrorCode.VERB_NOT_FOUND, f"Verb {verb} not found")

        context = VerbContext(id=id, input=input, db=self.db, api_key=api_key)
        try:
            await _maybe_await(handler(context))
        except Exception as e:
            logger.exception("Verb %s.%s failed for %s", noun, verb, id)
            raise OperationError(ErrorCode.INTERNAL_ERROR, "Internal server error") from e

        updated = self.storage.get(noun, id)
        self.events.emit(verb_event_name(noun, verb), updated or {"id": id})
        return updated
