"""
GraphQL execution against the shared noun operations.

Each top-level selection is matched by name against the derived schema and
dispatched to the same NounOperations the REST surface uses, so a
``createTodo`` mutation and ``POST /todos`` store identical records and emit
identical events.

Selections that match nothing are simply absent from ``data``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nounapi.graphql.parser import Selection, parse_graphql
from nounapi.graphql.schema_generator import GraphQLOperation, GraphQLSchema, build_graphql_schema
from nounapi.runtime.errors import ErrorCode, OperationError
from nounapi.runtime.event_bus import EventCallback, UnsubscribeFn
from nounapi.runtime.logging import get_logger
from nounapi.runtime.operations import NounOperations

logger = get_logger("GraphQL")


@dataclass
class GraphQLRequest:
    query: str
    variables: dict[str, Any] | None = None
    operation_name: str | None = None


@dataclass
class GraphQLResponse:
    """``{data?, errors?}``; errors are ``{"message": ...}`` objects."""

    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.data is not None:
            body["data"] = self.data
        if self.errors:
            body["errors"] = self.errors
        return body


@dataclass
class _Execution:
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def fail(self, selection: Selection, error: OperationError) -> None:
        self.data[selection.name] = None
        entry: dict[str, Any] = {"message": error.message, "path": [selection.name]}
        extensions: dict[str, Any] = {"code": error.code.value}
        if error.details:
            extensions["details"] = error.details
        entry["extensions"] = extensions
        self.errors.append(entry)


class GraphQLHandler:
    """
    Executes restricted GraphQL queries and mutations.

    Example:
        handler = GraphQLHandler(operations)
        response = await handler.execute(GraphQLRequest(query="{ todos { id } }"))
    """

    def __init__(self, operations: NounOperations):
        self.operations = operations
        definitions = {
            name: {field_name: ftype.raw for field_name, ftype in spec.fields.items()}
            for name, spec in operations.nouns.items()
        }
        self._schema = build_graphql_schema(definitions, operations.verbs)

    def get_schema(self) -> GraphQLSchema:
        return self._schema

    def subscribe(
        self,
        event: str,
        callback: EventCallback,
        filter: Mapping[str, Any] | None = None,
    ) -> UnsubscribeFn:
        """Register an event listener; a thin pass-through to the event bus."""
        return self.operations.events.on(event, callback, filter)

    async def execute(self, request: GraphQLRequest | Mapping[str, Any] | str) -> GraphQLResponse:
        """
        Execute a query or mutation.

        Malformed queries produce ``data == {}``. Client errors in mutations
        leave the selection null and add an entry to ``errors``.
        """
        query = _query_text(request)
        parsed = parse_graphql(query)
        execution = _Execution()

        table: dict[str, GraphQLOperation]
        if parsed.operation_type == "query":
            table = self._schema.queries
        elif parsed.operation_type == "mutation":
            table = self._schema.mutations
        else:
            # Subscriptions are served through subscribe(), not execute()
            table = {}

        for selection in parsed.selections:
            operation = table.get(selection.name)
            if operation is None:
                continue
            try:
                execution.data[selection.name] = await self._run(operation, selection.args)
            except OperationError as e:
                if e.code == ErrorCode.NOT_FOUND:
                    execution.data[selection.name] = False if operation.action == "delete" else None
                else:
                    execution.fail(selection, e)
            except Exception:
                logger.exception("GraphQL selection %s failed", selection.name)
                execution.fail(
                    selection, OperationError(ErrorCode.INTERNAL_ERROR, "Internal server error")
                )

        return GraphQLResponse(data=execution.data, errors=execution.errors or None)

    async def _run(self, operation: GraphQLOperation, args: dict[str, Any]) -> Any:
        ops = self.operations
        noun = operation.noun
        action = operation.action

        if action == "list":
            filter = args.get("filter")
            return ops.list(
                noun,
                filter=filter if isinstance(filter, Mapping) else None,
                limit=_as_int(args.get("limit")),
                offset=_as_int(args.get("offset")) or 0,
            )
        if action == "get":
            record_id = args.get("id")
            if not isinstance(record_id, str):
                return None
            return ops.storage.get(noun, record_id)

        if action == "create":
            return ops.create(noun, args.get("input", {}))
        if action == "update":
            return ops.update(noun, _require_id(args), args.get("input", {}))
        if action == "delete":
            ops.delete(noun, _require_id(args))
            return True

        assert operation.verb is not None
        return await ops.run_verb(noun, _require_id(args), operation.verb, args.get("input"))


def _query_text(request: GraphQLRequest | Mapping[str, Any] | str) -> str:
    if isinstance(request, GraphQLRequest):
        return request.query
    if isinstance(request, Mapping):
        query = request.get("query")
        return query if isinstance(query, str) else ""
    return request


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _require_id(args: Mapping[str, Any]) -> str:
    record_id = args.get("id")
    if record_id is None:
        raise OperationError(ErrorCode.NOT_FOUND, "Not found")
    return str(record_id)
