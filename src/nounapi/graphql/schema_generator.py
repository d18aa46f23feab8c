"""
GraphQL schema derivation.

Mirrors the REST endpoint table for every noun (Todo shown):

    queries        todos: [Todo]          todo: Todo
    mutations      createTodo / updateTodo: Todo, deleteTodo: Boolean
                   {verb}Todo: Todo per custom verb
    subscriptions  todoCreated / todoUpdated / todoDeleted
                   todo{PastTense} per custom verb (todoCompleted)

``build_graphql_schema`` returns the operation tables the executor matches
against; ``generate_schema_sdl`` renders the same schema as SDL text for
documentation.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from nounapi.core.strings import (
    crud_event_name,
    pluralize,
    singularize,
    verb_event_name,
)
from nounapi.runtime.validation import map_field_type_to_graphql
from nounapi.specs.noun import NounDefinitions, NounSpec, VerbDefinitions, build_noun_specs


class GraphQLOperation(BaseModel):
    """A query, mutation or subscription entry."""

    name: str
    return_type: str
    noun: str
    action: str = Field(description="list, get, create, update, delete, verb or event")
    verb: str | None = None

    model_config = ConfigDict(frozen=True)


class GraphQLSchema(BaseModel):
    """
    Derived GraphQL schema.

    ``types`` maps each noun to ``{"id": "ID", **declared field tokens}``.
    """

    queries: dict[str, GraphQLOperation] = Field(default_factory=dict)
    mutations: dict[str, GraphQLOperation] = Field(default_factory=dict)
    subscriptions: dict[str, GraphQLOperation] = Field(default_factory=dict)
    types: dict[str, dict[str, str]] = Field(default_factory=dict)


def build_graphql_schema(
    nouns: NounDefinitions,
    verbs: VerbDefinitions | None = None,
) -> GraphQLSchema:
    """
    Build the GraphQL schema for the declared nouns and verbs.

    Args:
        nouns: Noun name -> field name -> type token
        verbs: Noun name -> verb name -> handler

    Returns:
        GraphQLSchema with queries, mutations, subscriptions and types
    """
    verbs = verbs or {}
    schema = GraphQLSchema()

    for noun, definition in nouns.items():
        plural = pluralize(noun)
        singular = singularize(noun)

        schema.types[noun] = {"id": "ID", **definition}

        schema.queries[plural] = GraphQLOperation(
            name=plural, return_type=f"[{noun}]", noun=noun, action="list"
        )
        schema.queries[singular] = GraphQLOperation(
            name=singular, return_type=noun, noun=noun, action="get"
        )

        for action, return_type in (("create", noun), ("update", noun), ("delete", "Boolean")):
            name = f"{action}{noun}"
            schema.mutations[name] = GraphQLOperation(
                name=name, return_type=return_type, noun=noun, action=action
            )

        for suffix in ("Created", "Updated", "Deleted"):
            event = crud_event_name(noun, suffix)
            schema.subscriptions[event] = GraphQLOperation(
                name=event, return_type=noun, noun=noun, action="event"
            )

        for verb in verbs.get(noun, {}):
            name = f"{verb}{noun}"
            schema.mutations[name] = GraphQLOperation(
                name=name, return_type=noun, noun=noun, action="verb", verb=verb
            )
            event = verb_event_name(noun, verb)
            schema.subscriptions[event] = GraphQLOperation(
                name=event, return_type=noun, noun=noun, action="event", verb=verb
            )

    return schema


# =============================================================================
# SDL
# =============================================================================


def _object_type(spec: NounSpec) -> list[str]:
    lines = [f"type {spec.name} {{", "  id: ID!"]
    for name, ftype in spec.fields.items():
        lines.append(f"  {name}: {map_field_type_to_graphql(ftype)}")
    lines.append("}")
    return lines


def _input_type(spec: NounSpec, suffix: str, keep_required: bool) -> list[str]:
    lines = [f"input {spec.name}{suffix} {{", "  id: ID"]
    for name, ftype in spec.fields.items():
        type_ref = map_field_type_to_graphql(ftype, input=True)
        if not keep_required:
            type_ref = type_ref.rstrip("!")
        lines.append(f"  {name}: {type_ref}")
    lines.append("}")
    return lines


def generate_schema_sdl(
    nouns: Mapping[str, NounSpec] | NounDefinitions,
    verbs: VerbDefinitions | None = None,
) -> str:
    """
    Render the derived schema as GraphQL SDL.

    Accepts parsed NounSpecs or raw noun definitions.
    """
    verbs = verbs or {}
    specs: dict[str, NounSpec] = {}
    raw: dict[str, dict[str, str]] = {}
    for name, value in nouns.items():
        if isinstance(value, NounSpec):
            specs[name] = value
        else:
            raw[name] = dict(value)
    specs.update(build_noun_specs(raw))

    schema = build_graphql_schema(
        {name: {f: t.raw for f, t in spec.fields.items()} for name, spec in specs.items()},
        verbs,
    )

    blocks: list[list[str]] = []
    if any(verbs.get(name) for name in specs):
        blocks.append(["scalar JSON"])

    for spec in specs.values():
        blocks.append(_object_type(spec))
        blocks.append(_input_type(spec, "CreateInput", keep_required=True))
        blocks.append(_input_type(spec, "UpdateInput", keep_required=False))

    query_lines = ["type Query {"]
    for op in schema.queries.values():
        if op.action == "list":
            query_lines.append(f"  {op.name}(limit: Int, offset: Int): {op.return_type}")
        else:
            query_lines.append(f"  {op.name}(id: ID!): {op.return_type}")
    query_lines.append("}")
    blocks.append(query_lines)

    mutation_lines = ["type Mutation {"]
    for op in schema.mutations.values():
        if op.action == "create":
            args = f"input: {op.noun}CreateInput!"
        elif op.action == "update":
            args = f"id: ID!, input: {op.noun}UpdateInput!"
        elif op.action == "delete":
            args = "id: ID!"
        else:
            args = "id: ID!, input: JSON"
        mutation_lines.append(f"  {op.name}({args}): {op.return_type}")
    mutation_lines.append("}")
    blocks.append(mutation_lines)

    subscription_lines = ["type Subscription {"]
    for op in schema.subscriptions.values():
        subscription_lines.append(f"  {op.name}: {op.return_type}")
    subscription_lines.append("}")
    blocks.append(subscription_lines)

    return "\n\n".join("\n".join(block) for block in blocks) + "\n"
