"""
REST endpoint registry.

Builds the endpoint table for every noun:

    GET    /{plural}             list
    POST   /{plural}             create
    GET    /{plural}/:id         get
    PUT    /{plural}/:id         update
    DELETE /{plural}/:id         delete
    POST   /{plural}/:id/{verb}  verb
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Literal

from nounapi.core.strings import pluralize

Operation = Literal["list", "get", "create", "update", "delete", "verb"]


@dataclass(frozen=True)
class PathMatch:
    match: bool
    params: dict[str, str] = field(default_factory=dict)


_NO_MATCH = PathMatch(match=False)


def match_path(pattern: str, actual: str) -> PathMatch:
    """
    Match a path against a pattern with ``:param`` segments.

    Segment counts must be equal; literal segments must be identical.

    >>> match_path("/todos/:id", "/todos/42").params
    {'id': '42'}
    >>> match_path("/todos/:id", "/todos").match
    False
    """
    pattern_parts = pattern.split("/")
    actual_parts = actual.split("/")
    if len(pattern_parts) != len(actual_parts):
        return _NO_MATCH

    params: dict[str, str] = {}
    for expected, value in zip(pattern_parts, actual_parts):
        if expected.startswith(":"):
            params[expected[1:]] = value
        elif expected != value:
            return _NO_MATCH
    return PathMatch(match=True, params=params)


@dataclass(frozen=True)
class RESTEndpoint:
    """A registered REST endpoint."""

    method: str
    path: str
    noun: str
    operation: Operation
    verb: str | None = None

    @property
    def key(self) -> str:
        """The ``"METHOD /path"`` key used by rate limit and deprecation config."""
        return f"{self.method} {self.path}"


class EndpointRegistry:
    """Endpoint table derived from noun and verb names."""

    def __init__(self, nouns: Iterable[str], verbs: Mapping[str, Iterable[str]] | None = None):
        self._endpoints: dict[str, RESTEndpoint] = {}
        verbs = verbs or {}

        for noun in nouns:
            plural_path = f"/{pluralize(noun)}"
            item_path = f"{plural_path}/:id"

            self._add(RESTEndpoint("GET", plural_path, noun, "list"))
            self._add(RESTEndpoint("POST", plural_path, noun, "create"))
            self._add(RESTEndpoint("GET", item_path, noun, "get"))
            self._add(RESTEndpoint("PUT", item_path, noun, "update"))
            self._add(RESTEndpoint("DELETE", item_path, noun, "delete"))

            for verb in verbs.get(noun, ()):
                self._add(RESTEndpoint("POST", f"{item_path}/{verb}", noun, "verb", verb))

    def _add(self, endpoint: RESTEndpoint) -> None:
        self._endpoints[endpoint.key] = endpoint

    def __iter__(self) -> Iterator[RESTEndpoint]:
        return iter(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)

    def get(self, method: str, pattern: str) -> RESTEndpoint | None:
        """Look up an endpoint by method and exact path pattern (e.g. "/todos/:id")."""
        return self._endpoints.get(f"{method.upper()} {pattern}")

    def find(self, method: str, path: str) -> tuple[RESTEndpoint, dict[str, str]] | None:
        """Find the endpoint serving a concrete request path."""
        method = method.upper()
        for endpoint in self._endpoints.values():
            if endpoint.method != method:
                continue
            result = match_path(endpoint.path, path)
            if result.match:
                return endpoint, result.params
        return None
