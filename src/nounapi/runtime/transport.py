"""
Transport-neutral request and response types.

The REST handler consumes APIRequest and returns APIResponse; the FastAPI
adapter in ``nounapi.runtime.server`` translates to and from HTTP.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def get_header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


@dataclass
class APIRequest:
    """An inbound REST request."""

    method: str
    path: str
    query: dict[str, str] = field(default_factory=dict)
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def header(self, name: str) -> str | None:
        return get_header(self.headers, name)

    @property
    def request_id(self) -> str | None:
        return self.header("X-Request-ID")


@dataclass
class APIResponse:
    """A REST response: status, JSON-compatible body and headers."""

    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
