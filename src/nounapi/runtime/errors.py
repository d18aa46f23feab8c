"""
Error types and wire error bodies for nounapi.

Configuration mistakes raise; client errors are turned into structured
responses carrying one of the machine-readable ``ErrorCode`` values.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Machine-readable error codes returned in error bodies."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE = "DUPLICATE"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VERB_NOT_FOUND = "VERB_NOT_FOUND"


# HTTP status for each code
STATUS_FOR_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.DUPLICATE: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.VERB_NOT_FOUND: 404,
}


class NounAPIError(Exception):
    """Base class for errors raised by nounapi."""


class ConfigurationError(NounAPIError):
    """Raised when the engine configuration is invalid."""


class UnknownNounError(NounAPIError):
    """Raised when writing to a noun that was never registered."""

    def __init__(self, noun: str):
        self.noun = noun
        super().__init__(f"Unknown noun: {noun}")


def error_body(
    message: str,
    code: ErrorCode,
    request_id: str | None = None,
    details: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Build an error response body.

    Args:
        message: Human-readable error message
        code: Machine-readable error code
        request_id: Echo of the caller's X-Request-ID, if any
        details: Field-level details (validation errors)

    Returns:
        ``{"error", "code", "details"?, "requestId"?}``
    """
    body: dict[str, Any] = {"error": message, "code": code.value}
    if details is not None:
        body["details"] = details
    if request_id is not None:
        body["requestId"] = request_id
    return body


class OperationError(NounAPIError):
    """
    A client error raised by a noun operation.

    REST turns it into an error response, GraphQL into an ``errors`` entry.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: list[dict[str, Any]] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def status(self) -> int:
        return STATUS_FOR_CODE[self.code]
