"""
API key authentication and CORS headers.

Key extraction priority:
1. ``X-API-Key`` header
2. ``Authorization: Bearer <token>`` header
3. ``api_key`` query parameter (only when ``allow_query_param`` is set)

Without a ``validate_key`` callback any non-empty key is accepted and a tier
is read from the ``{tier}_key_...`` prefix convention (``pro_key_abc`` ->
``pro``).
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from nounapi.runtime.routing import match_path
from nounapi.runtime.transport import APIRequest
from nounapi.specs.config import APIKeyValidationResult, AuthConfig, CORSConfig

logger = logging.getLogger(__name__)

DEFAULT_CORS_METHODS = "GET, POST, PUT, DELETE, OPTIONS"

_TIER_PREFIX = re.compile(r"^(\w+)_key_")
_BASE_PATH = re.compile(r"^(/[^/]+)")


@dataclass(frozen=True)
class AuthResult:
    """Outcome of authenticating a request."""

    valid: bool
    key_info: APIKeyValidationResult | None = None
    reason: Literal["missing", "invalid"] | None = None
    api_key: str | None = None

    @property
    def tier(self) -> str | None:
        return self.key_info.tier if self.key_info else None

    @property
    def message(self) -> str:
        return "Invalid API key" if self.reason == "invalid" else "API key required"


def is_public_endpoint(request: APIRequest, public_endpoints: list[str]) -> bool:
    """
    Check the public-endpoint allowlist.

    Entries are ``"METHOD /path"``; paths may use ``{id}`` or ``:id``
    templates. An entry for a base path (``"GET /todos"``) also covers
    requests whose first path segment matches it.
    """
    for entry in public_endpoints:
        parts = entry.split(" ")
        if len(parts) != 2:
            continue
        method, path = parts
        if method.upper() != request.method:
            continue
        pattern = re.sub(r"\{(\w+)\}", r":\1", path)
        if match_path(pattern, request.path).match:
            return True

    base = _BASE_PATH.match(request.path)
    if base and f"{request.method} {base.group(1)}" in public_endpoints:
        return True
    return False


def extract_api_key(request: APIRequest, allow_query_param: bool = False) -> str | None:
    """Extract a candidate API key from headers or, if allowed, the query string."""
    header_key = request.header("X-API-Key")
    if header_key:
        return header_key

    authorization = request.header("Authorization")
    if authorization:
        if authorization.startswith("Bearer "):
            return authorization[len("Bearer ") :].strip() or None
        return None

    if allow_query_param:
        return request.query.get("api_key") or None
    return None


def parse_tier(api_key: str) -> str | None:
    """Read the tier from a ``{tier}_key_...`` key, if it follows the convention."""
    match = _TIER_PREFIX.match(api_key)
    return match.group(1) if match else None


async def extract_and_validate_api_key(
    request: APIRequest,
    auth: AuthConfig | None,
) -> AuthResult:
    """
    Authenticate a request.

    Args:
        request: Incoming request
        auth: Authentication config (None or ``api_keys=False`` disables auth)

    Returns:
        AuthResult; ``reason`` is "missing" or "invalid" on failure
    """
    if auth is None or not auth.api_keys:
        return AuthResult(valid=True)

    if is_public_endpoint(request, auth.public_endpoints):
        return AuthResult(valid=True)

    api_key = extract_api_key(request, auth.allow_query_param)
    if not api_key:
        return AuthResult(valid=False, reason="missing")

    if auth.validate_key is not None:
        result: Any = auth.validate_key(api_key)
        if inspect.isawaitable(result):
            result = await result
        key_info = _coerce_validation_result(result)
        if not key_info.valid:
            logger.debug("Rejected API key for %s %s", request.method, request.path)
            return AuthResult(valid=False, reason="invalid", api_key=api_key)
        return AuthResult(valid=True, key_info=key_info, api_key=api_key)

    return AuthResult(
        valid=True,
        key_info=APIKeyValidationResult(valid=True, tier=parse_tier(api_key)),
        api_key=api_key,
    )


def _coerce_validation_result(result: Any) -> APIKeyValidationResult:
    if isinstance(result, APIKeyValidationResult):
        return result
    if isinstance(result, dict):
        return APIKeyValidationResult.model_validate(result)
    return APIKeyValidationResult(valid=bool(result))


def get_cors_headers(cors: CORSConfig | None) -> dict[str, str]:
    """Map CORS configuration to Access-Control-* headers (empty when unset)."""
    if cors is None:
        return {}

    headers = {
        "Access-Control-Allow-Origin": cors.origin,
        "Access-Control-Allow-Methods": ", ".join(cors.methods)
        if cors.methods
        else DEFAULT_CORS_METHODS,
    }
    if cors.allowed_headers:
        headers["Access-Control-Allow-Headers"] = ", ".join(cors.allowed_headers)
    if cors.exposed_headers:
        headers["Access-Control-Expose-Headers"] = ", ".join(cors.exposed_headers)
    if cors.credentials:
        headers["Access-Control-Allow-Credentials"] = "true"
    if cors.max_age is not None:
        headers["Access-Control-Max-Age"] = str(cors.max_age)
    return headers
