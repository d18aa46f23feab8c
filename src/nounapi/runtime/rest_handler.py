"""
REST request handling.

Request pipeline (each stage may short-circuit):

1. OPTIONS preflight -> 204 with CORS headers (when CORS is configured)
2. Authentication -> 401 UNAUTHORIZED
3. Route lookup -> 404 NOT_FOUND
4. Rate limiting -> 429 RATE_LIMIT_EXCEEDED
5. ``before`` middleware
6. Operation dispatch (list/get/create/update/delete/verb)
7. ``after`` hooks

Client errors come back as APIResponse values and nothing raised after
authentication escapes ``handle_request``. An unexpected exception from a
middleware or after hook becomes a 500 INTERNAL_ERROR.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from nounapi.runtime.auth import AuthResult, extract_and_validate_api_key, get_cors_headers
from nounapi.runtime.errors import ErrorCode, OperationError, error_body
from nounapi.runtime.logging import get_logger
from nounapi.runtime.operations import NounOperations
from nounapi.runtime.rate_limit import RateLimiterRegistry
from nounapi.runtime.routing import EndpointRegistry, RESTEndpoint
from nounapi.runtime.transport import APIRequest, APIResponse
from nounapi.runtime.validation import coerce_query_value
from nounapi.specs.config import APIConfig, APIKeyValidationResult, DeprecationNotice, RateLimitRule

logger = get_logger("REST")

DEFAULT_LIMIT = 20
PREFLIGHT_ALLOW_HEADERS = "Content-Type, X-API-Key, Authorization"

_PAGINATION_KEYS = frozenset({"limit", "offset"})


# =============================================================================
# Middleware
# =============================================================================


@dataclass
class MiddlewareContext:
    """
    State handed to middleware and after-hooks.

    ``state`` is free-form storage shared between middleware of one request.
    """

    request: APIRequest
    endpoint: RESTEndpoint | None = None
    params: dict[str, str] = field(default_factory=dict)
    api_key: APIKeyValidationResult | None = None
    deprecation: DeprecationNotice | None = None
    state: dict[str, Any] = field(default_factory=dict)


@dataclass
class MiddlewareResult:
    """
    Returned by ``before`` middleware.

    ``proceed=False`` with a ``response`` short-circuits the request; without
    a response it only skips the remaining middleware.
    """

    proceed: bool = True
    response: APIResponse | None = None


BeforeMiddleware = Callable[[MiddlewareContext], Any]
AfterHook = Callable[[MiddlewareContext, APIResponse], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def deprecation_headers(notice: DeprecationNotice) -> dict[str, str]:
    """Response headers announcing a deprecated endpoint."""
    if not notice.deprecated:
        return {}

    headers = {"Deprecation": "true"}
    if notice.sunset_date:
        headers["Sunset"] = notice.sunset_date

    message = notice.message or "This endpoint is deprecated"
    if notice.alternative:
        message = f"{message}; use {notice.alternative} instead"
    headers["Warning"] = f'299 - "{message}"'

    if notice.migration_guide:
        headers["Link"] = f'<{notice.migration_guide}>; rel="deprecation"'
    return headers


def client_key(request: APIRequest, auth: AuthResult) -> str:
    """
    Identity used to bucket rate limit counters.

    Preference: validated key id, raw API key, first X-Forwarded-For hop.
    """
    if auth.key_info is not None and auth.key_info.key_id:
        return auth.key_info.key_id
    if auth.api_key:
        return auth.api_key
    forwarded = request.header("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return "anonymous"


class _BadQuery(Exception):
    pass


def _parse_int_param(query: Mapping[str, str], name: str, default: int) -> int:
    raw = query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise _BadQuery(name) from e
    return max(0, value)


# =============================================================================
# Handler
# =============================================================================


class RESTHandler:
    """
    Serves the REST endpoint table derived from the configured nouns.

    Example:
        handler = RESTHandler(config, operations, limiters)
        response = await handler.handle_request(APIRequest("GET", "/todos"))
    """

    def __init__(
        self,
        config: APIConfig,
        operations: NounOperations,
        rate_limiters: RateLimiterRegistry,
    ):
        self.config = config
        self.operations = operations
        self.rate_limiters = rate_limiters
        self.endpoints = EndpointRegistry(config.nouns, config.verbs)
        self._cors_headers = get_cors_headers(config.cors)
        self._before: list[BeforeMiddleware] = list(config.middleware.before)
        self._after: list[AfterHook] = list(config.middleware.after)

    def get_endpoint(self, method: str, path_pattern: str) -> RESTEndpoint | None:
        return self.endpoints.get(method, path_pattern)

    def get_rate_limit_config(self, endpoint: str) -> RateLimitRule:
        return self.rate_limiters.rule_for(endpoint)

    def add_middleware(self, middleware: BeforeMiddleware) -> None:
        self._before.append(middleware)

    def add_post_hook(self, hook: AfterHook) -> None:
        self._after.append(hook)

    def get_deprecation_notice(self, endpoint_key: str) -> DeprecationNotice | None:
        return self.config.deprecated_endpoints.get(endpoint_key)

    def _error(
        self,
        request: APIRequest,
        status: int,
        message: str,
        code: ErrorCode,
        headers: dict[str, str] | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> APIResponse:
        return APIResponse(
            status=status,
            body=error_body(message, code, request.request_id, details),
            headers=dict(headers if headers is not None else self._cors_headers),
        )

    async def handle_request(self, request: APIRequest) -> APIResponse:
        """Run a request through the pipeline and return the response."""
        context = MiddlewareContext(request=request)
        response = await self._handle(request, context)

        for hook in self._after:
            try:
                replacement = await _maybe_await(hook(context, response))
            except Exception:
                logger.exception("After hook failed for %s %s", request.method, request.path)
                response = self._error(
                    request, 500, "Internal server error", ErrorCode.INTERNAL_ERROR
                )
                break
            if isinstance(replacement, APIResponse):
                response = replacement

        logger.debug("%s %s -> %s", request.method, request.path, response.status)
        return response

    async def _handle(self, request: APIRequest, context: MiddlewareContext) -> APIResponse:
        cors_headers = self._cors_headers

        if request.method == "OPTIONS" and self.config.cors is not None:
            return APIResponse(
                status=204,
                body=None,
                headers={**cors_headers, "Access-Control-Allow-Headers": PREFLIGHT_ALLOW_HEADERS},
            )

        auth = await extract_and_validate_api_key(request, self.config.authentication)
        if not auth.valid:
            logger.info("Rejected %s %s: %s", request.method, request.path, auth.message)
            return self._error(request, 401, auth.message, ErrorCode.UNAUTHORIZED)
        context.api_key = auth.key_info

        found = self.endpoints.find(request.method, request.path)
        if found is None:
            return self._error(request, 404, "Not found", ErrorCode.NOT_FOUND)
        endpoint, params = found
        context.endpoint = endpoint
        context.params = params

        headers = dict(cors_headers)
        limiter = self.rate_limiters.resolve(endpoint.key, auth.tier)
        if limiter is not None:
            check = limiter.check(client_key(request, auth))
            headers.update(check.headers())
            if not check.allowed:
                logger.info("Rate limit exceeded for %s", endpoint.key)
                return self._error(
                    request, 429, "Rate limit exceeded", ErrorCode.RATE_LIMIT_EXCEEDED, headers
                )

        notice = self.get_deprecation_notice(endpoint.key)
        if notice is not None:
            context.deprecation = notice
            headers.update(deprecation_headers(notice))

        try:
            for middleware in self._before:
                result = await _maybe_await(middleware(context))
                if isinstance(result, APIResponse):
                    return result
                if isinstance(result, MiddlewareResult) and not result.proceed:
                    if result.response is None:
                        logger.warning("Middleware stopped %s without a response", endpoint.key)
                        break
                    return result.response

            return await self._dispatch(request, endpoint, params, auth, headers)
        except OperationError as e:
            return self._error(request, e.status, e.message, e.code, headers, e.details)
        except Exception:
            logger.exception("Unhandled error for %s %s", request.method, request.path)
            return self._error(
                request, 500, "Internal server error", ErrorCode.INTERNAL_ERROR, headers
            )

    async def _dispatch(
        self,
        request: APIRequest,
        endpoint: RESTEndpoint,
        params: dict[str, str],
        auth: AuthResult,
        headers: dict[str, str],
    ) -> APIResponse:
        ops = self.operations
        noun = endpoint.noun

        if endpoint.operation == "list":
            return self._list(request, noun, headers)
        if endpoint.operation == "get":
            return APIResponse(200, ops.get(noun, params["id"]), headers)
        if endpoint.operation == "create":
            return APIResponse(201, ops.create(noun, request.body), headers)
        if endpoint.operation == "update":
            return APIResponse(200, ops.update(noun, params["id"], request.body), headers)
        if endpoint.operation == "delete":
            ops.delete(noun, params["id"])
            return APIResponse(204, None, headers)

        assert endpoint.verb is not None
        record = await ops.run_verb(
            noun, params["id"], endpoint.verb, request.body, api_key=auth.key_info
        )
        return APIResponse(200, record, headers)

    def _list(self, request: APIRequest, noun: str, headers: dict[str, str]) -> APIResponse:
        try:
            limit = _parse_int_param(request.query, "limit", DEFAULT_LIMIT)
            offset = _parse_int_param(request.query, "offset", 0)
        except _BadQuery as e:
            return self._error(
                request,
                400,
                "Validation error",
                ErrorCode.VALIDATION_ERROR,
                headers,
                [{"field": str(e), "message": f"{e} must be an integer"}],
            )

        spec = self.operations.nouns[noun]
        filter = {
            key: coerce_query_value(value, spec.fields[key])
            for key, value in request.query.items()
            if key not in _PAGINATION_KEYS and key in spec.fields
        }

        data = self.operations.list(noun, filter=filter, limit=limit, offset=offset)
        total = self.operations.count(noun, filter)
        return APIResponse(
            200,
            {"data": data, "pagination": {"limit": limit, "offset": offset, "total": total}},
            headers,
        )
