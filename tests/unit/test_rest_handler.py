"""Tests for the REST request pipeline."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from nounapi import APIRequest, APIResponse, create_api_engine
from nounapi.engine import APIEngine
from nounapi.runtime.rest_handler import MiddlewareContext, MiddlewareResult, deprecation_headers
from nounapi.specs.config import DeprecationNotice


async def _create_todo(engine: APIEngine, **fields: Any) -> dict[str, Any]:
    response = await engine.handle_request(
        APIRequest("POST", "/todos", body={"title": "Write tests", **fields})
    )
    assert response.status == 201
    return response.body


class TestCrud:
    @pytest.mark.asyncio
    async def test_empty_list(self, engine: APIEngine) -> None:
        response = await engine.handle_request({"method": "GET", "path": "/todos"})
        assert response.status == 200
        assert response.body == {"data": [], "pagination": {"limit": 20, "offset": 0, "total": 0}}

    @pytest.mark.asyncio
    async def test_create_then_get(self, engine: APIEngine) -> None:
        created = await _create_todo(engine, completed=False)
        response = await engine.handle_request(APIRequest("GET", f"/todos/{created['id']}"))
        assert response.status == 200
        assert response.body == created

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, engine: APIEngine) -> None:
        response = await engine.handle_request(
            APIRequest("POST", "/todos", body={"title": "x", "bogus": 1})
        )
        assert response.status == 400
        assert response.body["code"] == "VALIDATION_ERROR"
        assert [d["field"] for d in response.body["details"]] == ["bogus"]
        listing = await engine.handle_request(APIRequest("GET", "/todos"))
        assert listing.body["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_id(self, engine: APIEngine) -> None:
        await _create_todo(engine, id="t1")
        response = await engine.handle_request(
            APIRequest("POST", "/todos", body={"id": "t1", "title": "again"})
        )
        assert response.status == 409
        assert response.body["code"] == "DUPLICATE"

    @pytest.mark.asyncio
    async def test_update(self, engine: APIEngine) -> None:
        created = await _create_todo(engine, completed=False)
        response = await engine.handle_request(
            APIRequest("PUT", f"/todos/{created['id']}", body={"completed": True})
        )
        assert response.status == 200
        assert response.body == {**created, "completed": True}

    @pytest.mark.asyncio
    async def test_update_missing(self, engine: APIEngine) -> None:
        response = await engine.handle_request(
            APIRequest("PUT", "/todos/nope", body={"completed": True})
        )
        assert response.status == 404
        assert response.body == {"error": "Todo not found", "code": "NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_delete_then_get(self, engine: APIEngine) -> None:
        created = await _create_todo(engine)
        deleted = await engine.handle_request(APIRequest("DELETE", f"/todos/{created['id']}"))
        assert deleted.status == 204
        assert deleted.body is None

        response = await engine.handle_request(APIRequest("GET", f"/todos/{created['id']}"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_unknown_route(self, engine: APIEngine) -> None:
        response = await engine.handle_request(APIRequest("GET", "/widgets"))
        assert response.status == 404
        assert response.body["error"] == "Not found"

    @pytest.mark.asyncio
    async def test_create_emits_event(self, engine: APIEngine) -> None:
        events: list[dict[str, Any]] = []
        engine.events.on("todoCreated", events.append)
        created = await _create_todo(engine)
        assert events == []
        await engine.events.drain()
        assert events == [created]


class TestListing:
    @pytest.mark.asyncio
    async def test_pagination(self, engine: APIEngine) -> None:
        for i in range(5):
            await _create_todo(engine, id=f"t{i}")
        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"limit": "2", "offset": "1"})
        )
        assert [r["id"] for r in response.body["data"]] == ["t1", "t2"]
        assert response.body["pagination"] == {"limit": 2, "offset": 1, "total": 5}

    @pytest.mark.asyncio
    async def test_filters_are_coerced(self, engine: APIEngine) -> None:
        await _create_todo(engine, id="done", completed=True, priority=2)
        await _create_todo(engine, id="open", completed=False, priority=1)

        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"completed": "true"})
        )
        assert [r["id"] for r in response.body["data"]] == ["done"]
        assert response.body["pagination"]["total"] == 1

        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"priority": "1"})
        )
        assert [r["id"] for r in response.body["data"]] == ["open"]

    @pytest.mark.asyncio
    async def test_unknown_query_keys_ignored(self, engine: APIEngine) -> None:
        await _create_todo(engine)
        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"sort": "title"})
        )
        assert response.body["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_bad_limit(self, engine: APIEngine) -> None:
        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"limit": "ten"})
        )
        assert response.status == 400
        assert response.body["details"] == [
            {"field": "limit", "message": "limit must be an integer"}
        ]

    @pytest.mark.asyncio
    async def test_negative_offset_clamped(self, engine: APIEngine) -> None:
        response = await engine.handle_request(
            APIRequest("GET", "/todos", query={"offset": "-3"})
        )
        assert response.body["pagination"]["offset"] == 0


class TestVerbs:
    @pytest.mark.asyncio
    async def test_verb_updates_and_emits(self, engine: APIEngine) -> None:
        events: list[dict[str, Any]] = []
        engine.events.on("todoCompleted", events.append)
        created = await _create_todo(engine, completed=False)

        response = await engine.handle_request(
            APIRequest("POST", f"/todos/{created['id']}/complete")
        )
        await engine.events.drain()

        assert response.status == 200
        assert response.body["completed"] is True
        assert events == [response.body]

    @pytest.mark.asyncio
    async def test_verb_on_missing_record(self, engine: APIEngine) -> None:
        response = await engine.handle_request(APIRequest("POST", "/todos/nope/complete"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_failing_verb_hides_details(self, engine: APIEngine) -> None:
        created = await _create_todo(engine)
        response = await engine.handle_request(
            APIRequest("POST", f"/todos/{created['id']}/explode")
        )
        assert response.status == 500
        assert response.body == {"error": "Internal server error", "code": "INTERNAL_ERROR"}

    @pytest.mark.asyncio
    async def test_undeclared_verb_route(self, engine: APIEngine) -> None:
        created = await _create_todo(engine)
        response = await engine.handle_request(APIRequest("POST", f"/todos/{created['id']}/fly"))
        assert response.status == 404


class TestAuthentication:
    @pytest.fixture
    def secured(self, todo_nouns: dict[str, dict[str, str]]) -> APIEngine:
        return create_api_engine(
            {
                "nouns": todo_nouns,
                "authentication": {
                    "apiKeys": True,
                    "validateKey": lambda key: key == "good-key",
                    "publicEndpoints": ["GET /todos"],
                },
            }
        )

    @pytest.mark.asyncio
    async def test_missing_key(self, secured: APIEngine) -> None:
        response = await secured.handle_request(APIRequest("POST", "/todos", body={"title": "x"}))
        assert response.status == 401
        assert response.body == {"error": "API key required", "code": "UNAUTHORIZED"}

    @pytest.mark.asyncio
    async def test_invalid_key(self, secured: APIEngine) -> None:
        response = await secured.handle_request(
            APIRequest("POST", "/todos", body={"title": "x"}, headers={"X-API-Key": "bad"})
        )
        assert response.status == 401
        assert response.body["error"] == "Invalid API key"

    @pytest.mark.asyncio
    async def test_valid_bearer(self, secured: APIEngine) -> None:
        response = await secured.handle_request(
            APIRequest(
                "POST",
                "/todos",
                body={"title": "x"},
                headers={"Authorization": "Bearer good-key"},
            )
        )
        assert response.status == 201

    @pytest.mark.asyncio
    async def test_public_endpoint(self, secured: APIEngine) -> None:
        response = await secured.handle_request(APIRequest("GET", "/todos"))
        assert response.status == 200

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, secured: APIEngine) -> None:
        response = await secured.handle_request(
            APIRequest("DELETE", "/todos/1", headers={"x-request-id": "req-42"})
        )
        assert response.body["requestId"] == "req-42"


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_global_limit(self, todo_nouns: dict[str, dict[str, str]]) -> None:
        engine = create_api_engine(
            {"nouns": todo_nouns, "rateLimiting": {"requests": 2, "window": "1m"}}
        )
        statuses = []
        for _ in range(3):
            response = await engine.handle_request(APIRequest("GET", "/todos"))
            statuses.append(response.status)

        assert statuses == [200, 200, 429]
        assert response.body["code"] == "RATE_LIMIT_EXCEEDED"
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self, todo_nouns: dict[str, dict[str, str]]) -> None:
        engine = create_api_engine(
            {"nouns": todo_nouns, "rateLimiting": {"requests": 1, "window": "1m"}}
        )
        first = await engine.handle_request(
            APIRequest("GET", "/todos", headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.9"})
        )
        second = await engine.handle_request(
            APIRequest("GET", "/todos", headers={"X-Forwarded-For": "10.0.0.2"})
        )
        again = await engine.handle_request(
            APIRequest("GET", "/todos", headers={"X-Forwarded-For": "10.0.0.1"})
        )
        assert [first.status, second.status, again.status] == [200, 200, 429]

    @pytest.mark.asyncio
    async def test_endpoint_rule(self, todo_nouns: dict[str, dict[str, str]]) -> None:
        engine = create_api_engine(
            {
                "nouns": todo_nouns,
                "rateLimiting": {
                    "requests": 100,
                    "window": "1m",
                    "endpoints": {"POST /todos": {"requests": 1, "window": "1h"}},
                },
            }
        )
        assert engine.get_rate_limit_config("POST /todos").window == "1h"
        assert engine.get_rate_limit_config("GET /todos").requests == 100

        ok = await engine.handle_request(APIRequest("POST", "/todos", body={"title": "a"}))
        limited = await engine.handle_request(APIRequest("POST", "/todos", body={"title": "b"}))
        listing = await engine.handle_request(APIRequest("GET", "/todos"))
        assert [ok.status, limited.status, listing.status] == [201, 429, 200]


class TestCorsAndDeprecation:
    @pytest.mark.asyncio
    async def test_preflight(self, todo_nouns: dict[str, dict[str, str]]) -> None:
        engine = create_api_engine({"nouns": todo_nouns, "cors": {"origin": "*"}})
        response = await engine.handle_request(APIRequest("OPTIONS", "/anything"))
        assert response.status == 204
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "X-API-Key" in response.headers["Access-Control-Allow-Headers"]

        listing = await engine.handle_request(APIRequest("GET", "/todos"))
        assert listing.headers["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    async def test_options_without_cors(self, engine: APIEngine) -> None:
        response = await engine.handle_request(APIRequest("OPTIONS", "/todos"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_deprecated_endpoint(self, todo_nouns: dict[str, dict[str, str]]) -> None:
        engine = create_api_engine(
            {
                "nouns": todo_nouns,
                "deprecatedEndpoints": {
                    "GET /todos": {
                        "message": "Listing is going away",
                        "alternative": "GET /v2/todos",
                        "sunsetDate": "2027-01-01",
                    }
                },
            }
        )
        response = await engine.handle_request(APIRequest("GET", "/todos"))
        assert response.status == 200
        assert response.headers["Deprecation"] == "true"
        assert response.headers["Sunset"] == "2027-01-01"
        assert response.headers["Warning"] == (
            '299 - "Listing is going away; use GET /v2/todos instead"'
        )

    def test_deprecation_headers_minimal(self) -> None:
        headers = deprecation_headers(DeprecationNotice(migration_guide="https://docs/migrate"))
        assert headers == {
            "Deprecation": "true",
            "Warning": '299 - "This endpoint is deprecated"',
            "Link": '<https://docs/migrate>; rel="deprecation"',
        }
        assert deprecation_headers(DeprecationNotice(deprecated=False)) == {}


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_before_can_short_circuit(self, engine: APIEngine) -> None:
        def block_deletes(ctx: MiddlewareContext) -> MiddlewareResult | None:
            if ctx.endpoint is not None and ctx.endpoint.operation == "delete":
                return MiddlewareResult(proceed=False, response=APIResponse(403, {"error": "no"}))
            return None

        engine.rest.add_middleware(block_deletes)
        created = await _create_todo(engine)
        response = await engine.handle_request(APIRequest("DELETE", f"/todos/{created['id']}"))
        assert response.status == 403
        assert engine.storage.has("Todo", created["id"])

    @pytest.mark.asyncio
    async def test_before_sees_params_and_shares_state(self, engine: APIEngine) -> None:
        seen: list[Any] = []

        async def first(ctx: MiddlewareContext) -> None:
            ctx.state["tag"] = "first"

        def second(ctx: MiddlewareContext) -> None:
            seen.append((ctx.params, ctx.state["tag"]))

        engine.rest.add_middleware(first)
        engine.rest.add_middleware(second)
        await engine.handle_request(APIRequest("GET", "/todos/abc"))
        assert seen == [({"id": "abc"}, "first")]

    @pytest.mark.asyncio
    async def test_after_hook_can_replace_response(self, engine: APIEngine) -> None:
        calls: list[int] = []

        def record(ctx: MiddlewareContext, response: APIResponse) -> None:
            calls.append(response.status)

        def stamp(ctx: MiddlewareContext, response: APIResponse) -> APIResponse:
            return APIResponse(response.status, response.body, {**response.headers, "X-Hook": "1"})

        engine.rest.add_post_hook(record)
        engine.rest.add_post_hook(stamp)
        response = await engine.handle_request(APIRequest("GET", "/missing"))

        assert calls == [404]
        assert response.headers["X-Hook"] == "1"

    @pytest.mark.asyncio
    async def test_failing_before_middleware_returns_500(
        self, engine: APIEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(ctx: MiddlewareContext) -> None:
            raise RuntimeError("middleware secret")

        engine.rest.add_middleware(broken)
        with caplog.at_level(logging.ERROR, logger="nounapi.rest"):
            response = await engine.handle_request(
                APIRequest("POST", "/todos", body={"title": "x"})
            )

        assert response.status == 500
        assert response.body == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        assert "middleware secret" in caplog.text
        assert engine.storage.count("Todo") == 0

    @pytest.mark.asyncio
    async def test_failing_after_hook_returns_500(
        self, engine: APIEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        later: list[int] = []

        async def broken(ctx: MiddlewareContext, response: APIResponse) -> None:
            raise ValueError("hook secret")

        engine.rest.add_post_hook(broken)
        engine.rest.add_post_hook(lambda ctx, response: later.append(response.status))
        with caplog.at_level(logging.ERROR, logger="nounapi.rest"):
            response = await engine.handle_request(APIRequest("GET", "/todos"))

        assert response.status == 500
        assert response.body == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        assert "After hook failed" in caplog.text
        assert later == []


class TestEngineEndpoints:
    def test_get_endpoint(self, engine: APIEngine) -> None:
        endpoint = engine.get_endpoint("POST", "/todos/:id/complete")
        assert endpoint is not None
        assert endpoint.noun == "Todo"
        assert endpoint.verb == "complete"
        assert engine.get_endpoint("POST", "/categories/:id/complete") is None

