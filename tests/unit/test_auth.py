"""Tests for API key authentication and CORS headers."""

from __future__ import annotations

import pytest

from nounapi.runtime.auth import (
    extract_and_validate_api_key,
    get_cors_headers,
    is_public_endpoint,
    parse_tier,
)
from nounapi.runtime.transport import APIRequest
from nounapi.specs.config import APIKeyValidationResult, AuthConfig, CORSConfig


def _request(
    method: str = "GET",
    path: str = "/todos",
    headers: dict[str, str] | None = None,
    query: dict[str, str] | None = None,
) -> APIRequest:
    return APIRequest(method=method, path=path, headers=headers or {}, query=query or {})


class TestExtractAndValidate:
    @pytest.mark.asyncio
    async def test_no_auth_config_is_valid(self) -> None:
        assert (await extract_and_validate_api_key(_request(), None)).valid

    @pytest.mark.asyncio
    async def test_api_keys_disabled_is_valid(self) -> None:
        result = await extract_and_validate_api_key(_request(), AuthConfig(api_keys=False))
        assert result.valid

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        result = await extract_and_validate_api_key(_request(), AuthConfig(api_keys=True))
        assert not result.valid
        assert result.reason == "missing"
        assert result.message == "API key required"

    @pytest.mark.asyncio
    async def test_header_key_with_tier_prefix(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "pro_key_abc123"}), AuthConfig(api_keys=True)
        )
        assert result.valid
        assert result.tier == "pro"

    @pytest.mark.asyncio
    async def test_key_without_convention_has_no_tier(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "secret"}), AuthConfig(api_keys=True)
        )
        assert result.valid
        assert result.tier is None

    @pytest.mark.asyncio
    async def test_header_lookup_is_case_insensitive(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"x-api-key": "k"}), AuthConfig(api_keys=True)
        )
        assert result.valid

    @pytest.mark.asyncio
    async def test_x_api_key_beats_bearer(self) -> None:
        seen: list[str] = []

        def validate(key: str) -> bool:
            seen.append(key)
            return True

        await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "header", "Authorization": "Bearer token"}),
            AuthConfig(api_keys=True, validate_key=validate),
        )
        assert seen == ["header"]

    @pytest.mark.asyncio
    async def test_bearer_token(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"Authorization": "Bearer free_key_1"}), AuthConfig(api_keys=True)
        )
        assert result.valid
        assert result.tier == "free"

    @pytest.mark.asyncio
    async def test_query_param_only_when_allowed(self) -> None:
        request = _request(query={"api_key": "k"})
        denied = await extract_and_validate_api_key(request, AuthConfig(api_keys=True))
        allowed = await extract_and_validate_api_key(
            request, AuthConfig(api_keys=True, allow_query_param=True)
        )
        assert not denied.valid
        assert allowed.valid

    @pytest.mark.asyncio
    async def test_validator_false_is_invalid(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "bad"}),
            AuthConfig(api_keys=True, validate_key=lambda key: False),
        )
        assert not result.valid
        assert result.reason == "invalid"
        assert result.message == "Invalid API key"

    @pytest.mark.asyncio
    async def test_async_validator_result_object(self) -> None:
        async def validate(key: str) -> APIKeyValidationResult:
            return APIKeyValidationResult(valid=True, key_id="k1", tier="enterprise")

        result = await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "anything"}),
            AuthConfig(api_keys=True, validate_key=validate),
        )
        assert result.valid
        assert result.tier == "enterprise"
        assert result.key_info is not None and result.key_info.key_id == "k1"

    @pytest.mark.asyncio
    async def test_validator_dict_result(self) -> None:
        result = await extract_and_validate_api_key(
            _request(headers={"X-API-Key": "anything"}),
            AuthConfig(api_keys=True, validate_key=lambda key: {"valid": True, "keyId": "k2"}),
        )
        assert result.valid
        assert result.key_info is not None and result.key_info.key_id == "k2"

    @pytest.mark.asyncio
    async def test_public_endpoint_skips_auth(self) -> None:
        auth = AuthConfig(api_keys=True, public_endpoints=["GET /todos"])
        assert (await extract_and_validate_api_key(_request(), auth)).valid


class TestPublicEndpoints:
    def test_exact(self) -> None:
        assert is_public_endpoint(_request("GET", "/todos"), ["GET /todos"])

    def test_method_must_match(self) -> None:
        assert not is_public_endpoint(_request("POST", "/todos"), ["GET /todos"])

    @pytest.mark.parametrize("entry", ["GET /todos/{id}", "GET /todos/:id"])
    def test_templated(self, entry: str) -> None:
        assert is_public_endpoint(_request("GET", "/todos/42"), [entry])

    def test_base_path_covers_sub_paths(self) -> None:
        assert is_public_endpoint(_request("GET", "/health/live"), ["GET /health"])

    def test_malformed_entries_ignored(self) -> None:
        assert not is_public_endpoint(_request("GET", "/todos"), ["/todos"])


def test_parse_tier() -> None:
    assert parse_tier("pro_key_abc123") == "pro"
    assert parse_tier("abc123") is None


class TestCorsHeaders:
    def test_absent_config_emits_nothing(self) -> None:
        assert get_cors_headers(None) == {}

    def test_defaults(self) -> None:
        headers = get_cors_headers(CORSConfig(origin="*"))
        assert headers == {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        }

    def test_full_config(self) -> None:
        headers = get_cors_headers(
            CORSConfig(
                origin="https://app.example.com",
                methods=["GET", "POST"],
                allowedHeaders=["X-API-Key"],
                exposedHeaders=["X-RateLimit-Remaining"],
                credentials=True,
                maxAge=600,
            )
        )
        assert headers["Access-Control-Allow-Methods"] == "GET, POST"
        assert headers["Access-Control-Allow-Headers"] == "X-API-Key"
        assert headers["Access-Control-Expose-Headers"] == "X-RateLimit-Remaining"
        assert headers["Access-Control-Allow-Credentials"] == "true"
        assert headers["Access-Control-Max-Age"] == "600"
