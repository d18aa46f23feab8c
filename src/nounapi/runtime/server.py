"""
FastAPI adapter for an APIEngine.

Routes:
    POST /graphql        GraphQL queries and mutations
    GET  /openapi.json   OpenAPI document as JSON
    GET  /openapi.yaml   OpenAPI document as YAML
    *    /{path}         REST endpoints served by the engine

The engine is transport-neutral; this module only translates Starlette
requests into APIRequest values and APIResponse values back into HTTP.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from nounapi.runtime.auth import extract_and_validate_api_key, get_cors_headers
from nounapi.runtime.errors import ErrorCode, error_body
from nounapi.runtime.rest_handler import client_key
from nounapi.runtime.transport import APIRequest, APIResponse
from nounapi.specs.openapi import to_yaml

if TYPE_CHECKING:
    from nounapi.engine import APIEngine
    from nounapi.specs.noun import VerbDefinitions

logger = logging.getLogger(__name__)

REST_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
GRAPHQL_ENDPOINT = "POST /graphql"


class _InvalidBody(Exception):
    pass


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise _InvalidBody(str(e)) from e


def _to_http(response: APIResponse) -> Response:
    if response.status == 204:
        return Response(status_code=response.status, headers=response.headers)
    return JSONResponse(
        content=response.body, status_code=response.status, headers=response.headers
    )


def _api_request(request: Request, path: str, body: Any) -> APIRequest:
    return APIRequest(
        method=request.method,
        path=path,
        query=dict(request.query_params),
        body=body,
        headers=dict(request.headers),
    )


def create_app(engine: APIEngine, title: str | None = None) -> FastAPI:
    """
    Create a FastAPI application serving an engine.

    Args:
        engine: Engine built with ``create_api_engine``
        title: Application title (defaults to the OpenAPI info title)

    Returns:
        FastAPI application
    """
    info = engine.config.info
    app = FastAPI(
        title=title or (info.title if info else "API"),
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.engine = engine

    @app.post("/graphql")
    async def graphql_endpoint(request: Request) -> Response:
        gate = APIRequest(
            method="POST",
            path="/graphql",
            query=dict(request.query_params),
            headers=dict(request.headers),
        )
        request_id = gate.request_id
        headers = get_cors_headers(engine.config.cors)

        auth = await extract_and_validate_api_key(gate, engine.config.authentication)
        if not auth.valid:
            return JSONResponse(
                status_code=401,
                content=error_body(auth.message, ErrorCode.UNAUTHORIZED, request_id),
                headers=headers,
            )

        limiter = engine.rate_limiters.resolve(GRAPHQL_ENDPOINT, auth.tier)
        if limiter is not None:
            check = limiter.check(client_key(gate, auth))
            headers.update(check.headers())
            if not check.allowed:
                return JSONResponse(
                    status_code=429,
                    content=error_body(
                        "Rate limit exceeded", ErrorCode.RATE_LIMIT_EXCEEDED, request_id
                    ),
                    headers=headers,
                )

        try:
            payload = await _read_json(request)
        except _InvalidBody:
            payload = None
        if not isinstance(payload, dict):
            return JSONResponse(
                status_code=400,
                content={"errors": [{"message": "Body must be a JSON object with a query"}]},
                headers=headers,
            )

        result = await engine.execute_graphql(payload)
        return JSONResponse(content=result.to_dict(), headers=headers)

    @app.get("/openapi.json")
    async def openapi_json() -> JSONResponse:
        return JSONResponse(content=engine.generate_openapi_spec())

    @app.get("/openapi.yaml")
    async def openapi_yaml() -> PlainTextResponse:
        document = engine.generate_openapi_spec()
        return PlainTextResponse(to_yaml(document), media_type="application/yaml")

    @app.api_route("/{path:path}", methods=REST_METHODS)
    async def rest_endpoint(request: Request, path: str) -> Response:
        try:
            body = await _read_json(request)
        except _InvalidBody as e:
            return JSONResponse(
                status_code=400,
                content=error_body(
                    "Validation error",
                    ErrorCode.VALIDATION_ERROR,
                    request.headers.get("x-request-id"),
                    [{"field": "_root", "message": f"Invalid JSON: {e}"}],
                ),
            )

        response = await engine.handle_request(_api_request(request, f"/{path}", body))
        return _to_http(response)

    return app


def run(
    config_path: Path | str,
    host: str = "127.0.0.1",
    port: int = 8000,
    verbs: VerbDefinitions | None = None,
    log_dir: Path | str | None = None,
) -> None:
    """
    Serve the engine described by the ``[api]`` section of a TOML file.

    Args:
        config_path: TOML file with the engine configuration
        host: Host to bind to
        port: Port to bind to
        verbs: Verb handlers (code cannot live in TOML)
        log_dir: Directory for JSONL logs; console only when None
    """
    try:
        import uvicorn
    except ImportError:
        raise RuntimeError("uvicorn is not installed. Install with: pip install uvicorn")

    from nounapi.engine import create_api_engine
    from nounapi.runtime.logging import setup_logging
    from nounapi.specs.config import load_api_config

    setup_logging(log_dir)
    config = load_api_config(config_path, verbs={k: dict(v) for k, v in (verbs or {}).items()})
    engine = create_api_engine(config)

    logger.info("Serving %d nouns on http://%s:%d", len(engine.nouns), host, port)
    uvicorn.run(create_app(engine), host=host, port=port)
