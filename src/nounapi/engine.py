"""
API engine facade.

``create_api_engine`` wires one storage, one event bus and one set of rate
limiters into the REST, GraphQL and OpenAPI surfaces so that every surface
sees the same records and the same change notifications.

Example:
    engine = create_api_engine({
        "nouns": {"Todo": {"title": "string!", "done": "boolean"}},
        "verbs": {"Todo": {"complete": lambda ctx: ctx.db["Todo"].update(ctx.id, {"done": True})}},
    })
    response = await engine.handle_request(APIRequest("POST", "/todos", body={"title": "x"}))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import ValidationError

from nounapi.graphql.executor import GraphQLHandler, GraphQLRequest, GraphQLResponse
from nounapi.graphql.schema_generator import GraphQLSchema
from nounapi.runtime.errors import ConfigurationError
from nounapi.runtime.event_bus import EventBus, EventCallback, UnsubscribeFn
from nounapi.runtime.operations import NounOperations
from nounapi.runtime.rate_limit import RateLimiterRegistry
from nounapi.runtime.rest_handler import RESTHandler
from nounapi.runtime.routing import RESTEndpoint
from nounapi.runtime.storage import DbContext, InMemoryStorage
from nounapi.runtime.transport import APIRequest, APIResponse
from nounapi.specs.config import APIConfig, RateLimitRule
from nounapi.specs.noun import build_noun_specs, check_verbs
from nounapi.specs.openapi import build_openapi_spec, to_yaml

logger = logging.getLogger(__name__)


class APIEngine:
    """
    Runtime for a set of nouns and verbs.

    Attributes:
        config: Validated engine configuration
        storage: Shared in-memory store
        events: Shared event bus
        db: Per-noun accessors handed to verb handlers
    """

    def __init__(self, config: APIConfig):
        check_verbs(config.nouns, config.verbs)
        self.config = config
        try:
            self.nouns = build_noun_specs(config.nouns)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid noun declaration: {e}") from e

        self.storage = InMemoryStorage(self.nouns)
        self.events = EventBus()
        self.db = DbContext(self.storage, self.nouns)
        self.rate_limiters = RateLimiterRegistry(config.rate_limiting)

        self.operations = NounOperations(
            self.nouns, config.verbs, self.storage, self.events, self.db
        )
        self.rest = RESTHandler(config, self.operations, self.rate_limiters)
        self.graphql = GraphQLHandler(self.operations)

        logger.debug(
            "API engine ready: %d nouns, %d verbs, %d REST endpoints",
            len(self.nouns),
            sum(len(v) for v in config.verbs.values()),
            len(self.rest.endpoints),
        )

    # =========================================================================
    # REST
    # =========================================================================

    def get_endpoint(self, method: str, path_pattern: str) -> RESTEndpoint | None:
        """Look up a REST endpoint by method and path pattern (``/todos/:id``)."""
        return self.rest.get_endpoint(method, path_pattern)

    async def handle_request(self, request: APIRequest | Mapping[str, Any]) -> APIResponse:
        if not isinstance(request, APIRequest):
            request = APIRequest(**request)
        return await self.rest.handle_request(request)

    def get_rate_limit_config(self, endpoint: str) -> RateLimitRule:
        return self.rest.get_rate_limit_config(endpoint)

    # =========================================================================
    # GraphQL
    # =========================================================================

    def get_graphql_schema(self) -> GraphQLSchema:
        return self.graphql.get_schema()

    async def execute_graphql(
        self, request: GraphQLRequest | Mapping[str, Any] | str
    ) -> GraphQLResponse:
        return await self.graphql.execute(request)

    def subscribe_graphql(
        self,
        event: str,
        callback: EventCallback,
        filter: Mapping[str, Any] | None = None,
    ) -> UnsubscribeFn:
        return self.graphql.subscribe(event, callback, filter)

    # =========================================================================
    # OpenAPI
    # =========================================================================

    def generate_openapi_spec(
        self, format: Literal["json", "yaml"] = "json"
    ) -> dict[str, Any] | str:
        """
        Generate the OpenAPI document.

        Returns the document as a dict, or YAML text when ``format`` is "yaml".
        Use ``openapi_to_json`` for JSON text.
        """
        document = build_openapi_spec(self.config)
        if format == "yaml":
            return to_yaml(document)
        return document


def create_api_engine(config: APIConfig | Mapping[str, Any]) -> APIEngine:
    """
    Create an engine from an APIConfig or an equivalent mapping.

    Raises:
        ConfigurationError: If verbs reference unknown nouns or field types
            cannot be parsed
    """
    if not isinstance(config, APIConfig):
        try:
            config = APIConfig.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid API configuration: {e}") from e
    return APIEngine(config)
