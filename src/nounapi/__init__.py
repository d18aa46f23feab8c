"""
nounapi - schema-driven multi-protocol API engine.

Declare nouns (typed entities) and verbs (custom operations) once and get a
REST endpoint set, a GraphQL schema and an OpenAPI document that all share
one in-memory store and one event bus.

Example:
    >>> from nounapi import APIRequest, create_api_engine
    >>> engine = create_api_engine({"nouns": {"Todo": {"title": "string!"}}})
    >>> engine.get_endpoint("GET", "/todos").operation
    'list'
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _distribution_version

try:
    __version__ = _distribution_version("nounapi")
except PackageNotFoundError:
    # Source tree on sys.path without an install
    __version__ = "0.0.0"

from nounapi.engine import APIEngine, create_api_engine
from nounapi.graphql.executor import GraphQLRequest, GraphQLResponse
from nounapi.runtime.errors import ConfigurationError, ErrorCode, NounAPIError, UnknownNounError
from nounapi.runtime.operations import VerbContext
from nounapi.runtime.transport import APIRequest, APIResponse
from nounapi.specs.config import (
    APIConfig,
    APIKeyValidationResult,
    AuthConfig,
    CORSConfig,
    DeprecationNotice,
    RateLimitConfig,
    RateLimitRule,
    load_api_config,
)

__all__ = [
    "APIConfig",
    "APIEngine",
    "APIKeyValidationResult",
    "APIRequest",
    "APIResponse",
    "AuthConfig",
    "CORSConfig",
    "ConfigurationError",
    "DeprecationNotice",
    "ErrorCode",
    "GraphQLRequest",
    "GraphQLResponse",
    "NounAPIError",
    "RateLimitConfig",
    "RateLimitRule",
    "UnknownNounError",
    "VerbContext",
    "create_api_engine",
    "load_api_config",
]
