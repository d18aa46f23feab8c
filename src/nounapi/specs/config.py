"""
Engine configuration models.

Configuration can be built in code or loaded from the ``[api]`` section of a
TOML file. Every model accepts camelCase keys (``allowQueryParam``) as well as
snake_case ones (``allow_query_param``).
"""

from __future__ import annotations

import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from nounapi.runtime.errors import ConfigurationError
from nounapi.specs.noun import VerbHandler


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# CORS
# =============================================================================


class CORSConfig(_ConfigModel):
    """CORS configuration; maps 1:1 to Access-Control-* headers."""

    origin: str = Field(description="Allowed origin ('*' or a specific origin)")
    methods: list[str] | None = Field(default=None, description="Allowed HTTP methods")
    allowed_headers: list[str] | None = Field(default=None)
    exposed_headers: list[str] | None = Field(default=None)
    credentials: bool = Field(default=False, description="Allow credentials")
    max_age: int | None = Field(default=None, description="Preflight cache seconds")


# =============================================================================
# Authentication
# =============================================================================


class APIKeyValidationResult(_ConfigModel):
    """Result of validating an API key."""

    valid: bool
    key_id: str | None = None
    tier: str | None = None
    organization_id: str | None = None


# Returns bool, APIKeyValidationResult or a dict of its fields; may be async
KeyValidator = Callable[[str], Any]


class AuthConfig(_ConfigModel):
    """
    API key authentication.

    Attributes:
        api_keys: Require an API key on non-public endpoints
        validate_key: Optional (sync or async) validator for candidate keys
        allow_query_param: Accept ``?api_key=`` as a last resort
        public_endpoints: ``"METHOD /path"`` entries that skip authentication
    """

    api_keys: bool = False
    validate_key: KeyValidator | None = Field(default=None, exclude=True)
    allow_query_param: bool = False
    public_endpoints: list[str] = Field(default_factory=list)


# =============================================================================
# Rate Limiting
# =============================================================================


class RateLimitRule(_ConfigModel):
    """A fixed-window rule: ``requests`` per ``window`` ("30s", "5m", "1h", "1d")."""

    requests: int = Field(ge=0)
    window: str


class RateLimitConfig(_ConfigModel):
    """
    Rate limiting configuration.

    ``requests`` + ``window`` (or ``default``) configure the global limiter;
    ``endpoints`` are keyed by ``"METHOD /path"`` and ``tiers`` by tier name.
    """

    requests: int | None = None
    window: str | None = None
    default: RateLimitRule | None = None
    endpoints: dict[str, RateLimitRule] = Field(default_factory=dict)
    tiers: dict[str, RateLimitRule] = Field(default_factory=dict)


# =============================================================================
# OpenAPI metadata and deprecation
# =============================================================================


class InfoSpec(_ConfigModel):
    title: str = "API"
    version: str = "1.0.0"


class ServerSpec(_ConfigModel):
    url: str
    description: str | None = None


class DeprecationNotice(_ConfigModel):
    """Deprecation notice attached to a ``"METHOD /pattern"`` endpoint."""

    deprecated: bool = True
    message: str | None = None
    alternative: str | None = None
    sunset_date: str | None = None
    migration_guide: str | None = None


class MiddlewareConfig(_ConfigModel):
    """Request hooks; ``before`` functions run after routing, ``after`` hooks on every response."""

    before: list[Callable[..., Any]] = Field(default_factory=list)
    after: list[Callable[..., Any]] = Field(default_factory=list)


# =============================================================================
# API Config
# =============================================================================


class APIConfig(_ConfigModel):
    """
    Complete engine configuration.

    Example:
        APIConfig(
            nouns={"Todo": {"title": "string!", "done": "boolean"}},
            verbs={"Todo": {"complete": lambda ctx: ctx.db["Todo"].update(ctx.id, {"done": True})}},
            rate_limiting=RateLimitConfig(requests=100, window="1m"),
        )
    """

    nouns: dict[str, dict[str, str]] = Field(description="Noun name -> field -> type token")
    verbs: dict[str, dict[str, VerbHandler]] = Field(default_factory=dict, exclude=True)
    rate_limiting: RateLimitConfig | None = None
    authentication: AuthConfig | None = None
    cors: CORSConfig | None = None
    info: InfoSpec | None = None
    servers: list[ServerSpec] | None = None
    deprecated_endpoints: dict[str, DeprecationNotice] = Field(default_factory=dict)
    middleware: MiddlewareConfig = Field(default_factory=MiddlewareConfig, exclude=True)


def load_api_config(
    toml_path: Path | str,
    verbs: dict[str, dict[str, VerbHandler]] | None = None,
    validate_key: KeyValidator | None = None,
) -> APIConfig:
    """
    Load engine configuration from the ``[api]`` section of a TOML file.

    Verb handlers and key validators are code, so they are passed in
    separately and merged into the loaded config.

    Args:
        toml_path: Path to the TOML file
        verbs: Verb handlers keyed by noun then verb name
        validate_key: Optional API key validator

    Returns:
        Parsed APIConfig

    Raises:
        ConfigurationError: If the file or section is missing or invalid
    """
    path = Path(toml_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e

    section = data.get("api")
    if not section:
        raise ConfigurationError(f"No [api] section in {path}")

    try:
        config = APIConfig.model_validate(section)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid [api] configuration in {path}: {e}") from e

    updates: dict[str, Any] = {}
    if verbs:
        updates["verbs"] = verbs
    if validate_key is not None:
        auth = config.authentication or AuthConfig(api_keys=True)
        updates["authentication"] = auth.model_copy(update={"validate_key": validate_key})
    return config.model_copy(update=updates) if updates else config
