"""
Fixed-window rate limiting.

Counting is delegated to the ``limits`` package: every RateLimiter owns a
FixedWindowRateLimiter over in-process MemoryStorage, so windows expire
with the storage and never need sweeping here.

Limiter resolution for a request, in priority order:
1. endpoint-specific limiter (exact "METHOD /path" key)
2. per-tier limiter, created the first time a tier is seen
3. the global limiter
4. no limiting
"""

from __future__ import annotations

import logging
import math
import re
import threading
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from nounapi.specs.config import RateLimitConfig, RateLimitRule

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60_000

_WINDOW_PATTERN = re.compile(r"^(\d+)([smhd])$")
_UNIT_MS = {"s": 1_000, "m": 60_000, "h": 3_600_000, "d": 86_400_000}


def parse_window(window: str) -> int:
    """
    Parse a window string into milliseconds.

    >>> parse_window("30s")
    30000
    >>> parse_window("5m")
    300000
    >>> parse_window("soon")
    60000
    """
    match = _WINDOW_PATTERN.match(window.strip()) if isinstance(window, str) else None
    if not match:
        return DEFAULT_WINDOW_MS
    amount, unit = match.groups()
    return int(amount) * _UNIT_MS[unit]


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check. ``reset_at`` is epoch milliseconds."""

    allowed: bool
    remaining: int
    reset_at: float
    limit: int

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* response headers."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at / 1000)),
        }


class RateLimiter:
    """
    Fixed-window counter keyed by client identity.

    With ``requests = N`` the N-th request in a window is allowed with
    ``remaining == 0`` and the (N+1)-th is rejected. The first check at or
    after ``reset_at`` starts a new window counting itself as request 1.
    """

    def __init__(self, rule: RateLimitRule):
        self.rule = rule
        self.window_ms = parse_window(rule.window)
        self._item = RateLimitItemPerSecond(rule.requests, max(1, self.window_ms // 1000))
        self._storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)

    @property
    def limit(self) -> int:
        return self.rule.requests

    def check(self, key: str) -> RateLimitResult:
        """Count a request for ``key`` and report whether it is allowed."""
        allowed = self._limiter.hit(self._item, key)
        stats = self._limiter.get_window_stats(self._item, key)
        return RateLimitResult(
            allowed=allowed,
            remaining=stats.remaining,
            reset_at=stats.reset_time * 1000,
            limit=self.limit,
        )

    def reset(self, key: str | None = None) -> None:
        """Forget one client's window, or every window."""
        if key is None:
            self._storage.reset()
        else:
            self._limiter.clear(self._item, key)


class RateLimiterRegistry:
    """
    Resolves the limiter for a request from RateLimitConfig.

    Example:
        registry = RateLimiterRegistry(RateLimitConfig(requests=100, window="1m"))
        limiter = registry.resolve("GET /todos", tier=None)
        if limiter and not limiter.check(client_key).allowed:
            ...
    """

    def __init__(self, config: RateLimitConfig | None):
        self.config = config
        self._endpoint_limiters: dict[str, RateLimiter] = {}
        self._tier_limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()
        self.global_limiter: RateLimiter | None = None

        if config is None:
            return

        if config.requests and config.window:
            self.global_limiter = RateLimiter(
                RateLimitRule(requests=config.requests, window=config.window)
            )
        elif config.default is not None:
            self.global_limiter = RateLimiter(config.default)

        for endpoint, rule in config.endpoints.items():
            self._endpoint_limiters[endpoint] = RateLimiter(rule)

    def resolve(self, endpoint: str, tier: str | None = None) -> RateLimiter | None:
        """Pick the limiter for an endpoint key and caller tier."""
        limiter = self._endpoint_limiters.get(endpoint)
        if limiter is not None:
            return limiter

        if tier and self.config is not None and tier in self.config.tiers:
            with self._lock:
                limiter = self._tier_limiters.get(tier)
                if limiter is None:
                    limiter = RateLimiter(self.config.tiers[tier])
                    self._tier_limiters[tier] = limiter
                    logger.debug("Created rate limiter for tier %s", tier)
            return limiter

        return self.global_limiter

    def rule_for(self, endpoint: str) -> RateLimitRule:
        """
        Effective configured rule for an endpoint key.

        Falls back to the default rule, then to the global requests/window
        (100 per minute when unset).
        """
        config = self.config
        if config is not None and endpoint in config.endpoints:
            return config.endpoints[endpoint]
        if config is not None and config.default is not None:
            return config.default
        return RateLimitRule(
            requests=(config.requests if config and config.requests else 100),
            window=(config.window if config and config.window else "1m"),
        )
