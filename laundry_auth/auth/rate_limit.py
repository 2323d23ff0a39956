"""Per-address rate limiting for the auth endpoints.

A sliding window limiter kept in process memory. Login attempts get their
own tight window, checked before any account lookup, so password guessing
is throttled per source independently of the per-account lockout.
"""

import asyncio
import json
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from starlette.requests import HTTPConnection

from laundry_auth.auth.models import utc_now
from laundry_auth.core.exceptions import RateLimitError
from laundry_auth.core.settings import LaundryAuthSettings


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit rule.

    Attributes:
        requests: Maximum number of requests allowed
        window_seconds: Time window in seconds
        key_func: How requests are grouped: "ip" or "ip_and_endpoint"
        block_duration: How long to block after limit exceeded (seconds)
    """

    requests: int
    window_seconds: int
    key_func: str = "ip"
    block_duration: int = 0


@dataclass
class RateLimitEntry:
    """Tracks request timestamps for a single key."""

    timestamps: list[datetime] = field(default_factory=list)
    blocked_until: datetime | None = None


def client_address(
    conn: HTTPConnection,
    trust_x_forwarded_for: bool = False,
    trusted_proxies: set[str] | None = None,
) -> str:
    """Resolve the client address of a request.

    X-Forwarded-For is honoured only when explicitly trusted or when the
    direct peer is a known proxy, so clients cannot pick their own key.
    """
    direct_ip = conn.client.host if conn.client else "unknown"
    if trust_x_forwarded_for or direct_ip in (trusted_proxies or set()):
        forwarded = conn.headers.get("X-Forwarded-For")
        if forwarded:
            # Leftmost entry is the original client
            return forwarded.split(",")[0].strip()
    return direct_ip


class RateLimiter:
    """In-memory sliding window rate limiter."""

    def __init__(
        self,
        limits: dict[str, RateLimitConfig],
        cleanup_interval: int = 300,
        trusted_proxies: list[str] | None = None,
        trust_x_forwarded_for: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the rate limiter.

        Args:
            limits: Rule per endpoint name; must contain "default"
            cleanup_interval: How often to clean up expired entries (seconds)
            trusted_proxies: Proxy IPs allowed to set X-Forwarded-For
            trust_x_forwarded_for: Always trust X-Forwarded-For. Only enable
                behind a trusted reverse proxy.
            clock: Source of the current UTC time
        """
        if "default" not in limits:
            raise ValueError("Rate limits must define a 'default' rule")
        self._storage: dict[str, RateLimitEntry] = defaultdict(RateLimitEntry)
        self._lock = asyncio.Lock()
        self.limits = limits
        self.cleanup_interval = cleanup_interval
        self.clock = clock
        self._last_cleanup = clock()
        self.trusted_proxies = set(trusted_proxies or [])
        self.trust_x_forwarded_for = trust_x_forwarded_for

    @classmethod
    def from_settings(
        cls, settings: LaundryAuthSettings, clock: Callable[[], datetime] = utc_now
    ) -> "RateLimiter":
        """Build the login and global rules from settings."""
        limits = {
            "login": RateLimitConfig(
                requests=settings.login_rate_limit_requests,
                window_seconds=settings.login_rate_limit_window_seconds,
                key_func="ip_and_endpoint",
            ),
            "default": RateLimitConfig(
                requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            ),
        }
        return cls(
            limits,
            trusted_proxies=settings.trusted_proxies,
            trust_x_forwarded_for=settings.trust_x_forwarded_for,
            clock=clock,
        )

    def _get_key(self, conn: HTTPConnection, key_func: str, endpoint: str) -> str:
        client_ip = client_address(
            conn, self.trust_x_forwarded_for, self.trusted_proxies
        )
        if key_func == "ip_and_endpoint":
            return f"ip:{client_ip}:endpoint:{endpoint}"
        return f"ip:{client_ip}"

    async def check_rate_limit(
        self, conn: HTTPConnection, endpoint: str = "default"
    ) -> dict:
        """Count a request against its rule.

        Returns:
            Dict with limit, remaining requests and seconds until reset

        Raises:
            RateLimitError: If the rule's limit is exceeded
        """
        config = self.limits.get(endpoint, self.limits["default"])
        key = self._get_key(conn, config.key_func, endpoint)

        async with self._lock:
            self._maybe_cleanup()

            entry = self._storage[key]
            now = self.clock()

            if entry.blocked_until and entry.blocked_until > now:
                retry_after = int((entry.blocked_until - now).total_seconds())
                raise RateLimitError(retry_after=max(1, retry_after))

            window = timedelta(seconds=config.window_seconds)
            entry.timestamps = [ts for ts in entry.timestamps if ts > now - window]

            if len(entry.timestamps) >= config.requests:
                if config.block_duration > 0:
                    entry.blocked_until = now + timedelta(seconds=config.block_duration)
                    retry_after = config.block_duration
                else:
                    # Until the oldest request leaves the window
                    oldest = min(entry.timestamps)
                    retry_after = int((oldest + window - now).total_seconds())
                raise RateLimitError(retry_after=max(1, retry_after))

            entry.timestamps.append(now)

            reset_at = min(entry.timestamps) + window
            return {
                "limit": config.requests,
                "remaining": config.requests - len(entry.timestamps),
                "reset_seconds": int((reset_at - now).total_seconds()),
            }

    def _maybe_cleanup(self) -> None:
        """Periodically drop entries with no requests left in any window."""
        now = self.clock()
        if (now - self._last_cleanup).total_seconds() < self.cleanup_interval:
            return
        self._last_cleanup = now

        longest = timedelta(
            seconds=max(config.window_seconds for config in self.limits.values())
        )
        stale = [
            key
            for key, entry in self._storage.items()
            if all(ts <= now - longest for ts in entry.timestamps)
            and (not entry.blocked_until or entry.blocked_until < now)
        ]
        for key in stale:
            del self._storage[key]

    def reset(self, key: str) -> None:
        """Reset rate limit for a specific key."""
        self._storage.pop(key, None)

    def reset_all(self) -> None:
        """Reset all rate limits (useful for testing)."""
        self._storage.clear()


class RateLimitMiddleware:
    """ASGI middleware applying the limiter to every non-excluded path."""

    def __init__(
        self,
        app,
        limiter: RateLimiter,
        exclude_paths: list[str] | None = None,
        endpoint_mapping: dict[str, str] | None = None,
    ):
        """Initialize the middleware.

        Args:
            app: The ASGI application
            limiter: The RateLimiter instance
            exclude_paths: Paths to exclude from rate limiting
            endpoint_mapping: Map paths to endpoint names for limit config
        """
        self.app = app
        self.limiter = limiter
        self.exclude_paths = set(exclude_paths or ["/health", "/docs", "/openapi.json"])
        self.endpoint_mapping = endpoint_mapping or {"/auth/login": "login"}

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["path"] in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        endpoint = self.endpoint_mapping.get(scope["path"], "default")

        try:
            rate_info = await self.limiter.check_rate_limit(HTTPConnection(scope), endpoint)
        except RateLimitError as e:
            await self._reject(send, e)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.extend([
                    (b"x-ratelimit-limit", str(rate_info["limit"]).encode()),
                    (b"x-ratelimit-remaining", str(rate_info["remaining"]).encode()),
                    (b"x-ratelimit-reset", str(rate_info["reset_seconds"]).encode()),
                ])
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)

    async def _reject(self, send, error: RateLimitError) -> None:
        body = json.dumps({
            "success": False,
            "error": "rate_limit_exceeded",
            "message": error.message,
            "retry_after": error.retry_after,
        }).encode()
        await send({
            "type": "http.response.start",
            "status": 429,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
                (b"retry-after", str(error.retry_after or 60).encode()),
            ],
        })
        await send({"type": "http.response.body", "body": body})
