"""
Rate limiting

Fixed-window counters per (policy, identifier), built on the limits library
that slowapi uses underneath:
- login:          keyed by submitted username, checked inside the login route
- api:            keyed by client IP, every other /api request
- protected_api:  keyed by client IP, register / forgot-password / reset-password-token

Every check consumes a unit, including the one that gets rejected, so hammering
an exhausted budget never earns free retries.

Counters live in an injected limits storage:
- MemoryStorage (default, single instance)
- RedisStorage (REDIS_URL set, shared across instances; degrades to in-memory on Redis errors)

The limiter is attached to app.state.rate_limiter; tests swap in a fresh instance.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from limits import RateLimitItem, RateLimitItemPerSecond, parse
from limits.aio.storage import MemoryStorage, RedisStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter
from limits.errors import StorageError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.audit_log import security_audit
from app.core.config import Settings, settings
from app.core.exceptions import AdmissionRejected
from app.core.request_utils import get_client_ip

logger = logging.getLogger(__name__)

LOGIN_POLICY = "login"
API_POLICY = "api"
PROTECTED_API_POLICY = "protected_api"

LOGIN_PATH = "/api/login"
PROTECTED_PREFIXES = (
    "/api/users/register",
    "/api/users/forgot-password",
    "/api/users/reset-password-token/",
)


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    limit: int
    window_seconds: int
    key_strategy: str  # "username" or "ip"

    @classmethod
    def from_string(cls, name: str, value: str, key_strategy: str) -> "RateLimitPolicy":
        item = parse(value)
        return cls(name=name, limit=item.amount, window_seconds=item.get_expiry(), key_strategy=key_strategy)

    @property
    def item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.limit, self.window_seconds)


@dataclass(frozen=True)
class RateLimitDecision:
    accepted: bool
    policy: str
    identifier: str
    limit: int
    remaining: int
    retry_after: int  # seconds until the current window resets


class RateLimiter:
    """
    Check-and-consume over a set of named policies.

    Storage errors (Redis down) are logged and the check is retried against a
    process-local MemoryStorage, like slowapi's in_memory_fallback.
    """

    def __init__(self, policies: Dict[str, RateLimitPolicy], storage: Optional[Storage] = None):
        self.policies = dict(policies)
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)
        self._fallback: Optional[FixedWindowRateLimiter] = None

    def get_policy(self, name: str) -> RateLimitPolicy:
        try:
            return self.policies[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit policy: {name}")

    def _fallback_strategy(self) -> FixedWindowRateLimiter:
        if self._fallback is None:
            self._fallback = FixedWindowRateLimiter(MemoryStorage())
        return self._fallback

    async def consume(self, policy_name: str, identifier: str) -> RateLimitDecision:
        if not identifier:
            raise ValueError("Rate limit identifier must not be empty")

        policy = self.get_policy(policy_name)
        item = policy.item

        try:
            accepted = await self._strategy.hit(item, policy.name, identifier)
            stats = await self._strategy.get_window_stats(item, policy.name, identifier)
        except StorageError as e:
            logger.warning(f"Rate limit storage failed for {policy.name}:{identifier}: {e.storage_error}. "
                           f"Falling back to in-memory.")
            fallback = self._fallback_strategy()
            accepted = await fallback.hit(item, policy.name, identifier)
            stats = await fallback.get_window_stats(item, policy.name, identifier)

        return RateLimitDecision(
            accepted=accepted,
            policy=policy.name,
            identifier=identifier,
            limit=policy.limit,
            remaining=stats.remaining,
            retry_after=max(1, math.ceil(stats.reset_time - time.time())),
        )

    async def reset(self, policy_name: str, identifier: str) -> None:
        policy = self.get_policy(policy_name)
        await self._strategy.clear(policy.item, policy.name, identifier)
        if self._fallback is not None:
            await self._fallback.clear(policy.item, policy.name, identifier)


def build_policies(config: Settings = settings) -> Dict[str, RateLimitPolicy]:
    return {
        LOGIN_POLICY: RateLimitPolicy.from_string(LOGIN_POLICY, config.RATE_LIMIT_LOGIN, "username"),
        API_POLICY: RateLimitPolicy.from_string(API_POLICY, config.RATE_LIMIT_API, "ip"),
        PROTECTED_API_POLICY: RateLimitPolicy.from_string(
            PROTECTED_API_POLICY, config.RATE_LIMIT_PROTECTED_API, "ip"
        ),
    }


def create_storage(config: Settings = settings) -> Storage:
    """Redis-backed counters when REDIS_URL is set, otherwise process-local."""
    if config.REDIS_URL:
        logger.info("Rate limit counters stored in Redis")
        return RedisStorage(
            f"async+{config.REDIS_URL}",
            wrap_exceptions=True,
            implementation="redispy",
        )
    logger.info("Rate limit counters stored in-memory (single instance only)")
    return MemoryStorage()


def create_rate_limiter(config: Settings = settings) -> RateLimiter:
    """Build the limiter from settings."""
    return RateLimiter(build_policies(config), create_storage(config))


def select_policy(path: str) -> Optional[str]:
    """
    Pick the gate policy for a request path.

    The login endpoint is not gated here; the login route consumes the
    username-keyed login policy itself.
    """
    if path == LOGIN_PATH:
        return None
    if path.startswith(PROTECTED_PREFIXES):
        return PROTECTED_API_POLICY
    if path.startswith("/api"):
        return API_POLICY
    return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Admission gate in front of every route.

    Over-budget requests get a 429 with Retry-After and one rate_limit_exceeded
    audit event; the route is never invoked.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        policy_name = select_policy(request.url.path)
        if policy_name is None:
            return await call_next(request)

        limiter: RateLimiter = request.app.state.rate_limiter
        client_ip = get_client_ip(request)
        decision = await limiter.consume(policy_name, client_ip)

        if not decision.accepted:
            security_audit.log_rate_limit_exceeded(
                identifier=client_ip,
                policy=policy_name,
                ip=client_ip,
                path=request.url.path,
                method=request.method,
            )
            return AdmissionRejected(retry_after=decision.retry_after).to_response()

        return await call_next(request)
