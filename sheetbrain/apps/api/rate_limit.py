from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
import time
from typing import Any, Callable

from redis.asyncio import Redis

from sheetbrain.core.config import Settings
from sheetbrain.core.errors import AuditRequestError, RateLimiterUnavailableError
from sheetbrain.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

FAIL_MODE_OPEN = "open"
FAIL_MODE_CLOSED = "closed"


@dataclass(frozen=True)
class RateLimitDecision:
    # Capture the outcome and retry hints for a rate-limited request.
    allowed: bool
    limit: int
    remaining: int
    retry_after_s: int
    reset_at: datetime
    degraded: bool = False


# Fixed window counter: first hit in a window sets the expiry, PTTL reports time to reset.
_FIXED_WINDOW_LUA = r"""
local window_ms = tonumber(ARGV[1])
local count = redis.call("INCR", KEYS[1])
if count == 1 then
  redis.call("PEXPIRE", KEYS[1], window_ms)
end
local ttl = redis.call("PTTL", KEYS[1])
if ttl < 0 then
  redis.call("PEXPIRE", KEYS[1], window_ms)
  ttl = window_ms
end
return {count, ttl}
"""


def build_redis(settings: Settings) -> Redis:
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


class RateLimiter:
    def __init__(
        self,
        redis: Any,
        *,
        requests: int,
        window_ms: int,
        prefix: str = "sheetbrain:rl",
        fail_mode: str = FAIL_MODE_OPEN,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._redis = redis
        self._requests = max(1, int(requests))
        self._window_ms = max(1, int(window_ms))
        self._prefix = prefix
        self._fail_mode = (fail_mode or FAIL_MODE_OPEN).lower()
        # Allow injecting time for deterministic tests.
        self._time_provider = time_provider or time.time

    @classmethod
    def from_settings(cls, redis: Any, settings: Settings) -> "RateLimiter":
        return cls(
            redis,
            requests=settings.rate_limit_requests,
            window_ms=settings.rate_limit_window_ms,
            prefix=settings.rl_redis_prefix,
            fail_mode=settings.rl_fail_mode,
        )

    def _bucket_key(self, org_id: str) -> str:
        return f"{self._prefix}:org:{org_id}"

    async def check(self, org_id: str) -> RateLimitDecision:
        now_ms = int(self._time_provider() * 1000)
        try:
            result = await self._redis.eval(
                _FIXED_WINDOW_LUA, 1, self._bucket_key(org_id), self._window_ms
            )
            count = int(result[0])
            ttl_ms = int(result[1])
        except Exception as exc:  # noqa: BLE001 - guard against Redis connectivity failures
            increment_counter("rate_limit_backend_errors_total")
            if self._fail_mode == FAIL_MODE_CLOSED:
                raise RateLimiterUnavailableError("Rate limiting unavailable") from exc
            logger.warning("rate_limit_degraded org_id=%s error=%s", org_id, exc)
            return RateLimitDecision(
                allowed=True,
                limit=self._requests,
                remaining=self._requests,
                retry_after_s=0,
                reset_at=_from_ms(now_ms + self._window_ms),
                degraded=True,
            )

        allowed = count <= self._requests
        return RateLimitDecision(
            allowed=allowed,
            limit=self._requests,
            remaining=max(0, self._requests - count),
            retry_after_s=0 if allowed else max(1, int(math.ceil(ttl_ms / 1000.0))),
            reset_at=_from_ms(now_ms + ttl_ms),
        )


def _from_ms(value_ms: int) -> datetime:
    return datetime.fromtimestamp(value_ms / 1000.0, tz=timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_throttle_error(decision: RateLimitDecision) -> AuditRequestError:
    # Stable 429 payload with retry hints for the add-on's backoff.
    return AuditRequestError(
        429,
        "Too many requests",
        extra={"retryAfter": decision.retry_after_s},
        headers={
            "Retry-After": str(decision.retry_after_s),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": _iso(decision.reset_at),
        },
    )


def build_unavailable_error() -> AuditRequestError:
    return AuditRequestError(503, "Rate limiting unavailable")


async def enforce_rate_limit(limiter: RateLimiter | None, org_id: str) -> RateLimitDecision | None:
    # A missing limiter means rate limiting is disabled for this deployment.
    if limiter is None:
        return None
    try:
        decision = await limiter.check(org_id)
    except RateLimiterUnavailableError as exc:
        raise build_unavailable_error() from exc
    if not decision.allowed:
        increment_counter("rate_limited_total")
        raise build_throttle_error(decision)
    return decision
