from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wbcrm.context import get_correlation_id
from wbcrm.core.auth import decode_session_claims
from wbcrm.core.config import get_settings
from wbcrm.metrics import observe_rate_limited
from wbcrm.platform.security.identity import detect_internal_signal


WINDOW_SECONDS = 60
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
CRM_PREFIX = "/api/crm"


@dataclass
class TokenBucket:
    capacity: int
    window_seconds: int
    tokens: float = field(init=False)
    updated_at: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        self.tokens = float(self.capacity)

    @property
    def refill_per_second(self) -> float:
        return self.capacity / float(self.window_seconds)

    def consume(self, now: float) -> int:
        """Take one token; return 0 on success or the seconds until one is available."""

        self.tokens = min(float(self.capacity), self.tokens + (now - self.updated_at) * self.refill_per_second)
        self.updated_at = now
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return 0
        return max(1, math.ceil((1.0 - self.tokens) / self.refill_per_second))


class MutationRateLimiter:
    """Buckets keyed by ``(user id, route group)``; a new capacity resets the bucket."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], TokenBucket] = {}

    def check(self, user_id: str, route_group: str, per_minute: int) -> int:
        if per_minute <= 0:
            return WINDOW_SECONDS
        key = (user_id, route_group)
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.capacity != per_minute:
                bucket = TokenBucket(capacity=per_minute, window_seconds=WINDOW_SECONDS)
                self._buckets[key] = bucket
            return bucket.consume(time.monotonic())

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


limiter = MutationRateLimiter()


def route_group(path: str) -> str:
    """``/api/crm/leads/abc/contacts`` -> ``leads``."""

    remainder = path[len(CRM_PREFIX):].strip("/")
    return remainder.split("/", 1)[0] or "crm"


def is_limited_request(request: Request) -> bool:
    return request.method.upper() in MUTATING_METHODS and request.url.path.startswith(CRM_PREFIX)


class CrmMutationRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttles CRM writes per session user and route group.

    Internal callers (trusted network or shared secret) are not throttled.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or not is_limited_request(request):
            return await call_next(request)
        if detect_internal_signal(request, settings) is not None:
            return await call_next(request)

        claims = decode_session_claims(request, settings)
        user_id = claims.sub if claims is not None else "anonymous"
        group = route_group(request.url.path)
        retry_after = limiter.check(user_id, group, settings.rate_limit_crm_mutations_per_minute)
        if retry_after == 0:
            return await call_next(request)
        observe_rate_limited(group)
        return _rate_limited(request, retry_after)


def _rate_limited(request: Request, retry_after: int) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    response = JSONResponse(
        status_code=429,
        content={
            "code": "RATE_LIMITED",
            "message": "Too many requests",
            "details": {"retry_after_seconds": retry_after},
            "correlation_id": correlation_id,
        },
    )
    response.headers["Retry-After"] = str(retry_after)
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


def reset_rate_limiter() -> None:
    limiter.clear()
