from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wbcrm.context import correlation_scope


CORRELATION_HEADER = "x-correlation-id"
REQUEST_ID_HEADER = "x-request-id"
MAX_CORRELATION_ID_LENGTH = 128

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]+$")


def resolve_correlation_id(request: Request) -> str:
    """Caller-supplied id from ``X-Correlation-Id`` (or ``X-Request-Id``), else a fresh uuid4.

    Ids that are too long or carry characters unsafe for log lines are replaced.
    """

    for header in (CORRELATION_HEADER, REQUEST_ID_HEADER):
        candidate = (request.headers.get(header) or "").strip()
        if not candidate:
            continue
        if len(candidate) <= MAX_CORRELATION_ID_LENGTH and _SAFE_ID_RE.match(candidate):
            return candidate
        break
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = resolve_correlation_id(request)
        request.state.correlation_id = correlation_id

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        with correlation_scope(correlation_id):
            response = await call_next(request)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
