from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from wbcrm.core.context import get_request_context
from wbcrm.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("wbcrm.request")

# Health checks and metric scrapes log at debug.
_QUIET_PATHS = frozenset({"/health", "/metrics"})


def _request_fields(request: Request, status_code: int, started: float) -> dict[str, Any]:
    context = get_request_context(request)
    return {
        "method": request.method,
        "path": resolve_http_path_label(request),
        "status_code": status_code,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        "principal_id": context.user_id if context is not None else None,
        "auth_source": context.auth_source if context is not None else None,
    }


def _record(fields: dict[str, Any]) -> None:
    observe_http_request(
        method=fields["method"],
        path=fields["path"],
        status=fields["status_code"],
        duration=fields["duration_ms"] / 1000,
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            fields = _request_fields(request, 500, started)
            _record(fields)
            logger.error("http.error", exc_info=True, extra=fields)
            raise

        fields = _request_fields(request, response.status_code, started)
        _record(fields)
        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(level, "http.request", extra=fields)
        return response
