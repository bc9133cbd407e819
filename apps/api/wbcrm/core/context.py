from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

if TYPE_CHECKING:
    from wbcrm.platform.security.context import Principal


@dataclass
class RequestContext:
    """Per-request facts shared between middleware, dependencies and error envelopes."""

    request_id: str
    client_host: str | None
    user_id: str | None = None
    auth_source: str | None = None

    def bind_principal(self, principal: Principal) -> None:
        self.user_id = principal.id
        self.auth_source = principal.auth_source.value


def get_request_context(request: Request) -> RequestContext | None:
    return getattr(request.state, "context", None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        context = RequestContext(
            request_id=getattr(request.state, "correlation_id", None) or "",
            client_host=request.client.host if request.client else None,
        )
        request.state.context = context
        response = await call_next(request)
        response.headers["x-request-id"] = context.request_id
        return response
