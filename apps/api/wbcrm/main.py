from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from wbcrm.api.routes import router as api_router
from wbcrm.core.config import get_settings
from wbcrm.core.context import RequestContextMiddleware
from wbcrm.core.events import LifecycleEvent, event_bus
from wbcrm.logging import configure_logging
from wbcrm.middleware.correlation_id import CorrelationIdMiddleware
from wbcrm.middleware.rate_limit import CrmMutationRateLimitMiddleware
from wbcrm.middleware.request_logging import RequestLoggingMiddleware
from wbcrm.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("wbcrm.lifecycle")
_subscriptions_registered = False

# Ownership and sharing changes are logged as access events.
ACCESS_EVENT_PATTERNS = ("crm.share.*", "crm.owner.*")


def _on_system_started(event: LifecycleEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_access_event(event: LifecycleEvent) -> None:
    payload = event.payload.get("payload")
    if not isinstance(payload, dict):
        return
    logger.info(
        "access_event",
        extra={
            "event_name": event.name,
            "principal_id": event.payload.get("actor_user_id"),
            "entity_type": payload.get("entity_type"),
            "entity_id": payload.get("entity_id"),
            "target_user_id": payload.get("target_user_id"),
        },
    )


def register_subscriptions() -> None:
    global _subscriptions_registered
    if _subscriptions_registered:
        return
    event_bus.subscribe("system.started", _on_system_started)
    for pattern in ACCESS_EVENT_PATTERNS:
        event_bus.subscribe(pattern, _on_access_event)
    _subscriptions_registered = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    register_subscriptions()
    event_bus.publish("system.started", {"service": app.title})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.app_debug, lifespan=lifespan)
app.add_middleware(CrmMutationRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)
if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
