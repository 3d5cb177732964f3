from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from projects_api.api.routes import router as api_router
from projects_api.core.config import get_settings
from projects_api.core.context import RequestContextMiddleware
from projects_api.core.events import InternalEvent, event_bus
from projects_api.logging import configure_logging
from projects_api.middleware.correlation_id import CorrelationIdMiddleware
from projects_api.middleware.request_logging import RequestLoggingMiddleware
from projects_api.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("projects_api.lifecycle")
_subscriptions_registered = False

_project_event_types = [
    "projects.project.created",
    "projects.project.updated",
    "projects.project.deleted",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_project_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    project_id = payload.get("project_id") if isinstance(payload, dict) else None
    logger.info("project_event", extra={"event_name": event.name, "project_id": project_id})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _project_event_types:
            event_bus.subscribe(event_name, _on_project_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "projects-api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
