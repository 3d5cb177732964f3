from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

project_saves_total = Counter(
    "project_saves_total",
    "Project save attempts by outcome",
    ["operation", "outcome", "scoped"],
)

custom_field_validation_failures_total = Counter(
    "custom_field_validation_failures_total",
    "Custom field validation failures by reason",
    ["reason"],
)

custom_field_auto_activations_total = Counter(
    "custom_field_auto_activations_total",
    "Custom field mappings created implicitly",
    ["source"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_project_save(operation: str, outcome: str, scoped: bool) -> None:
    project_saves_total.labels(operation=operation, outcome=outcome, scoped=str(scoped).lower()).inc()


def observe_validation_failures(reasons: list[str]) -> None:
    for reason in reasons:
        custom_field_validation_failures_total.labels(reason=reason).inc()


def observe_auto_activations(source: str, count: int = 1) -> None:
    if count > 0:
        custom_field_auto_activations_total.labels(source=source).inc(count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
