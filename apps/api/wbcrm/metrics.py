from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


# HTTP
http_requests_total = Counter("http_requests_total", "HTTP requests by route template", ["method", "path", "status"])
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency by route template",
    ["method", "path"],
)
crm_rate_limited_total = Counter(
    "crm_rate_limited_total",
    "CRM mutations rejected by the per-user rate limit",
    ["route_group"],
)

# Access control
access_checks_total = Counter(
    "access_checks_total",
    "Per-record access checks by entity type and outcome",
    ["entity_type", "result"],
)
access_internal_requests_total = Counter(
    "access_internal_requests_total",
    "Requests classified as internal by trust signal",
    ["signal"],
)
share_grant_lookups_total = Counter(
    "share_grant_lookups_total",
    "Share grant store queries by entity type",
    ["entity_type"],
)

# Hosting renewals
hosting_renewal_activities_total = Counter(
    "hosting_renewal_activities_total",
    "Hosting renewal reminder activities by outcome",
    ["outcome"],
)

UNMATCHED_PATH = "<unmatched>"
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def resolve_http_path_label(request: Request) -> str:
    """Matched route template with every parameter collapsed to ``{id}``.

    Requests that matched no route share one label so raw ids never become label values.
    """

    template = getattr(request.scope.get("route"), "path", None)
    if not isinstance(template, str) or not template:
        return UNMATCHED_PATH
    return _PATH_PARAM_RE.sub("{id}", template)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_rate_limited(route_group: str) -> None:
    crm_rate_limited_total.labels(route_group=route_group).inc()


def observe_access_check(entity_type: str, allowed: bool) -> None:
    access_checks_total.labels(entity_type=entity_type, result="allow" if allowed else "deny").inc()


def observe_internal_request(signal: str) -> None:
    access_internal_requests_total.labels(signal=signal).inc()


def observe_share_grant_lookup(entity_type: str) -> None:
    share_grant_lookups_total.labels(entity_type=entity_type).inc()


def observe_hosting_renewal_activity(outcome: str) -> None:
    hosting_renewal_activities_total.labels(outcome=outcome).inc()


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
