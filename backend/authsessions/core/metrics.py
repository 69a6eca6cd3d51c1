"""Prometheus metrics shared across the service."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "authsessions_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "authsessions_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
ROTATION_OUTCOMES = Counter(
    "authsessions_rotation_outcomes_total",
    "Refresh rotation attempts by outcome",
    ["outcome"],
)
SESSIONS_ISSUED = Counter(
    "authsessions_sessions_issued_total",
    "Session lineages created at login",
)
SESSIONS_REVOKED = Counter(
    "authsessions_sessions_revoked_total",
    "Session lineages revoked by reason",
    ["reason"],
)
