"""Prometheus metrics for the token broker.

Every metric the service exports is declared here, in one inventory.  The
modules that own a behaviour import the metric and update it where the
behaviour happens.

HTTP metrics are filled in by MetricsMiddleware for every request.  The
OAuth metrics answer the questions an operator asks about a token broker:

  - How many login attempts are waiting for the user to come back?
    (oauth_pending_authorizations)
  - How many sessions does this process hold?  (oauth_sessions)
  - Are callbacks failing, and why?  (oauth_callbacks_total{outcome})
  - Is the provider's token endpoint slow or erroring?
    (upstream_token_requests_total, upstream_token_request_duration_seconds)
  - Are refreshes being deduplicated under concurrent load?
    (token_refreshes_total{result="joined"})

Counters use the global default registry, so they survive across tests;
assert on deltas.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Fast-path token reads are in-memory; anything past 250ms went upstream.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# OAuth broker metrics
# ---------------------------------------------------------------------------

PENDING_AUTHORIZATIONS = Gauge(
    "oauth_pending_authorizations",
    "Login attempts whose CSRF state has not been redeemed or expired yet",
)

SESSIONS = Gauge(
    "oauth_sessions",
    "Sessions currently held in the in-memory session store",
)

CALLBACK_OUTCOMES = Counter(
    "oauth_callbacks_total",
    "Authorization callbacks by outcome",
    ["outcome"],  # "success", "state_mismatch", "token_exchange_failed", ...
)

UPSTREAM_REQUESTS = Counter(
    "upstream_token_requests_total",
    "Requests to the provider's token endpoint",
    ["grant_type", "outcome"],  # outcome: "ok", "rejected", "error"
)

UPSTREAM_DURATION = Histogram(
    "upstream_token_request_duration_seconds",
    "Latency of the provider's token endpoint",
    ["grant_type"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

TOKEN_REFRESHES = Counter(
    "token_refreshes_total",
    "Access token refreshes triggered by expired sessions",
    ["result"],  # "refreshed", "failed", "joined"
)
