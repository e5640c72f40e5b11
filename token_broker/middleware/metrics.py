"""Prometheus metrics middleware: count, time and gauge every HTTP request.

The endpoint label is the matched route's path template.  Requests that match
no route (scanners probing /wp-login.php and the like) share the single label
"unmatched", so a stray client cannot grow the label set without bound.
/metrics itself is not instrumented, so scrapes do not inflate the counts.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from token_broker.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

_UNINSTRUMENTED = frozenset({"/metrics"})
UNMATCHED = "unmatched"


def _endpoint_label(request: Request) -> str:
    # The router stores the matched route in the scope once call_next returns.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _UNINSTRUMENTED:
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        started = time.monotonic()
        # An exception escaping the handler is counted as a 500.
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed = time.monotonic() - started
            endpoint = _endpoint_label(request)
            ACTIVE_REQUESTS.dec()
            REQUEST_COUNT.labels(
                method=request.method, endpoint=endpoint, status_code=str(status_code)
            ).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                elapsed
            )

        return response
