"""Request context middleware: one id per request, carried into every log line.

A login round-trip touches several handlers (/login, the provider, /callback,
then /spotify-token), and an event loop interleaves their log lines.  The
request id, kept in a ContextVar so each asyncio task sees its own value, is
what ties a WARNING from the token client back to the request that caused it.
Callers may supply their own id in X-Request-ID; a well-formed one is kept,
anything else is replaced by a fresh UUID.  The id is echoed back either way.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._:-]{1,128}")


class _RequestContextFilter(logging.Filter):
    """Attach the current request id to every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_context_filter() -> None:
    # Filters on the root logger only see records logged to the root logger
    # itself, so the filter goes on the handlers, which every record reaches.
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, time the request, log one summary line.

    Query strings are left out of the summary: /callback carries the
    authorization code and /spotify-token carries the session id.  Server
    errors are summarised at WARNING so they survive LOG_LEVEL=warning.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _incoming_request_id(request) or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        started = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        path = request.url.path
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms)",
            request.method,
            path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers["X-Request-ID"] = req_id
        return response


def _incoming_request_id(request: Request) -> str | None:
    # The id is echoed into every log line, so only short printable tokens
    # from the client are trusted.
    candidate = request.headers.get("x-request-id", "")
    if _REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return None
