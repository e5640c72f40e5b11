"""Logging configuration for the token broker.

Two output shapes share one root handler on stdout:

  _ContainerFormatter -- single human-readable line per record, for a
    terminal during local development.

  _JsonFormatter -- one JSON object per line, for log aggregation in
    production.  Set LOG_JSON=true to switch.

WHAT NEVER GOES IN A LOG LINE
-------------------------------
This service handles bearer credentials for a third-party account:
authorization codes, access tokens, refresh tokens and the client secret.
None of those are ever passed to a logger.  Session ids and CSRF states are
opaque handles that grant access on their own, so they are logged only
through redact(), which keeps a short prefix for correlation.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

_REDACT_PREFIX_LEN = 6

# Third-party loggers held at WARNING or above.  httpx logs every request
# line (with the full URL) at INFO.
_QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx")


def redact(value: str | None) -> str:
    """Shorten an opaque handle to a prefix that is safe to log."""
    if not value:
        return "-"
    return f"{value[:_REDACT_PREFIX_LEN]}…"


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    Lines look like::

        2024-05-01T12:00:00.123+0000 WARNING  token_broker.x  msg  rid=ab12  [x.py:7]

    The ``rid=`` part appears once RequestContextMiddleware has tagged the
    record; WARNING and above also get a [filename:lineno] suffix.
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"

    def __init__(self) -> None:
        super().__init__(self._BASE_FMT, datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        # .NNN goes before the +0000 offset
        return f"{base[:-5]}.{int(record.msecs):03d}{base[-5:]}"

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            line += f"  rid={request_id}"
        if record.levelno >= logging.WARNING:
            line += f"  [{record.filename}:{record.lineno}]"
        return line


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context attached by RequestContextMiddleware (request_id, method, path,
    status_code, duration_ms) and by the OAuth services via ``extra=``
    (session_id, stage) become top-level keys.  Absent fields are omitted.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "session_id",
        "stage",
    )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.isoformat(timespec="milliseconds")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Point the root logger at stdout with the chosen formatter.

    Unknown level names fall back to INFO.  Calling this again replaces the
    previous handler, so each app built by create_app() starts clean.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
