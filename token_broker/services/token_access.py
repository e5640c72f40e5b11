"""Serve access tokens for a session, refreshing them on read.

REFRESH ON READ
-----------------
There is no background timer.  A token's validity is checked when a caller
asks for it:

  now <  expires_at  -> return the stored token; no upstream call, no write
  now >= expires_at  -> one refresh_token grant, store the result, return it

If the refresh fails the stale record stays where it is.  The caller gets
RefreshFailedError and is expected to send the user through /login again;
keeping the record means a later call can retry the same refresh token.

ONE REFRESH IN FLIGHT PER SESSION
-----------------------------------
A frontend often fires several requests at once right after the token
expires.  If each one refreshed independently, the provider could rotate
the refresh token on the first call and reject the rest.  So the first
caller starts a refresh task for the session and everyone else who arrives
while it runs awaits that same task.  asyncio.shield() keeps one caller's
cancellation (client disconnect) from killing the refresh for the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from token_broker.core.logging import redact
from token_broker.core.metrics import TOKEN_REFRESHES
from token_broker.models.token_record import TokenRecord
from token_broker.repos.session_repo import SessionStore
from token_broker.services.token_generator import is_well_formed
from token_broker.services.upstream_client import UpstreamError, UpstreamTokenClient

logger = logging.getLogger(__name__)


class AccessError(Exception):
    pass


class NoSessionError(AccessError):
    pass


class RefreshFailedError(AccessError):
    pass


class SearchTokenError(AccessError):
    pass


@dataclass(frozen=True, slots=True)
class SearchToken:
    access_token: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class TokenStatus:
    valid: bool
    expires_in: int = 0
    message: str | None = None


class TokenAccessController:
    def __init__(
        self,
        sessions: SessionStore,
        upstream: UpstreamTokenClient,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions = sessions
        self._upstream = upstream
        self._clock = clock
        self._inflight: dict[str, asyncio.Task[TokenRecord]] = {}

    async def get_valid_token(self, session_id: str | None) -> str:
        record = await self._current_record(session_id)
        return record.access_token

    async def check_token(self, session_id: str | None) -> TokenStatus:
        """Report whether the session can still produce a token.

        Same refresh-on-read behaviour as get_valid_token, folded into a
        status instead of an exception.
        """
        try:
            record = await self._current_record(session_id)
        except NoSessionError:
            return TokenStatus(
                valid=False,
                message="Invalid or expired session. Please authenticate again.",
            )
        except RefreshFailedError:
            return TokenStatus(
                valid=False,
                message=(
                    "Token expired and could not be refreshed. "
                    "Please authenticate again."
                ),
            )
        return TokenStatus(
            valid=True, expires_in=record.seconds_remaining(self._clock())
        )

    async def get_search_token(self) -> SearchToken:
        # App-only token; not tied to any session and never stored.
        try:
            grant = await self._upstream.client_credentials()
        except UpstreamError as exc:
            raise SearchTokenError(exc.detail) from exc
        return SearchToken(access_token=grant.access_token, expires_in=grant.expires_in)

    async def _current_record(self, session_id: str | None) -> TokenRecord:
        if session_id is None or not is_well_formed(session_id):
            raise NoSessionError("malformed session id")

        record = self._sessions.get(session_id)
        if record is None:
            logger.info(
                "token requested for unknown session  session=%s", redact(session_id)
            )
            raise NoSessionError("unknown session")

        if not record.is_expired(self._clock()):
            return record
        return await self._refresh(session_id, record)

    async def _refresh(self, session_id: str, record: TokenRecord) -> TokenRecord:
        task = self._inflight.get(session_id)
        if task is None or task.done():
            task = asyncio.create_task(self._do_refresh(session_id, record))
            self._inflight[session_id] = task
            task.add_done_callback(lambda t: self._forget(session_id, t))
        else:
            TOKEN_REFRESHES.labels(result="joined").inc()
            logger.debug("joining in-flight refresh  session=%s", redact(session_id))
        return await asyncio.shield(task)

    def _forget(self, session_id: str, task: asyncio.Task[TokenRecord]) -> None:
        if self._inflight.get(session_id) is task:
            del self._inflight[session_id]
        # Every waiter may have been cancelled while the shielded refresh ran
        # on.  _do_refresh already logged the failure, so mark it retrieved.
        if not task.cancelled():
            task.exception()

    async def _do_refresh(self, session_id: str, record: TokenRecord) -> TokenRecord:
        logger.info(
            "access token expired, refreshing  session=%s",
            redact(session_id),
            extra={"session_id": redact(session_id)},
        )
        try:
            grant = await self._upstream.refresh(record.refresh_token)
        except UpstreamError as exc:
            TOKEN_REFRESHES.labels(result="failed").inc()
            logger.warning(
                "refresh failed, keeping stale record  session=%s status=%s detail=%s",
                redact(session_id),
                exc.status_code,
                exc.detail,
                extra={"session_id": redact(session_id), "stage": exc.stage},
            )
            raise RefreshFailedError(exc.detail) from exc

        updated = self._sessions.update(
            session_id,
            access_token=grant.access_token,
            expires_in=grant.expires_in,
            refresh_token=grant.refresh_token,
        )
        if updated is None:
            raise NoSessionError("session disappeared during refresh")
        TOKEN_REFRESHES.labels(result="refreshed").inc()
        logger.info(
            "access token refreshed  session=%s expires_in=%ds rotated=%s",
            redact(session_id),
            grant.expires_in,
            grant.refresh_token is not None,
        )
        return updated
