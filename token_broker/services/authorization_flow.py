from __future__ import annotations

import logging
from dataclasses import dataclass

from token_broker.core.config import Environment, Settings
from token_broker.core.logging import redact
from token_broker.core.metrics import CALLBACK_OUTCOMES
from token_broker.repos.pending_auth_repo import PendingAuthorizationLedger
from token_broker.repos.session_repo import SessionStore
from token_broker.services.token_generator import is_well_formed
from token_broker.services.upstream_client import UpstreamError, UpstreamTokenClient

logger = logging.getLogger(__name__)


class FlowError(Exception):
    """A callback that did not produce a session.

    ``error_code`` is what the browser sees in ``/?error=...``.
    ``environment`` is set when the failed callback could still be tied to a
    login attempt, so the caller can send the user back to the right frontend.
    """

    error_code = "flow_error"

    def __init__(
        self, message: str, environment: Environment | None = None
    ) -> None:
        super().__init__(message)
        self.environment = environment


class InvalidStateError(FlowError):
    error_code = "state_mismatch"


class ExchangeFailedError(FlowError):
    def __init__(
        self, message: str, environment: Environment | None, *, rejected: bool
    ) -> None:
        super().__init__(message, environment)
        # Provider answered with an error status vs. never answered usefully.
        self.error_code = (
            "token_exchange_failed" if rejected else "token_exchange_error"
        )


@dataclass(frozen=True, slots=True)
class CallbackResult:
    session_id: str
    environment: Environment


class AuthorizationFlowController:
    """Login redirect and callback handling for the Authorization Code flow.

    login()    -- record a fresh CSRF state, return the provider consent URL
    callback() -- redeem the state once, exchange the code, open a session

    A session is created only after the exchange succeeds; every failure
    path leaves the session store untouched.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: PendingAuthorizationLedger,
        sessions: SessionStore,
        upstream: UpstreamTokenClient,
    ) -> None:
        self._settings = settings
        self._ledger = ledger
        self._sessions = sessions
        self._upstream = upstream

    def login(self, environment: Environment) -> str:
        state = self._ledger.begin(environment)
        redirect_uri = self._settings.redirect_uri_for(environment)
        logger.info(
            "AUTH FLOW [login] state issued  state=%s env=%s redirect_uri=%s",
            redact(state),
            environment,
            redirect_uri,
        )
        return self._upstream.build_authorization_url(state, redirect_uri)

    async def callback(
        self,
        code: str | None,
        state: str | None,
        upstream_error: str | None = None,
    ) -> CallbackResult:
        # --- CSRF check: the state must be one we issued, redeemed once -----
        # The state is consumed even when the provider reports an error, so a
        # denied consent cannot be replayed later with a forged code.
        environment: Environment | None = None
        if state and is_well_formed(state):
            environment = self._ledger.consume(state)
        if environment is None:
            CALLBACK_OUTCOMES.labels(outcome="state_mismatch").inc()
            logger.warning("AUTH FLOW [callback] FAIL: unknown or reused state")
            raise InvalidStateError("state is unknown, expired or already used")

        if upstream_error is not None or not code:
            CALLBACK_OUTCOMES.labels(outcome="state_mismatch").inc()
            logger.warning(
                "AUTH FLOW [callback] FAIL: provider returned error=%s",
                upstream_error or "missing_code",
            )
            raise InvalidStateError(
                f"authorization was not granted: {upstream_error or 'missing code'}",
                environment,
            )
        logger.info("AUTH FLOW [callback] state redeemed  env=%s", environment)

        # --- Code exchange ----------------------------------------------------
        try:
            grant = await self._upstream.exchange_code(
                code, self._settings.redirect_uri_for(environment)
            )
        except UpstreamError as exc:
            error = ExchangeFailedError(
                exc.detail, environment, rejected=exc.status_code is not None
            )
            CALLBACK_OUTCOMES.labels(outcome=error.error_code).inc()
            logger.warning(
                "AUTH FLOW [callback] FAIL: code exchange failed  status=%s detail=%s",
                exc.status_code,
                exc.detail,
                extra={"stage": exc.stage},
            )
            raise error from exc

        session_id = self._sessions.create(grant)
        CALLBACK_OUTCOMES.labels(outcome="success").inc()
        logger.info(
            "AUTH FLOW [callback] session issued  session=%s env=%s",
            redact(session_id),
            environment,
        )
        return CallbackResult(session_id=session_id, environment=environment)
