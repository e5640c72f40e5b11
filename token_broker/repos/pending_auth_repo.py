from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from token_broker.core.config import Environment
from token_broker.core.logging import redact
from token_broker.core.metrics import PENDING_AUTHORIZATIONS
from token_broker.models.pending_authorization import PendingAuthorization
from token_broker.services.token_generator import generate_handle

logger = logging.getLogger(__name__)

STATE_TTL_SEC = 600  # 10 minutes for the user to finish the provider's consent page


class PendingAuthorizationLedger(Protocol):
    def begin(self, environment: Environment) -> str: ...
    def consume(self, state: str) -> Environment | None: ...
    def sweep(self, now: float | None = None) -> int: ...
    def __len__(self) -> int: ...


class InMemoryPendingAuthorizationLedger:
    """CSRF state ledger for in-flight logins.

    Every method is synchronous and never awaits, so on a single event loop
    a ``consume`` cannot interleave with another handler's ``consume`` of the
    same state: exactly one caller gets the environment back.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = STATE_TTL_SEC,
        clock: Callable[[], float] = time.time,
        generate: Callable[[], str] = generate_handle,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._generate = generate
        self._by_state: dict[str, PendingAuthorization] = {}

    def __len__(self) -> int:
        return len(self._by_state)

    def begin(self, environment: Environment) -> str:
        now = self._clock()
        self.sweep(now)

        state = self._generate()
        self._by_state[state] = PendingAuthorization(
            state=state, created_at=now, environment=environment
        )
        PENDING_AUTHORIZATIONS.set(len(self._by_state))
        logger.debug(
            "pending authorization created  state=%s env=%s",
            redact(state),
            environment,
        )
        return state

    def consume(self, state: str) -> Environment | None:
        """Remove and return the environment for ``state``.

        Returns None when the state was never issued, was already redeemed,
        or has outlived the TTL (even if the sweep has not run yet).
        """
        record = self._by_state.pop(state, None)
        PENDING_AUTHORIZATIONS.set(len(self._by_state))
        if record is None:
            return None
        if record.is_expired(self._clock(), self._ttl):
            logger.info(
                "pending authorization expired before callback  state=%s",
                redact(state),
            )
            return None
        return record.environment

    def sweep(self, now: float | None = None) -> int:
        """Drop every entry older than the TTL. Returns how many were removed."""
        if now is None:
            now = self._clock()
        expired = [
            state
            for state, record in self._by_state.items()
            if record.is_expired(now, self._ttl)
        ]
        for state in expired:
            del self._by_state[state]
        if expired:
            logger.debug("swept %d expired pending authorizations", len(expired))
        PENDING_AUTHORIZATIONS.set(len(self._by_state))
        return len(expired)
