from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from typing import Protocol

from token_broker.core.logging import redact
from token_broker.core.metrics import SESSIONS
from token_broker.models.token_grant import TokenGrant
from token_broker.models.token_record import TokenRecord
from token_broker.services.token_generator import generate_handle

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def create(self, grant: TokenGrant) -> str: ...
    def get(self, session_id: str) -> TokenRecord | None: ...
    def update(
        self,
        session_id: str,
        access_token: str,
        expires_in: int,
        refresh_token: str | None = None,
    ) -> TokenRecord | None: ...
    def __len__(self) -> int: ...


class InMemorySessionStore:
    """Session id -> TokenRecord, the only owner of issued credentials.

    Records are immutable; ``update`` swaps in a new record under the same
    session id.  Nothing is ever deleted: sessions live until the process
    exits.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        generate: Callable[[], str] = generate_handle,
    ) -> None:
        self._clock = clock
        self._generate = generate
        self._by_session_id: dict[str, TokenRecord] = {}

    def __len__(self) -> int:
        return len(self._by_session_id)

    def create(self, grant: TokenGrant) -> str:
        session_id = self._generate()
        self._by_session_id[session_id] = TokenRecord(
            session_id=session_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or "",
            expires_at=self._clock() + grant.expires_in,
        )
        SESSIONS.set(len(self._by_session_id))
        logger.info(
            "session created  session=%s expires_in=%ds",
            redact(session_id),
            grant.expires_in,
            extra={"session_id": redact(session_id)},
        )
        return session_id

    def get(self, session_id: str) -> TokenRecord | None:
        return self._by_session_id.get(session_id)

    def update(
        self,
        session_id: str,
        access_token: str,
        expires_in: int,
        refresh_token: str | None = None,
    ) -> TokenRecord | None:
        """Replace the access token and expiry for an existing session.

        The refresh token is only replaced when the provider sent a new one.
        Returns the updated record, or None if the session does not exist.
        """
        record = self._by_session_id.get(session_id)
        if record is None:
            return None
        updated = dataclasses.replace(
            record,
            access_token=access_token,
            expires_at=self._clock() + expires_in,
            refresh_token=refresh_token or record.refresh_token,
        )
        self._by_session_id[session_id] = updated
        return updated
