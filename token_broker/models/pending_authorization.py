from __future__ import annotations

from dataclasses import dataclass

from token_broker.core.config import Environment


@dataclass(frozen=True, slots=True)
class PendingAuthorization:
    """A login attempt waiting for the provider to redirect back.

    ``created_at`` is a Unix timestamp (seconds).  The record is keyed by its
    CSRF state in the ledger and is redeemable at most once.
    """

    state: str
    created_at: float
    environment: Environment

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at > ttl_seconds
