from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Credentials held for one session.

    ``expires_at`` is an absolute Unix timestamp: issuance time plus the
    lifetime the provider reported.  The access token is only served while
    ``now < expires_at``.
    """

    session_id: str
    access_token: str
    refresh_token: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def seconds_remaining(self, now: float) -> int:
        return max(0, int(self.expires_at - now))

    def __repr__(self) -> str:
        # Keep bearer credentials out of tracebacks and debug output.
        return (
            f"TokenRecord(session_id={self.session_id[:6]!r}…, "
            f"expires_at={self.expires_at!r})"
        )
