from __future__ import annotations

from pydantic import BaseModel, Field


class TokenGrant(BaseModel):
    """Successful response body from the provider's token endpoint.

    ``refresh_token`` is absent on client-credentials grants and on refreshes
    where the provider chose not to rotate it.
    """

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    expires_in: int = Field(..., gt=0)
    refresh_token: str | None = None
    scope: str | None = None

    def __repr__(self) -> str:
        return (
            f"TokenGrant(token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r})"
        )
