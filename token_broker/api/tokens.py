"""Token endpoints polled by the frontend.

  GET /spotify-token?session_id=...   user token, refreshed on read
  GET /check-token?session_id=...     is the session still usable?
  GET /spotify-search-token           app-only token for catalogue search

Errors use ``{"error": "..."}`` bodies, which is what the frontend reads;
they are not FastAPI's ``{"detail": ...}`` shape.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from token_broker.api.dependencies import get_token_controller
from token_broker.services.token_access import (
    NoSessionError,
    RefreshFailedError,
    SearchTokenError,
    TokenAccessController,
)

router = APIRouter(tags=["tokens"])


class AccessTokenOut(BaseModel):
    access_token: str


class SearchTokenOut(BaseModel):
    access_token: str
    expires_in: int


class TokenStatusOut(BaseModel):
    valid: bool
    expires_in: int | None = None
    message: str | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/spotify-token", response_model=AccessTokenOut)
async def spotify_token(
    controller: Annotated[TokenAccessController, Depends(get_token_controller)],
    session_id: str | None = Query(None),
) -> AccessTokenOut | JSONResponse:
    try:
        access_token = await controller.get_valid_token(session_id)
    except NoSessionError:
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid or expired session")
    except RefreshFailedError:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to refresh token")
    return AccessTokenOut(access_token=access_token)


@router.get(
    "/check-token", response_model=TokenStatusOut, response_model_exclude_none=True
)
async def check_token(
    controller: Annotated[TokenAccessController, Depends(get_token_controller)],
    session_id: str | None = Query(None),
) -> TokenStatusOut:
    result = await controller.check_token(session_id)
    if result.valid:
        return TokenStatusOut(valid=True, expires_in=result.expires_in)
    return TokenStatusOut(valid=False, message=result.message)


@router.get("/spotify-search-token", response_model=SearchTokenOut)
async def spotify_search_token(
    controller: Annotated[TokenAccessController, Depends(get_token_controller)],
) -> SearchTokenOut | JSONResponse:
    try:
        token = await controller.get_search_token()
    except SearchTokenError:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get Spotify token"
        )
    return SearchTokenOut(access_token=token.access_token, expires_in=token.expires_in)
