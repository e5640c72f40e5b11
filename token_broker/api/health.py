"""Liveness and readiness probes.

/health answers "is the process alive?"; /ready answers "should traffic be
routed here?".  All state is in process memory and the provider is only
contacted on demand, so neither probe has a dependency to check.  An
unreachable provider shows up in upstream_token_requests_total instead.
"""

from __future__ import annotations

from fastapi import APIRouter, Response

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {"status": "OK"}


@router.get("/ready")
async def ready() -> Response:
    return Response(status_code=200)
