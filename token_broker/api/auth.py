from __future__ import annotations

from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from token_broker.api.dependencies import get_flow_controller, get_settings
from token_broker.core.config import Environment, Settings
from token_broker.services.authorization_flow import (
    AuthorizationFlowController,
    FlowError,
)

# ---------------------------------------------------------------------------
# Browser-facing half of the Authorization Code flow
#
#   GET /login     remember a CSRF state, 302 to the provider's consent page
#   GET /callback  provider sends the user back here with code + state;
#                  302 to the frontend with ?session_id=... or /?error=...
# ---------------------------------------------------------------------------

router = APIRouter(tags=["auth"])


@router.get("/login")
def login(
    flow: Annotated[AuthorizationFlowController, Depends(get_flow_controller)],
    env: Environment = Query("local"),
) -> RedirectResponse:
    url = flow.login(env)
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def callback(
    flow: Annotated[AuthorizationFlowController, Depends(get_flow_controller)],
    settings: Annotated[Settings, Depends(get_settings)],
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
) -> RedirectResponse:
    try:
        result = await flow.callback(code, state, upstream_error=error)
    except FlowError as exc:
        # Without a redeemable state we can't know which frontend started the
        # login, so fall back to the one this deployment serves by default.
        environment = exc.environment or settings.default_environment
        frontend = settings.frontend_url_for(environment)
        return RedirectResponse(
            url=f"{frontend}/?{urlencode({'error': exc.error_code})}",
            status_code=status.HTTP_302_FOUND,
        )

    frontend = settings.frontend_url_for(result.environment)
    return RedirectResponse(
        url=f"{frontend}?{urlencode({'session_id': result.session_id})}",
        status_code=status.HTTP_302_FOUND,
    )
