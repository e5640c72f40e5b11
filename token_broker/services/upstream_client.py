"""Client for the music provider's accounts service.

Builds the authorization URL the browser is sent to, and wraps the three
grants the broker needs from ``POST {accounts}/api/token``:

  authorization_code  -- first exchange after the user consents
  refresh_token       -- renew an expired user access token
  client_credentials  -- app-only token for catalogue search

Every token request authenticates with HTTP Basic (client id/secret).
Non-2xx answers, transport failures, timeouts and malformed bodies all come
back as UpstreamError; nothing here retries.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from token_broker.core.config import Settings
from token_broker.core.metrics import UPSTREAM_DURATION, UPSTREAM_REQUESTS
from token_broker.models.token_grant import TokenGrant

logger = logging.getLogger(__name__)

SCOPE = (
    "streaming user-read-email user-read-private "
    "user-read-playback-state user-modify-playback-state"
)


class UpstreamError(Exception):
    """The token endpoint could not produce a usable grant.

    ``status_code`` is the provider's HTTP status when it answered, or None
    for transport failures, timeouts and unparseable bodies.
    """

    def __init__(self, stage: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.detail = detail
        self.status_code = status_code


class UpstreamTokenClient(Protocol):
    def build_authorization_url(self, state: str, redirect_uri: str) -> str: ...
    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant: ...
    async def refresh(self, refresh_token: str) -> TokenGrant: ...
    async def client_credentials(self) -> TokenGrant: ...
    async def aclose(self) -> None: ...


class SpotifyTokenClient:
    """httpx-backed UpstreamTokenClient for the Spotify accounts service."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = settings.client_id
        self._authorize_url = f"{settings.accounts_base_url}/authorize"
        self._token_url = f"{settings.accounts_base_url}/api/token"
        # One pooled client for the process; closed by the app lifespan.
        self._http = httpx.AsyncClient(
            auth=httpx.BasicAuth(settings.client_id, settings.client_secret),
            timeout=settings.upstream_timeout,
            transport=transport,
        )

    def build_authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "scope": SCOPE,
            "redirect_uri": redirect_uri,
            "state": state,
            "show_dialog": "true",
        }
        return f"{self._authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        grant = await self._request_token(
            "authorization_code",
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        if not grant.refresh_token:
            raise UpstreamError(
                "authorization_code", "token response did not include a refresh_token"
            )
        return grant

    async def refresh(self, refresh_token: str) -> TokenGrant:
        return await self._request_token(
            "refresh_token",
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    async def client_credentials(self) -> TokenGrant:
        return await self._request_token(
            "client_credentials", {"grant_type": "client_credentials"}
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request_token(self, stage: str, form: dict[str, str]) -> TokenGrant:
        start = time.monotonic()
        try:
            response = await self._http.post(self._token_url, data=form)
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS.labels(grant_type=stage, outcome="error").inc()
            logger.warning(
                "token endpoint unreachable  grant_type=%s error=%s",
                stage,
                type(exc).__name__,
                extra={"stage": stage},
            )
            raise UpstreamError(
                stage, f"transport error: {type(exc).__name__}"
            ) from exc
        finally:
            UPSTREAM_DURATION.labels(grant_type=stage).observe(time.monotonic() - start)

        if not response.is_success:
            UPSTREAM_REQUESTS.labels(grant_type=stage, outcome="rejected").inc()
            detail = _error_detail(response)
            logger.warning(
                "token endpoint rejected request  grant_type=%s status=%d error=%s",
                stage,
                response.status_code,
                detail,
                extra={"stage": stage},
            )
            raise UpstreamError(stage, detail, status_code=response.status_code)

        try:
            grant = TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            UPSTREAM_REQUESTS.labels(grant_type=stage, outcome="error").inc()
            logger.warning(
                "token endpoint returned an unusable body  grant_type=%s",
                stage,
                extra={"stage": stage},
            )
            raise UpstreamError(stage, "malformed token response") from exc

        UPSTREAM_REQUESTS.labels(grant_type=stage, outcome="ok").inc()
        logger.debug(
            "token endpoint ok  grant_type=%s expires_in=%d", stage, grant.expires_in
        )
        return grant


def _error_detail(response: httpx.Response) -> str:
    """Pull the OAuth ``error`` code out of a failure body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            description = body.get("error_description")
            return f"{error}: {description}" if description else error
        if isinstance(error, dict) and "message" in error:
            return str(error["message"])
    return f"HTTP {response.status_code}"
