from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from token_broker.core.config import Settings
from token_broker.main import create_app
from token_broker.models.token_grant import TokenGrant
from token_broker.services.upstream_client import UpstreamError

# Ensure repo root is on sys.path so `import token_broker` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

FRONTEND_LOCAL = "http://localhost:63342/Playground/hitser"
FRONTEND_PRODUCTION = "https://hitser-practice.netlify.app"


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "port": 3001,
        "client_id": "test-client-id",
        "client_secret": "test-client-secret",
        "redirect_uri": "http://localhost:3001/callback",
        "production_redirect_uri": "https://broker.example.com/callback",
        "frontend_urls": {"local": FRONTEND_LOCAL, "production": FRONTEND_PRODUCTION},
        "accounts_base_url": "https://accounts.spotify.com",
        "upstream_timeout": 5.0,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


class FakeClock:
    """Settable stand-in for time.time()."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """In-process UpstreamTokenClient.

    Each grant returns the configured TokenGrant, or raises the configured
    UpstreamError.  Every call is recorded so tests can assert on how many
    times the provider would have been hit.
    """

    def __init__(self) -> None:
        self.exchange_result: TokenGrant | UpstreamError = TokenGrant(
            access_token="AT1", refresh_token="RT1", expires_in=3600
        )
        self.refresh_result: TokenGrant | UpstreamError = TokenGrant(
            access_token="AT2", expires_in=3600
        )
        self.client_credentials_result: TokenGrant | UpstreamError = TokenGrant(
            access_token="APP1", expires_in=3600
        )
        self.exchange_calls: list[tuple[str, str]] = []
        self.refresh_calls: list[str] = []
        self.client_credentials_calls = 0
        self.closed = False

    def build_authorization_url(self, state: str, redirect_uri: str) -> str:
        return (
            "https://accounts.spotify.com/authorize"
            f"?state={state}&redirect_uri={redirect_uri}"
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        self.exchange_calls.append((code, redirect_uri))
        return self._resolve(self.exchange_result)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls.append(refresh_token)
        return self._resolve(self.refresh_result)

    async def client_credentials(self) -> TokenGrant:
        self.client_credentials_calls += 1
        return self._resolve(self.client_credentials_result)

    async def aclose(self) -> None:
        self.closed = True

    @staticmethod
    def _resolve(result: TokenGrant | UpstreamError) -> TokenGrant:
        if isinstance(result, UpstreamError):
            raise result
        return result


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def app(settings: Settings, fake_upstream: FakeUpstream) -> FastAPI:
    return create_app(settings=settings, upstream=fake_upstream)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    yield TestClient(app, follow_redirects=False)
