from __future__ import annotations

import pytest

from token_broker.core.config import AppEnv, load_settings
from tests.conftest import make_settings

_ENV_VARS = (
    "APP_ENV",
    "NODE_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "REDIRECT_URI",
    "REDIRECT_URI_PRODUCTION",
    "FRONTEND_URL_LOCAL",
    "FRONTEND_URL_PRODUCTION",
    "ACCOUNTS_BASE_URL",
    "UPSTREAM_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---- defaults ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 3001
    assert settings.redirect_uri == "http://localhost:3001/callback"
    assert settings.production_redirect_uri == settings.redirect_uri
    assert settings.accounts_base_url == "https://accounts.spotify.com"
    assert settings.upstream_timeout == 10.0


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "true")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CLIENT_ID", "cid")
    monkeypatch.setenv("REDIRECT_URI", "http://localhost:8080/callback")
    monkeypatch.setenv("REDIRECT_URI_PRODUCTION", "https://broker.example.com/callback")
    monkeypatch.setenv("FRONTEND_URL_PRODUCTION", "https://app.example.com/")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.port == 8080
    assert settings.client_id == "cid"
    assert settings.redirect_uri_for("local") == "http://localhost:8080/callback"
    assert settings.redirect_uri_for("production") == (
        "https://broker.example.com/callback"
    )
    # trailing slash stripped so "/?error=" never becomes "//?error="
    assert settings.frontend_url_for("production") == "https://app.example.com"


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST  ")
    monkeypatch.setenv("LOG_LEVEL", " DEBUG ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "debug"


# ---- NODE_ENV fallback ----


@pytest.mark.parametrize(
    ("node_env", "expected"),
    [("development", "dev"), ("test", "test"), ("something-else", "dev")],
)
def test_node_env_maps_to_app_env(
    monkeypatch: pytest.MonkeyPatch, node_env: str, expected: AppEnv
) -> None:
    monkeypatch.setenv("NODE_ENV", node_env)
    assert load_settings().app_env == expected


def test_node_env_production_requires_credentials(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("NODE_ENV", "production")
    with pytest.raises(ValueError, match="CLIENT_ID and CLIENT_SECRET are required"):
        load_settings()


def test_node_env_production_with_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("CLIENT_ID", "cid")
    monkeypatch.setenv("CLIENT_SECRET", "secret")
    settings = load_settings()
    assert settings.is_prod is True
    assert settings.default_environment == "production"


def test_app_env_wins_over_node_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("APP_ENV", "dev")
    assert load_settings().app_env == "dev"


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_non_integer_port(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError, match="PORT must be an integer"):
        load_settings()


@pytest.mark.parametrize("value", ["soon", "0", "-1"])
def test_load_settings_rejects_bad_timeout(
    monkeypatch: pytest.MonkeyPatch, value: str
) -> None:
    monkeypatch.setenv("UPSTREAM_TIMEOUT_SECONDS", value)
    with pytest.raises(ValueError, match="UPSTREAM_TIMEOUT_SECONDS"):
        load_settings()


def test_load_settings_rejects_bad_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


# ---- Settings properties ----


def test_settings_environment_flags() -> None:
    assert make_settings(app_env="dev").is_dev is True
    assert make_settings(app_env="test").is_test is True
    prod = make_settings(app_env="prod")
    assert prod.is_prod is True
    assert prod.is_dev is False


def test_default_environment_follows_app_env() -> None:
    assert make_settings(app_env="dev").default_environment == "local"
    assert make_settings(app_env="prod").default_environment == "production"


def test_allowed_origins_include_both_frontends_and_self() -> None:
    origins = make_settings(port=4000).allowed_origins
    assert origins == [
        "http://localhost:63342/Playground/hitser",
        "https://hitser-practice.netlify.app",
        "http://localhost:4000",
    ]


def test_settings_repr_hides_client_secret() -> None:
    assert "test-client-secret" not in repr(make_settings())


def test_settings_is_frozen() -> None:
    s = make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
