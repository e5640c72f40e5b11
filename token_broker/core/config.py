from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
Environment = Literal["local", "production"]

ENVIRONMENTS: tuple[Environment, ...] = ("local", "production")

# NODE_ENV is what the browser-side tooling sets; map it onto APP_ENV values.
_NODE_ENV_ALIASES: dict[str, AppEnv] = {
    "production": "prod",
    "test": "test",
    "development": "dev",
}


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    production_redirect_uri: str
    frontend_urls: dict[str, str]
    accounts_base_url: str = "https://accounts.spotify.com"
    upstream_timeout: float = 10.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def default_environment(self) -> Environment:
        """Frontend used when a callback cannot be tied to a login attempt."""
        return "production" if self.is_prod else "local"

    @property
    def allowed_origins(self) -> list[str]:
        origins = list(dict.fromkeys(self.frontend_urls.values()))
        origins.append(f"http://localhost:{self.port}")
        return origins

    def redirect_uri_for(self, environment: Environment) -> str:
        if environment == "production":
            return self.production_redirect_uri
        return self.redirect_uri

    def frontend_url_for(self, environment: Environment) -> str:
        return self.frontend_urls[environment]


def load_settings() -> Settings:
    node_env_raw = _getenv("NODE_ENV", "development").lower()
    app_env_raw = _getenv("APP_ENV", "").lower() or _NODE_ENV_ALIASES.get(
        node_env_raw, "dev"
    )
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "3001")
    timeout_raw = _getenv("UPSTREAM_TIMEOUT_SECONDS", "10")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        upstream_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"UPSTREAM_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if upstream_timeout <= 0:
        raise ValueError(
            f"UPSTREAM_TIMEOUT_SECONDS must be positive (got {timeout_raw!r})"
        )

    client_id = _getenv("CLIENT_ID", "")
    client_secret = _getenv("CLIENT_SECRET", "")
    if app_env_raw == "prod" and not (client_id and client_secret):
        raise ValueError("CLIENT_ID and CLIENT_SECRET are required when APP_ENV=prod")

    redirect_uri = _getenv("REDIRECT_URI", f"http://localhost:{port}/callback")
    production_redirect_uri = _getenv("REDIRECT_URI_PRODUCTION", "") or redirect_uri

    frontend_urls = {
        "local": _getenv(
            "FRONTEND_URL_LOCAL", "http://localhost:63342/Playground/hitser"
        ).rstrip("/"),
        "production": _getenv(
            "FRONTEND_URL_PRODUCTION", "https://hitser-practice.netlify.app"
        ).rstrip("/"),
    }

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        production_redirect_uri=production_redirect_uri,
        frontend_urls=frontend_urls,
        accounts_base_url=_getenv(
            "ACCOUNTS_BASE_URL", "https://accounts.spotify.com"
        ).rstrip("/"),
        upstream_timeout=upstream_timeout,
    )


# Read once at import; create_app(settings=...) overrides it in tests.
SETTINGS = load_settings()
