import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    shopify_shop_domain: str
    shopify_access_token: str
    shopify_api_version: str
    shopify_timeout_seconds: int

    login_rate_limit: int
    login_rate_window_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///regdesk.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        shopify_shop_domain=_getenv("SHOPIFY_SHOP_DOMAIN", ""),
        shopify_access_token=_getenv("SHOPIFY_ACCESS_TOKEN", ""),
        shopify_api_version=_getenv("SHOPIFY_API_VERSION", "2025-10"),
        shopify_timeout_seconds=_getenv_int("SHOPIFY_TIMEOUT_SECONDS", 30),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        login_rate_window_seconds=_getenv_int("LOGIN_RATE_WINDOW_SECONDS", 300),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "SHOPIFY_SHOP_DOMAIN": s.shopify_shop_domain,
        "SHOPIFY_ACCESS_TOKEN": s.shopify_access_token,
        "SHOPIFY_API_VERSION": s.shopify_api_version,
        "SHOPIFY_TIMEOUT_SECONDS": s.shopify_timeout_seconds,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW_SECONDS": s.login_rate_window_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
