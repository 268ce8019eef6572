import os

DEFAULT_DATABASE_URL = "postgresql://localhost/time_tracking"
DEFAULT_SETTINGS_CACHE_TTL_SECONDS = 300


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_env() -> str:
    return os.getenv("ENV", "dev").lower()


def token_endpoint_enabled() -> bool:
    return get_env() in {"dev", "local", "test"}


def get_settings_cache_ttl_seconds() -> float:
    raw = os.getenv("SETTINGS_CACHE_TTL_SECONDS")
    if raw is None or raw.strip() == "":
        return float(DEFAULT_SETTINGS_CACHE_TTL_SECONDS)
    try:
        ttl = float(raw)
    except ValueError as exc:
        raise ValueError("SETTINGS_CACHE_TTL_SECONDS must be a number") from exc
    if ttl < 0:
        raise ValueError("SETTINGS_CACHE_TTL_SECONDS must not be negative")
    return ttl


def get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise ValueError("JWT_SECRET is required")
    if len(secret) < 32:
        raise ValueError("JWT_SECRET must be at least 32 characters")
    return secret
