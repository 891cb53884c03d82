"""Application configuration with environment-specific profiles.

Supports dev, staging, production and test environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

_DEFAULT_JWT_SECRET = "jwt-change-me"
_DEFAULT_SERVICE_ROLE_KEY = "service-role-change-me"

# Environments that must never run on the placeholder credentials
_DEPLOYED_ENVS = {"staging", "production"}


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Credentials shared with the hosting platform
    jwt_secret: str = _DEFAULT_JWT_SECRET
    service_role_key: str = _DEFAULT_SERVICE_ROLE_KEY

    # Wall-clock decisions are made in the academy's zone, never the host's
    academy_timezone: str = "Europe/Berlin"

    # Web Push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:ops@academy.example"
    push_ttl_seconds: int = 86400
    push_max_workers: int = 8

    # Scheduler
    notification_log_retention_days: int = 7
    notification_log_policy: str = "attempted"
    event_soon_min_minutes: int = 45
    event_soon_max_minutes: int = 75

    # HTTP
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    job_rate_limit: str = "30/minute"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    request_id_header_name: str = "X-Request-ID"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "rate_limit_enabled": False,
    },
    "staging": {
        "log_level": "INFO",
        "rate_limit_enabled": True,
    },
    "production": {
        "log_level": "WARNING",
        "rate_limit_enabled": True,
        "push_max_workers": 16,
    },
    "test": {
        "log_level": "WARNING",
        "rate_limit_enabled": False,
        "push_max_workers": 2,
    },
}

_LOG_POLICIES = {"attempted", "delivered"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_database_url() -> str:
    """Resolve database URL from env var or local default.

    Resolution order:
    1. DATABASE_URL environment variable
    2. Local default for common dev setups
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "postgresql+psycopg2://localhost:5432/academy_ops"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    log_policy = os.getenv("NOTIFICATION_LOG_POLICY", "attempted").strip().lower()
    if log_policy not in _LOG_POLICIES:
        raise ValueError(f"NOTIFICATION_LOG_POLICY must be one of {sorted(_LOG_POLICIES)}")

    jwt_secret = os.getenv("JWT_SECRET", "").strip() or _DEFAULT_JWT_SECRET
    service_role_key = os.getenv("SERVICE_ROLE_KEY", "").strip() or _DEFAULT_SERVICE_ROLE_KEY
    if app_env in _DEPLOYED_ENVS:
        missing = [
            name
            for name, value, placeholder in (
                ("JWT_SECRET", jwt_secret, _DEFAULT_JWT_SECRET),
                ("SERVICE_ROLE_KEY", service_role_key, _DEFAULT_SERVICE_ROLE_KEY),
            )
            if value == placeholder
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} must be set when APP_ENV={app_env}")

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        jwt_secret=jwt_secret,
        service_role_key=service_role_key,
        academy_timezone=os.getenv("ACADEMY_TIMEZONE", "Europe/Berlin"),
        vapid_public_key=os.getenv("VAPID_PUBLIC_KEY", ""),
        vapid_private_key=os.getenv("VAPID_PRIVATE_KEY", ""),
        vapid_subject=os.getenv("VAPID_SUBJECT", "mailto:ops@academy.example"),
        push_ttl_seconds=int(os.getenv("PUSH_TTL_SECONDS", "86400")),
        push_max_workers=int(os.getenv("PUSH_MAX_WORKERS", str(profile.get("push_max_workers", 8)))),
        notification_log_retention_days=int(os.getenv("NOTIFICATION_LOG_RETENTION_DAYS", "7")),
        notification_log_policy=log_policy,
        event_soon_min_minutes=int(os.getenv("EVENT_SOON_MIN_MINUTES", "45")),
        event_soon_max_minutes=int(os.getenv("EVENT_SOON_MAX_MINUTES", "75")),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", profile.get("rate_limit_enabled", True)),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        job_rate_limit=os.getenv("JOB_RATE_LIMIT", "30/minute"),
        cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:3000"]),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID"),
    )
