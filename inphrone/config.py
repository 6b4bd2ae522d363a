"""Application configuration module.

Reads settings from environment variables with sane defaults. A ``.env``
file in the working directory is loaded first when present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from inphrone.core.constants import DatabaseDefaults

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


def _parse_str_list(value: str) -> tuple[str, ...]:
    """Parse comma-separated strings."""
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Config:
    environment: str
    debug: bool
    web_host: str
    web_port: int
    secret_key: str
    admin_username: str
    admin_password: str
    database_path: str
    db_pool_size: int
    db_busy_timeout: int
    log_folder: str
    cache_ttl_hot: int
    cache_ttl_warm: int
    cache_ttl_cold: int

    # Your Turn slots
    slot_timezone: str
    slot_times: tuple[str, ...]
    slot_window_seconds: int
    slot_poll_interval: float
    scheduler_interval: float

    # Notifications
    resend_api_key: Optional[str]
    resend_from: str
    resend_api_url: str
    public_site_url: str
    vapid_public_key: Optional[str]
    token_max_age: int


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values
    """
    return Config(
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        web_host=_get_str("WEB_HOST", "0.0.0.0"),
        web_port=_get_int("WEB_PORT", 5000),
        secret_key=_get_str(
            "SECRET_KEY",
            "production_secret_key_must_be_changed_in_production_environment"
        ),
        admin_username=_get_str("ADMIN_USERNAME", "admin"),
        admin_password=_get_str("ADMIN_PASSWORD", "123456"),
        database_path=_get_str("DATABASE_PATH", "data/inphrone.sqlite"),
        db_pool_size=_get_int("DB_POOL_SIZE", DatabaseDefaults.POOL_SIZE),
        db_busy_timeout=_get_int("DB_BUSY_TIMEOUT", DatabaseDefaults.BUSY_TIMEOUT),
        log_folder=_get_str("LOG_FOLDER", "logs"),
        cache_ttl_hot=_get_int("CACHE_TTL_HOT", 30),
        cache_ttl_warm=_get_int("CACHE_TTL_WARM", 300),
        cache_ttl_cold=_get_int("CACHE_TTL_COLD", 3600),
        slot_timezone=_get_str("SLOT_TIMEZONE", "UTC"),
        slot_times=_parse_str_list(_get_str("SLOT_TIMES", "09:00,14:00,19:00")),
        slot_window_seconds=_get_int("SLOT_WINDOW_SECONDS", 20),
        slot_poll_interval=_get_float("SLOT_POLL_INTERVAL", 5.0),
        scheduler_interval=_get_float("SCHEDULER_INTERVAL", 1.0),
        resend_api_key=_get_str("RESEND_API_KEY") or None,
        resend_from=_get_str("RESEND_FROM", "Inphrone <onboarding@resend.dev>"),
        resend_api_url=_get_str("RESEND_API_URL", "https://api.resend.com/emails"),
        public_site_url=_get_str("PUBLIC_SITE_URL", "https://inphrone.com"),
        vapid_public_key=_get_str("VAPID_PUBLIC_KEY") or None,
        token_max_age=_get_int("TOKEN_MAX_AGE", 7 * 24 * 3600),
    )
