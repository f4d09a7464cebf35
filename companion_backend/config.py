from __future__ import annotations

import os
from datetime import timedelta
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


# Workshop codes are 4 characters drawn from A-Z0-9.
CODE_LENGTH = 4
CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
MAX_PARTICIPANTS = 50
NAME_MAX_LENGTH = 50

POLLING_INTERVAL_MS = 3000
SESSION_TIMEOUT = timedelta(hours=24)

API_TIMEOUT_SECONDS = 10.0
DEBOUNCE_DELAY_MS = 300

SESSION_KEY_PREFIX = "workshop_"
ORGANIZER_TOKEN_COOKIE = "organizer_token"

ROUTE_HOME = "/"
ROUTE_ORGANIZER_LOGIN = "/o/login"
ROUTE_ORGANIZER_DASHBOARD = "/o/dashboard"


def workshop_session_route(code: str) -> str:
    return f"/s/{code}"


class ConfigError(ValueError):
    """Raised when COMPANION_* environment variables fail validation."""


class Settings(BaseModel):
    env: Literal["development", "test", "production"] = "development"
    app_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:3000/api"
    database_url: Optional[str] = Field(default=None, min_length=1)
    session_secret: Optional[str] = Field(default=None, min_length=32)
    session_ttl_hours: float = Field(default=SESSION_TIMEOUT.total_seconds() / 3600, gt=0)
    polling_interval_ms: int = Field(default=POLLING_INTERVAL_MS, ge=0)
    log_level: str = "INFO"

    @field_validator("app_url", "api_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return value.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)


_ENV_FIELDS = {
    "env": "COMPANION_ENV",
    "app_url": "COMPANION_APP_URL",
    "api_url": "COMPANION_API_URL",
    "database_url": "COMPANION_DATABASE_URL",
    "session_secret": "COMPANION_SESSION_SECRET",
    "session_ttl_hours": "COMPANION_SESSION_TTL_HOURS",
    "polling_interval_ms": "COMPANION_POLLING_INTERVAL_MS",
    "log_level": "COMPANION_LOG_LEVEL",
}


def load_settings(environ: Optional[dict] = None) -> Settings:
    """Build Settings from COMPANION_* variables.

    Unset or blank variables fall back to the model defaults.
    """
    source = os.environ if environ is None else environ
    raw = {}
    for field, var in _ENV_FIELDS.items():
        value = source.get(var)
        if value is not None and value.strip():
            raw[field] = value.strip()
    try:
        return Settings(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid environment configuration: {e}") from e
