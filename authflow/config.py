"""
Application Configuration.

Pydantic Settings model for the authflow client.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings

from authflow.models.enums import ProfileRole


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    PROFILES_TABLE: str = "profiles"

    # Origin used to build the verification redirect (``<SITE_URL>/auth/callback``).
    SITE_URL: str = "http://localhost:5173"

    # --- Verification callback ---
    SESSION_POLL_INTERVAL_S: float = 0.5
    SESSION_POLL_ATTEMPTS: int = 20
    PROFILE_WAIT_S: float = 5.0
    PROFILE_POLL_INTERVAL_S: float = 0.25

    # --- Profile provisioning ---
    # Whether the backing store auto-creates a profile row on sign-up.
    # The client-side creation path stays armed either way.
    PROFILE_AUTO_CREATE_TRIGGER: bool = False
    PROFILE_TRIGGER_GRACE_S: float = 1.0
    PROFILE_CREATE_MAX_ATTEMPTS: int = 3
    PROFILE_RETRY_BASE_DELAY_S: float = 1.0
    PROFILE_RETRY_MAX_DELAY_S: float = 4.0
    DEFAULT_PROFILE_ROLE: ProfileRole = ProfileRole.APPLICANT

    # Upper bound for every awaited provider / store call.
    REQUEST_TIMEOUT_S: float = 10.0

    # --- Logging ---
    LOG_FILE: str = "authflow.log"
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_timings(self) -> "AppConfig":
        """Reject non-positive timings and warn about offline mode.

        Every wait in the session flow must be bounded, so a zero or
        negative timeout is a configuration error rather than "wait
        forever".
        """
        positive_fields = (
            "SESSION_POLL_INTERVAL_S",
            "SESSION_POLL_ATTEMPTS",
            "PROFILE_WAIT_S",
            "PROFILE_POLL_INTERVAL_S",
            "PROFILE_CREATE_MAX_ATTEMPTS",
            "PROFILE_RETRY_BASE_DELAY_S",
            "PROFILE_RETRY_MAX_DELAY_S",
            "REQUEST_TIMEOUT_S",
        )
        for name in positive_fields:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be greater than zero")

        if self.PROFILE_TRIGGER_GRACE_S < 0:
            raise ValueError("PROFILE_TRIGGER_GRACE_S must not be negative")

        _log = logging.getLogger("authflow.config")

        if not Path(".env").exists():
            _log.debug(
                "No .env file found; configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_URL / SUPABASE_ANON_KEY are empty; the Supabase "
                "client will not be created."
            )

        return self

    @property
    def callback_url(self) -> str:
        """Absolute URL the verification email redirects to."""
        from authflow.routes import VERIFICATION_CALLBACK_ROUTE

        return f"{self.SITE_URL.rstrip('/')}{VERIFICATION_CALLBACK_ROUTE}"


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    The client runs on a single event loop, so no locking is needed
    around first initialisation.  Prefer constructor injection of
    ``AppConfig`` in new code; tests build their own instances with
    shortened timings.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig()
    return _config_instance
