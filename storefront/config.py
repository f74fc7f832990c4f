"""
Storefront settings.

Read once from the process environment (and an optional ``.env`` file)
and passed to services through their constructors.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Supabase endpoints, reconciliation timing and logging options."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")  # Maintenance commands only

    # --- Profile reconciliation ---
    # Delay before the authoritative re-read that follows an optimistic insert.
    PROFILE_REFETCH_DELAY_S: float = Field(default=0.5, ge=0.0)

    # Optional ceiling on every remote call.  ``None`` leaves timeouts to
    # the HTTP transport.
    REQUEST_TIMEOUT_S: Optional[float] = Field(default=None, gt=0.0)

    # --- Notifications ---
    NOTIFICATION_HISTORY: int = Field(default=50, ge=1)

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "storefront.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Warn at startup when the Supabase connection settings are blank.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a hint that the client has nothing to talk to.
        """
        _log = logging.getLogger("storefront.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file; settings come from the process environment."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_URL / SUPABASE_ANON_KEY are empty; the auth "
                "client cannot be created until they are set."
            )

        return self

    @property
    def log_level(self) -> int:
        """Numeric logging level for ``LOG_LEVEL`` (falls back to INFO)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO

    def validate_service_role(self) -> None:
        """Validate that maintenance (service-role) configuration is complete.

        Raises:
            ValueError: If the URL or service-role key is missing.
        """
        if not self.SUPABASE_URL:
            raise ValueError("SUPABASE_URL must be set")
        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be set")


# Cached instance

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Build ``AppConfig`` on first call and return the same object afterwards.

    Services receive their config explicitly; only ``main.py`` and the
    logger defaults go through here.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration (tests and re-configuration)."""
    global _config_instance
    with _config_lock:
        _config_instance = None
