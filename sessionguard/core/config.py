# sessionguard/core/config.py
import json
import logging
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from sessionguard.core.exceptions import ConfigurationError, config_error

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings consumed by the session and abuse-control layer"""
    APP_NAME: str = "sessionguard"
    ENVIRONMENT: Literal["development", "production"] = "development"

    # Sessions
    SESSION_TTL_MS: int = Field(default=24 * 60 * 60 * 1000, gt=0)
    SESSION_CLEANUP_INTERVAL_MS: int = Field(default=5 * 60 * 1000, gt=0)
    SESSION_COOKIE_NAME: str = Field(default="sessionId", min_length=1)
    COOKIE_MAX_AGE_MS: int = Field(default=7 * 24 * 60 * 60 * 1000, gt=0)

    # Session creation throttling (per user id)
    SESSION_CREATE_WINDOW_MS: int = Field(default=60 * 1000, gt=0)
    SESSION_CREATE_MAX: int = Field(default=10, ge=1)

    # Client identity: read X-Forwarded-For / X-Real-IP only behind a trusted proxy
    TRUST_PROXY_HEADERS: bool = False

    # Default request rate limit rule
    RATE_LIMIT_WINDOW_MS: int = Field(default=15 * 60 * 1000, gt=0)
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=100, ge=1)

    # Brute-force lockout
    BRUTE_FORCE_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    BRUTE_FORCE_LOCKOUT_MS: int = Field(default=15 * 60 * 1000, gt=0)
    EXTEND_LOCKOUT_ON_ATTEMPT: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    model_config = {
        "env_prefix": "SESSIONGUARD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.SESSION_TTL_MS)

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.SESSION_CLEANUP_INTERVAL_MS / 1000

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> Settings:
    """
    Build settings from environment, an optional JSON file and overrides.

    Precedence (highest first): keyword overrides, JSON file, environment,
    defaults.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    values = {}
    if path is not None:
        file_path = Path(path)
        try:
            loaded = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load configuration file: {e}",
                component=str(file_path)
            ) from e
        if not isinstance(loaded, dict):
            raise config_error("Configuration file must contain a JSON object", str(file_path))
        values.update({key.upper(): value for key, value in loaded.items()})
    values.update({key.upper(): value for key, value in overrides.items()})

    try:
        settings = Settings(**values)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ConfigurationError(
            f"Configuration update failed: invalid value for {fields}",
            component=fields,
            details={"errors": len(e.errors())}
        ) from e

    logger.debug(f"Loaded settings for {settings.APP_NAME} ({settings.ENVIRONMENT})")
    return settings


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment"""
    return load_settings()
