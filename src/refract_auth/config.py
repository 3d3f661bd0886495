"""Configuration management for refract-auth.

Provides configuration loading from environment variables, .env files,
and optional configuration files with proper precedence handling.
"""

from __future__ import annotations

import contextlib
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "REFRACT_AUTH_"


class ConfigError(Exception):
    """Raised when configuration validation fails."""


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Environment(str, Enum):
    """Deployment environments."""

    LOCAL = "local"
    DEV = "dev"
    STAGE = "stage"
    PROD = "prod"


class Config(BaseModel):
    """Main configuration model for refract-auth.

    Configuration can be loaded from:
    - Environment variables with REFRACT_AUTH_ prefix
    - Optional .env file in the working directory
    - Optional configuration file passed via CLI
    """

    # Core settings
    app_name: str = Field(default="Refract", description="Application name")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    environment: Environment = Field(
        default=Environment.LOCAL, description="Deployment environment"
    )

    # Identity provider
    authority: str | None = Field(
        default=None, description="OIDC provider base URL"
    )
    client_id: str | None = Field(default=None, description="OAuth client identifier")
    scope: str = Field(
        default="openid profile email offline_access",
        description="OAuth scopes (space-separated); offline_access yields a refresh token",
    )
    authorization_path: str = Field(
        default="/authorize", description="Authorization endpoint path"
    )
    token_path: str = Field(default="/token", description="Token endpoint path")
    end_session_path: str = Field(
        default="/end_session", description="End-session endpoint path"
    )

    # Application URLs
    app_url: str = Field(
        default="http://127.0.0.1:8765", description="Application root URL"
    )
    redirect_uri: str | None = Field(
        default=None, description="OAuth callback URI (defaults to {app_url}/auth/callback)"
    )
    post_logout_redirect_uri: str | None = Field(
        default=None, description="Where the provider returns after logout (defaults to app_url)"
    )

    # Token storage and encryption
    storage_namespace: str = Field(
        default="refract", description="Prefix for persisted storage keys"
    )
    token_encryption_key: SecretStr | None = Field(
        default=None, description="Fernet encryption key for token storage"
    )
    token_store_path: str | None = Field(
        default=None, description="Path for persistent token storage"
    )

    # Session behaviour
    refresh_buffer_seconds: int = Field(
        default=300, ge=0, description="Refresh tokens expiring within this window"
    )
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    require_state: bool = Field(
        default=True, description="Reject callbacks that do not return the OAuth state"
    )
    callback_timeout: float = Field(
        default=300.0, gt=0, description="Seconds to wait for the login callback"
    )

    model_config = {
        "validate_assignment": True,
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v: Any) -> Any:
        """Normalize environment to lowercase."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("authority", "app_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> Any:
        """Strip trailing slashes so endpoint paths join cleanly."""
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @model_validator(mode="after")
    def validate_token_store(self) -> Config:
        """Validate token store configuration."""
        if self.token_store_path and not self.token_encryption_key:
            msg = "token_encryption_key is required when token_store_path is set"
            raise ValueError(msg)
        return self

    @property
    def authorization_endpoint(self) -> str:
        """Full authorization endpoint URL."""
        return f"{self.authority}{self.authorization_path}"

    @property
    def token_endpoint(self) -> str:
        """Full token endpoint URL."""
        return f"{self.authority}{self.token_path}"

    @property
    def end_session_endpoint(self) -> str:
        """Full end-session endpoint URL."""
        return f"{self.authority}{self.end_session_path}"

    @property
    def effective_redirect_uri(self) -> str:
        """Redirect URI sent to the provider."""
        return self.redirect_uri or f"{self.app_url}/auth/callback"

    @property
    def effective_post_logout_redirect_uri(self) -> str:
        """Post-logout URI sent to the provider."""
        return self.post_logout_redirect_uri or self.app_url

    def require_provider(self) -> None:
        """Ensure the identity provider settings are present.

        Raises:
            ConfigError: If authority or client_id is missing
        """
        required_fields = [
            ("authority", self.authority),
            ("client_id", self.client_id),
        ]
        missing = [name for name, value in required_fields if not value]
        if missing:
            msg = f"Identity provider configuration is missing required fields: {', '.join(missing)}"
            raise ConfigError(msg)


def default_state_dir() -> Path:
    """Per-user directory for the CLI's token store and key file."""
    return Path.home() / ".refract"


def _get_env_value(key: str, prefix: str = ENV_PREFIX) -> str | None:
    """Get environment variable value with prefix."""
    return os.environ.get(f"{prefix}{key.upper()}")


def _load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    bool_fields = ("require_state",)
    int_fields = ("refresh_buffer_seconds",)
    float_fields = ("http_timeout", "callback_timeout")

    config: dict[str, Any] = {}
    for field_name in Config.model_fields:
        value = _get_env_value(field_name)
        if value is None:
            continue
        converted: Any = value
        if field_name in bool_fields and value.lower() in ("true", "false", "1", "0", "yes", "no"):
            converted = value.lower() in ("true", "1", "yes")
        elif field_name in int_fields:
            with contextlib.suppress(ValueError):
                converted = int(value)
        elif field_name in float_fields:
            with contextlib.suppress(ValueError):
                converted = float(value)
        config[field_name] = converted

    return config


def _load_file_config(path: str | Path) -> dict[str, Any]:
    """Load configuration from a file (JSON or YAML)."""
    import json

    path = Path(path)
    if not path.exists():
        msg = f"Configuration file not found: {path}"
        raise ConfigError(msg)

    suffix = path.suffix.lower()
    content = path.read_text()

    if suffix == ".json":
        return dict(json.loads(content))

    if suffix in (".yaml", ".yml"):
        import yaml

        return dict(yaml.safe_load(content) or {})

    msg = f"Unsupported configuration file format: {suffix}"
    raise ConfigError(msg)


def _redact_for_log(key: str, value: Any) -> str:
    """Redact sensitive values for logging."""
    if key == "token_encryption_key" and value:
        return "***"
    return str(value)


def load_config(
    path: str | Path | None = None,
    cli_args: dict[str, Any] | None = None,
) -> Config:
    """Load and validate configuration.

    Precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Configuration file
    4. Model defaults

    Args:
        path: Optional path to configuration file
        cli_args: Optional CLI argument overrides

    Returns:
        Validated Config instance

    Raises:
        ConfigError: If configuration is invalid
    """
    load_dotenv()

    config_dict: dict[str, Any] = {}
    if path:
        logger.debug("Loading configuration from file: %s", path)
        config_dict.update(_load_file_config(path))

    for key, value in _load_env_config().items():
        config_dict[key] = value
        logger.debug("Config %s from environment: %s", key, _redact_for_log(key, value))

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_dict[key] = value
                logger.debug("Config %s from CLI: %s", key, _redact_for_log(key, value))

    try:
        return Config(**config_dict)
    except Exception as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e
