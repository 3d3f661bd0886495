"""Tests for configuration module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

from refract_auth.config import (
    Config,
    ConfigError,
    Environment,
    LogLevel,
    load_config,
)


class TestConfig:
    """Tests for Config model."""

    def test_default_values(self, default_config: Config) -> None:
        """Test default configuration values."""
        assert default_config.app_name == "Refract"
        assert default_config.log_level == LogLevel.INFO
        assert default_config.environment == Environment.LOCAL
        assert default_config.authority is None
        assert default_config.client_id is None
        assert default_config.scope == "openid profile email offline_access"
        assert default_config.storage_namespace == "refract"
        assert default_config.refresh_buffer_seconds == 300
        assert default_config.require_state is True

    def test_custom_values(self, dev_config: Config) -> None:
        """Test configuration with custom values."""
        assert dev_config.app_name == "Test App"
        assert dev_config.log_level == LogLevel.DEBUG
        assert dev_config.environment == Environment.DEV

    def test_log_level_normalization(self) -> None:
        """Test that log level strings are normalized to uppercase."""
        config = Config(log_level="debug")  # type: ignore[arg-type]
        assert config.log_level == LogLevel.DEBUG

    def test_environment_normalization(self) -> None:
        """Test that environment strings are normalized to lowercase."""
        config = Config(environment="PROD")  # type: ignore[arg-type]
        assert config.environment == Environment.PROD

    def test_refresh_buffer_validation(self) -> None:
        with pytest.raises(ValueError):
            Config(refresh_buffer_seconds=-1)


class TestEndpoints:
    """Tests for derived endpoint URLs."""

    def test_default_paths(self, provider_config: Config) -> None:
        assert provider_config.authorization_endpoint == "https://auth.example.com/authorize"
        assert provider_config.token_endpoint == "https://auth.example.com/token"
        assert provider_config.end_session_endpoint == "https://auth.example.com/end_session"

    def test_custom_paths(self) -> None:
        """Test provider-specific endpoint layouts."""
        config = Config(
            authority="https://zitadel.example.com/",
            client_id="c",
            authorization_path="/oauth/v2/authorize",
            token_path="/oauth/v2/token",
            end_session_path="/oidc/v1/end_session",
        )

        assert config.authority == "https://zitadel.example.com"
        assert config.authorization_endpoint == "https://zitadel.example.com/oauth/v2/authorize"
        assert config.token_endpoint == "https://zitadel.example.com/oauth/v2/token"
        assert config.end_session_endpoint == "https://zitadel.example.com/oidc/v1/end_session"

    def test_redirect_defaults_from_app_url(self) -> None:
        config = Config(app_url="http://localhost:3000/")

        assert config.effective_redirect_uri == "http://localhost:3000/auth/callback"
        assert config.effective_post_logout_redirect_uri == "http://localhost:3000"

    def test_explicit_redirects(self) -> None:
        config = Config(
            redirect_uri="http://127.0.0.1:9000/cb",
            post_logout_redirect_uri="http://127.0.0.1:9000/bye",
        )

        assert config.effective_redirect_uri == "http://127.0.0.1:9000/cb"
        assert config.effective_post_logout_redirect_uri == "http://127.0.0.1:9000/bye"


class TestProviderValidation:
    """Tests for identity provider validation."""

    def test_require_provider_missing(self, default_config: Config) -> None:
        with pytest.raises(ConfigError, match="missing required fields: authority, client_id"):
            default_config.require_provider()

    def test_require_provider_missing_client_id(self) -> None:
        with pytest.raises(ConfigError, match="client_id"):
            Config(authority="https://auth.example.com").require_provider()

    def test_require_provider_valid(self, provider_config: Config) -> None:
        provider_config.require_provider()

    def test_token_store_requires_encryption_key(self) -> None:
        """Test that token store path requires encryption key."""
        with pytest.raises(ValueError, match="token_encryption_key is required"):
            Config(token_store_path="/path/to/tokens.enc")

    def test_token_store_with_encryption_key(self) -> None:
        """Test valid token store configuration."""
        config = Config(
            token_store_path="/path/to/tokens.enc",
            token_encryption_key="test-key",  # type: ignore[arg-type]
        )
        assert config.token_store_path == "/path/to/tokens.enc"
        assert config.token_encryption_key is not None
        assert config.token_encryption_key.get_secret_value() == "test-key"
        assert "test-key" not in repr(config)


class TestConfigLoading:
    """Tests for configuration loading."""

    def test_load_config_defaults(self) -> None:
        """Test loading configuration with defaults."""
        config = load_config()
        assert config.app_name == "Refract"

    def test_load_config_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading configuration from environment variables."""
        monkeypatch.setenv("REFRACT_AUTH_AUTHORITY", "https://auth.example.com")
        monkeypatch.setenv("REFRACT_AUTH_CLIENT_ID", "env-client")
        monkeypatch.setenv("REFRACT_AUTH_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("REFRACT_AUTH_REFRESH_BUFFER_SECONDS", "60")
        monkeypatch.setenv("REFRACT_AUTH_REQUIRE_STATE", "false")

        config = load_config()

        assert config.authority == "https://auth.example.com"
        assert config.client_id == "env-client"
        assert config.log_level == LogLevel.DEBUG
        assert config.refresh_buffer_seconds == 60
        assert config.require_state is False

    def test_string_fields_not_coerced(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that boolean-looking strings stay strings."""
        monkeypatch.setenv("REFRACT_AUTH_CLIENT_ID", "yes")

        assert load_config().client_id == "yes"

    def test_load_config_from_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "refract.json"
        path.write_text(json.dumps({"authority": "https://file.example.com", "client_id": "f"}))

        config = load_config(path=path)

        assert config.authority == "https://file.example.com"
        assert config.client_id == "f"

    def test_load_config_from_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "refract.yaml"
        path.write_text("authority: https://file.example.com\ntoken_path: /oauth/v2/token\n")

        config = load_config(path=path)

        assert config.token_endpoint == "https://file.example.com/oauth/v2/token"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "refract.json"
        path.write_text(json.dumps({"client_id": "from-file"}))
        monkeypatch.setenv("REFRACT_AUTH_CLIENT_ID", "from-env")

        assert load_config(path=path).client_id == "from-env"

    def test_load_config_cli_args_override_env(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that CLI args override environment variables."""
        monkeypatch.setenv("REFRACT_AUTH_APP_NAME", "Env App")

        config = load_config(cli_args={"app_name": "CLI App", "log_level": None})

        assert config.app_name == "CLI App"
        assert config.log_level == LogLevel.INFO

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(path=tmp_path / "missing.json")

    def test_unsupported_file(self, tmp_path: Path) -> None:
        path = tmp_path / "refract.ini"
        path.write_text("[refract]\n")

        with pytest.raises(ConfigError, match="Unsupported"):
            load_config(path=path)

    def test_load_config_invalid_raises_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that invalid configuration raises ConfigError."""
        monkeypatch.setenv("REFRACT_AUTH_REFRESH_BUFFER_SECONDS", "invalid")

        with pytest.raises(ConfigError, match="Configuration validation failed"):
            load_config()

    def test_token_store_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        key = Fernet.generate_key().decode()
        monkeypatch.setenv("REFRACT_AUTH_TOKEN_STORE_PATH", str(tmp_path / "tokens.enc"))
        monkeypatch.setenv("REFRACT_AUTH_TOKEN_ENCRYPTION_KEY", key)

        config = load_config()

        assert config.token_encryption_key is not None
        assert config.token_encryption_key.get_secret_value() == key
