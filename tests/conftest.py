"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import jwt
import pytest

from refract_auth.config import Config, Environment, LogLevel
from refract_auth.logging_config import reset_logging
from refract_auth.oauth.session import SessionManager, create_session_manager
from refract_auth.oauth.token_store import TokenStore
from refract_auth.storage import InMemoryStorage

AUTHORITY = "https://auth.example.com"
TOKEN_URL = f"{AUTHORITY}/token"

# Fixed start time: 2025-01-01T00:00:00Z in milliseconds
START_MS = 1_735_689_600_000

_SIGNING_KEY = "unit-test-signing-key-that-is-long-enough"


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo CLI logging setup so caplog keeps working."""
    yield
    reset_logging()


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


def make_id_token(**claims: Any) -> str:
    """Create a signed JWT; signature is irrelevant to display decoding."""
    payload: dict[str, Any] = {
        "sub": "user-123",
        "iss": AUTHORITY,
        "aud": "test-client-id",
        "iat": START_MS // 1000,
        "exp": START_MS // 1000 + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, _SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def default_config() -> Config:
    """Create a default configuration for testing."""
    return Config()


@pytest.fixture
def dev_config() -> Config:
    """Create a development configuration for testing."""
    return Config(
        app_name="Test App",
        log_level=LogLevel.DEBUG,
        environment=Environment.DEV,
    )


@pytest.fixture
def provider_config() -> Config:
    """Create a configuration with an identity provider for testing."""
    return Config(
        authority=AUTHORITY,
        client_id="test-client-id",
        app_url="http://localhost:3000",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def token_store(storage: InMemoryStorage) -> TokenStore:
    return TokenStore(storage)


@pytest.fixture
def navigated() -> list[str]:
    """URLs the session manager sent the user to."""
    return []


@pytest.fixture
def session_manager(
    provider_config: Config,
    storage: InMemoryStorage,
    clock: FakeClock,
    navigated: list[str],
) -> SessionManager:
    """Create a session manager with a fake clock and in-memory storage."""
    return create_session_manager(
        provider_config,
        storage=storage,
        navigator=navigated.append,
        clock=clock,
    )


@pytest.fixture
def id_token_factory() -> Any:
    """Factory for id tokens with overridable claims."""
    return make_id_token
