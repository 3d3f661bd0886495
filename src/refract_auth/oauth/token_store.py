"""Token storage on top of a key-value backend.

Persists the current AuthState together with the pending-login material
(PKCE verifier and OAuth state) and the post-login redirect path.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from refract_auth.exceptions import StorageCorruptionError
from refract_auth.logging_config import get_logger

if TYPE_CHECKING:
    from refract_auth.oauth.token_client import TokenResponse
    from refract_auth.storage import KeyValueStorage

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "refract"


class StorageKeys:
    """Un-namespaced storage key names."""

    AUTH_STATE = "auth_state"
    PKCE_VERIFIER = "pkce_verifier"
    OAUTH_STATE = "oauth_state"
    REDIRECT_PATH = "redirect_path"


@dataclass
class AuthState:
    """Persisted session tokens.

    Attributes:
        access_token: Bearer token for resource servers
        expires_at: Access token deadline in Unix milliseconds
        refresh_token: Optional refresh token
        id_token: Optional OIDC identity token
    """

    access_token: str
    expires_at: int
    refresh_token: str | None = None
    id_token: str | None = None

    @classmethod
    def from_token_response(cls, response: TokenResponse, now_ms: int) -> AuthState:
        """Build state from a token response received at ``now_ms``."""
        return cls(
            access_token=response.access_token,
            expires_at=now_ms + response.expires_in * 1000,
            refresh_token=response.refresh_token,
            id_token=response.id_token,
        )

    @classmethod
    def from_dict(cls, data: Any) -> AuthState:
        """Deserialize stored data.

        Raises:
            ValueError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            msg = "expected an object"
            raise ValueError(msg)

        access_token = data.get("access_token")
        expires_at = data.get("expires_at")
        if not isinstance(access_token, str) or not access_token:
            msg = "missing access_token"
            raise ValueError(msg)
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            msg = "missing expires_at"
            raise ValueError(msg)

        refresh_token = data.get("refresh_token")
        id_token = data.get("id_token")
        return cls(
            access_token=access_token,
            expires_at=int(expires_at),
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            id_token=id_token if isinstance(id_token, str) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at <= now_ms

    def expires_within(self, now_ms: int, window_ms: int) -> bool:
        """True unless more than ``window_ms`` remain before expiry."""
        return self.expires_at - now_ms <= window_ms


class TokenStore:
    """Namespaced persistence for the session.

    Values are JSON-encoded. Anything that fails to parse is logged and
    treated as absent.
    """

    def __init__(self, storage: KeyValueStorage, namespace: str = DEFAULT_NAMESPACE) -> None:
        self._storage = storage
        self._namespace = namespace

    def key(self, name: str) -> str:
        """Return the namespaced storage key for name."""
        return f"{self._namespace}_{name}"

    def _get_json(self, name: str) -> Any:
        key = self.key(name)
        raw = self._storage.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._report_corruption(StorageCorruptionError(key, str(e)))
            return None

    def _set_json(self, name: str, value: Any) -> None:
        self._storage.set(self.key(name), json.dumps(value))

    def _get_string(self, name: str) -> str | None:
        value = self._get_json(name)
        if value is None:
            return None
        if not isinstance(value, str):
            self._report_corruption(StorageCorruptionError(self.key(name), "expected a string"))
            return None
        return value

    @staticmethod
    def _report_corruption(error: StorageCorruptionError) -> None:
        logger.warning("Ignoring stored value: %s", error)

    # Auth state

    def save(self, state: AuthState) -> None:
        """Persist state, replacing any existing one."""
        self._set_json(StorageKeys.AUTH_STATE, state.to_dict())
        logger.debug("Saved auth state (expires_at=%d)", state.expires_at)

    def load(self) -> AuthState | None:
        """Load the current state, or None if absent or corrupt."""
        data = self._get_json(StorageKeys.AUTH_STATE)
        if data is None:
            return None
        try:
            return AuthState.from_dict(data)
        except ValueError as e:
            self._report_corruption(StorageCorruptionError(self.key(StorageKeys.AUTH_STATE), str(e)))
            return None

    def clear(self) -> None:
        """Remove the current state."""
        self._storage.remove(self.key(StorageKeys.AUTH_STATE))
        logger.debug("Cleared auth state")

    # Pending login

    def save_pending_login(self, verifier: str, state: str) -> None:
        """Persist the PKCE verifier and OAuth state of a login in progress."""
        self._set_json(StorageKeys.PKCE_VERIFIER, verifier)
        self._set_json(StorageKeys.OAUTH_STATE, state)

    def load_verifier(self) -> str | None:
        return self._get_string(StorageKeys.PKCE_VERIFIER)

    def load_oauth_state(self) -> str | None:
        return self._get_string(StorageKeys.OAUTH_STATE)

    def clear_pending_login(self) -> None:
        self._storage.remove(self.key(StorageKeys.PKCE_VERIFIER))
        self._storage.remove(self.key(StorageKeys.OAUTH_STATE))

    # Redirect path

    def save_redirect_path(self, path: str) -> None:
        self._set_json(StorageKeys.REDIRECT_PATH, path)

    def load_redirect_path(self) -> str | None:
        return self._get_string(StorageKeys.REDIRECT_PATH)

    def clear_redirect_path(self) -> None:
        self._storage.remove(self.key(StorageKeys.REDIRECT_PATH))
