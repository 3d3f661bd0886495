"""Authentication exceptions."""

from __future__ import annotations


class RefractAuthError(Exception):
    """Base exception for all refract-auth errors."""


class OAuthError(RefractAuthError):
    """Raised when an OAuth operation fails.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code (if applicable)
        response_body: Raw response body (if available)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body

    def __str__(self) -> str:
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message


class MissingPKCEVerifierError(OAuthError):
    """Raised when a callback arrives without a prior login on this device.

    The login flow must be restarted; this is never retried automatically.
    """

    def __init__(
        self,
        message: str = "PKCE verifier not found. Please try logging in again.",
    ) -> None:
        super().__init__(message)


class StateMismatchError(OAuthError):
    """Raised when the callback ``state`` does not match the pending login."""

    def __init__(
        self,
        message: str = "OAuth state mismatch. Please try logging in again.",
    ) -> None:
        super().__init__(message)


class AuthorizationDeniedError(OAuthError):
    """Raised when the provider redirects back with an ``error`` parameter.

    Attributes:
        error: OAuth error code (e.g. ``access_denied``)
        error_description: Optional provider description
    """

    def __init__(self, error: str, error_description: str | None = None) -> None:
        message = f"Authorization failed: {error}"
        if error_description:
            message = f"{message} ({error_description})"
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class LoginCancelledError(OAuthError):
    """Raised when the session was ended while a login was completing.

    The exchanged tokens are discarded and nothing is stored.
    """

    def __init__(
        self,
        message: str = "Login was cancelled by a logout. Please try logging in again.",
    ) -> None:
        super().__init__(message)


class TokenExchangeError(OAuthError):
    """Raised when the authorization code cannot be exchanged for tokens."""


class TokenRefreshError(OAuthError):
    """Raised when the refresh token is rejected or the refresh fails."""


class CallbackServerError(RefractAuthError):
    """Raised when the loopback callback server cannot start."""


class StorageError(RefractAuthError):
    """Raised when the storage backend is misconfigured."""


class StorageCorruptionError(StorageError):
    """A persisted value could not be parsed.

    Logged and treated as absence by the token store; never raised to callers.

    Attributes:
        key: Storage key holding the corrupt value
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt value for {key}: {reason}")
        self.key = key
        self.reason = reason
