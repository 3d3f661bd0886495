"""Tests for exception types."""

from __future__ import annotations

from refract_auth.exceptions import (
    AuthorizationDeniedError,
    CallbackServerError,
    LoginCancelledError,
    MissingPKCEVerifierError,
    OAuthError,
    RefractAuthError,
    StateMismatchError,
    StorageCorruptionError,
    StorageError,
    TokenExchangeError,
    TokenRefreshError,
)


class TestOAuthError:
    """Tests for OAuthError."""

    def test_str_without_status(self) -> None:
        assert str(OAuthError("Something failed")) == "Something failed"

    def test_str_with_status(self) -> None:
        error = OAuthError("Token exchange failed", status_code=400, response_body={"error": "x"})

        assert str(error) == "[400] Token exchange failed"
        assert error.response_body == {"error": "x"}

    def test_hierarchy(self) -> None:
        for cls in (
            LoginCancelledError,
            MissingPKCEVerifierError,
            StateMismatchError,
            TokenExchangeError,
            TokenRefreshError,
        ):
            assert issubclass(cls, OAuthError)
            assert issubclass(cls, RefractAuthError)
        assert issubclass(StorageCorruptionError, StorageError)
        assert issubclass(CallbackServerError, RefractAuthError)


class TestSpecificErrors:
    """Tests for errors with default messages."""

    def test_missing_verifier_message(self) -> None:
        assert str(MissingPKCEVerifierError()) == (
            "PKCE verifier not found. Please try logging in again."
        )

    def test_login_cancelled_message(self) -> None:
        assert str(LoginCancelledError()) == (
            "Login was cancelled by a logout. Please try logging in again."
        )

    def test_authorization_denied(self) -> None:
        error = AuthorizationDeniedError("access_denied", "User cancelled")

        assert error.error == "access_denied"
        assert error.error_description == "User cancelled"
        assert str(error) == "Authorization failed: access_denied (User cancelled)"

    def test_authorization_denied_without_description(self) -> None:
        assert str(AuthorizationDeniedError("login_required")) == (
            "Authorization failed: login_required"
        )

    def test_storage_corruption(self) -> None:
        error = StorageCorruptionError("refract_auth_state", "bad json")

        assert error.key == "refract_auth_state"
        assert "refract_auth_state" in str(error)
