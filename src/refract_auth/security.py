"""Security utilities for refract-auth.

Provides random string generation over the RFC 3986 unreserved alphabet,
constant-time comparison, redaction helpers, and an httpx auth hook that
injects the current session's bearer token.
"""

from __future__ import annotations

import hmac
import secrets
from collections.abc import AsyncGenerator, Callable
from typing import TYPE_CHECKING, Any

import httpx

from refract_auth.logging_config import get_logger

if TYPE_CHECKING:
    from refract_auth.oauth.session import SessionManager

logger = get_logger(__name__)

# RFC 3986 unreserved characters
UNRESERVED_CHARACTERS = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)

RandomBytes = Callable[[int], bytes]


def generate_random_string(
    length: int,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> str:
    """Generate a random string over the unreserved alphabet.

    Each random byte is mapped onto the alphabet by modulo. The result is
    slightly non-uniform, which RFC 7636 tolerates for verifiers.

    Args:
        length: Number of characters to produce
        random_bytes: Cryptographically secure byte source

    Returns:
        Random string of exactly ``length`` characters
    """
    data = random_bytes(length)
    if len(data) != length:
        msg = f"Random source returned {len(data)} bytes, expected {length}"
        raise RuntimeError(msg)
    alphabet_size = len(UNRESERVED_CHARACTERS)
    return "".join(UNRESERVED_CHARACTERS[b % alphabet_size] for b in data)


def redact(value: str | None) -> str:
    """Redact a potentially sensitive value for safe logging.

    Args:
        value: The value to redact

    Returns:
        "***" if value is non-empty, "<empty>" if empty/None
    """
    if value is None or value == "":
        return "<empty>"
    return "***"


def constant_time_equals(a: str | None, b: str | None) -> bool:
    """Compare two strings in constant time to prevent timing attacks.

    Args:
        a: First string to compare
        b: Second string to compare

    Returns:
        True if strings are equal, False otherwise
    """
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def mask_sensitive_data(
    data: dict[str, Any], sensitive_keys: set[str] | None = None
) -> dict[str, Any]:
    """Mask sensitive data in a dictionary for logging.

    Args:
        data: Dictionary potentially containing sensitive data
        sensitive_keys: Set of keys to mask (uses defaults if not provided)

    Returns:
        Copy of dictionary with sensitive values masked
    """
    if sensitive_keys is None:
        sensitive_keys = {
            "access_token",
            "refresh_token",
            "id_token",
            "code",
            "code_verifier",
            "secret",
            "password",
            "authorization",
        }

    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = mask_sensitive_data(value, sensitive_keys)
        elif any(sensitive in key.lower() for sensitive in sensitive_keys):
            result[key] = "***"
        else:
            result[key] = value

    return result


class SessionBearerAuth(httpx.Auth):
    """httpx auth flow that adds the session's access token to each request.

    Requests go out unauthenticated when there is no usable session; the
    resource server then answers 401 and the caller can restart login.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self._session_manager.get_access_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            logger.debug("No access token available for %s", request.url)
        yield request

    def sync_auth_flow(self, request: httpx.Request) -> Any:
        msg = "SessionBearerAuth requires an httpx.AsyncClient"
        raise RuntimeError(msg)
