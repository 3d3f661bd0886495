"""Display-only identity token claims.

Claims are decoded WITHOUT signature, issuer, audience or expiry
verification. They are for showing who is signed in and must never be
used for authorization decisions; the resource server verifies tokens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import jwt

from refract_auth.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class JWTClaims:
    """Unverified identity token claims (display only)."""

    sub: str
    iat: int | None = None
    exp: int | None = None
    iss: str | None = None
    aud: str | list[str] | None = None
    email: str | None = None
    email_verified: bool | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    preferred_username: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        """Best human-readable label for the user."""
        return self.name or self.preferred_username or self.email or self.sub


_KNOWN_CLAIMS = (
    "iat",
    "exp",
    "iss",
    "aud",
    "email",
    "email_verified",
    "name",
    "given_name",
    "family_name",
    "preferred_username",
)


def decode_display_claims(id_token: str | None) -> JWTClaims | None:
    """Decode identity token claims for display, without verification.

    Args:
        id_token: Compact JWT, or None

    Returns:
        JWTClaims, or None if the token is absent or malformed
    """
    if not id_token:
        return None

    try:
        payload = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug("Could not decode id token: %s", e)
        return None

    sub = payload.get("sub")
    if not isinstance(sub, str):
        logger.debug("Id token has no subject claim")
        return None

    known = {name: payload.get(name) for name in _KNOWN_CLAIMS}
    extra = {k: v for k, v in payload.items() if k != "sub" and k not in _KNOWN_CLAIMS}
    return JWTClaims(sub=sub, extra=extra, **known)
