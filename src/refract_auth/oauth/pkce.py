"""PKCE (Proof Key for Code Exchange) implementation.

Implements RFC 7636 for secure OAuth 2.0 Authorization Code flows.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

from refract_auth.security import RandomBytes, generate_random_string

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


@dataclass(frozen=True)
class PKCEPair:
    """PKCE code verifier and challenge pair.

    Attributes:
        verifier: Random string sent with the token request
        challenge: S256 hash of the verifier sent with the authorization request
    """

    verifier: str
    challenge: str


def generate_code_verifier(
    length: int = MAX_VERIFIER_LENGTH,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> str:
    """Generate a cryptographically random code verifier.

    Args:
        length: Verifier length, 43 to 128 characters
        random_bytes: Cryptographically secure byte source

    Returns:
        Verifier over the unreserved alphabet ``A-Za-z0-9-._~``

    Raises:
        ValueError: If length is outside the RFC 7636 bounds
    """
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        msg = (
            f"length must be between {MIN_VERIFIER_LENGTH} and "
            f"{MAX_VERIFIER_LENGTH} characters"
        )
        raise ValueError(msg)

    return generate_random_string(length, random_bytes)


def generate_code_challenge(verifier: str) -> str:
    """Generate a code challenge from a code verifier.

    Computes BASE64URL(SHA256(code_verifier)) without padding.

    Args:
        verifier: The code verifier string

    Returns:
        S256 code challenge
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_pkce_pair(
    length: int = MAX_VERIFIER_LENGTH,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> PKCEPair:
    """Create a new PKCE verifier/challenge pair.

    Args:
        length: Verifier length
        random_bytes: Cryptographically secure byte source

    Returns:
        PKCEPair with verifier and challenge
    """
    verifier = generate_code_verifier(length, random_bytes)
    return PKCEPair(verifier=verifier, challenge=generate_code_challenge(verifier))
