"""OAuth 2.0 / OIDC module for refract-auth.

Provides the Authorization Code flow with PKCE for a single user session.
"""

from refract_auth.oauth.authorization import (
    AuthorizationRequest,
    build_authorization_request,
    build_end_session_url,
)
from refract_auth.oauth.claims import JWTClaims, decode_display_claims
from refract_auth.oauth.pkce import (
    PKCEPair,
    create_pkce_pair,
    generate_code_challenge,
    generate_code_verifier,
)
from refract_auth.oauth.session import AuthStatus, SessionManager, create_session_manager
from refract_auth.oauth.token_client import TokenExchangeClient, TokenResponse
from refract_auth.oauth.token_store import AuthState, StorageKeys, TokenStore

__all__ = [
    "AuthState",
    "AuthStatus",
    "AuthorizationRequest",
    "JWTClaims",
    "PKCEPair",
    "SessionManager",
    "StorageKeys",
    "TokenExchangeClient",
    "TokenResponse",
    "TokenStore",
    "build_authorization_request",
    "build_end_session_url",
    "create_pkce_pair",
    "create_session_manager",
    "decode_display_claims",
    "generate_code_challenge",
    "generate_code_verifier",
]
