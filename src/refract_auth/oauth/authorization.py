"""Authorization and end-session request URLs."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from refract_auth.logging_config import get_logger
from refract_auth.security import RandomBytes, generate_random_string

logger = get_logger(__name__)

STATE_LENGTH = 32


@dataclass(frozen=True)
class AuthorizationRequest:
    """A built authorization request.

    Attributes:
        url: Fully-formed authorization endpoint URL
        state: Opaque anti-CSRF value embedded in the URL
    """

    url: str
    state: str


def generate_state(random_bytes: RandomBytes = secrets.token_bytes) -> str:
    """Generate an opaque state value for CSRF correlation."""
    return generate_random_string(STATE_LENGTH, random_bytes)


def build_authorization_request(
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    code_challenge: str,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> AuthorizationRequest:
    """Build the provider authorization URL with PKCE parameters.

    The caller is responsible for persisting the returned state.

    Args:
        authorization_endpoint: Provider authorization endpoint
        client_id: OAuth client identifier
        redirect_uri: Registered redirect URI
        scope: Space-separated scopes
        code_challenge: S256 PKCE challenge
        random_bytes: Byte source for the state value

    Returns:
        AuthorizationRequest with URL and state
    """
    state = generate_state(random_bytes)
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }

    url = f"{authorization_endpoint}?{urlencode(params)}"
    logger.debug("Created authorization URL for client %s", client_id)

    return AuthorizationRequest(url=url, state=state)


def build_end_session_url(
    end_session_endpoint: str,
    id_token: str,
    post_logout_redirect_uri: str,
) -> str:
    """Build the RP-initiated logout URL."""
    params = {
        "id_token_hint": id_token,
        "post_logout_redirect_uri": post_logout_redirect_uri,
    }
    return f"{end_session_endpoint}?{urlencode(params)}"
