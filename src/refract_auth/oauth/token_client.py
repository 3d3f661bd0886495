"""Token endpoint client.

Performs the authorization-code and refresh-token grants against the
provider's token endpoint.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from refract_auth.exceptions import OAuthError, TokenExchangeError, TokenRefreshError
from refract_auth.logging_config import get_logger
from refract_auth.security import mask_sensitive_data

logger = get_logger(__name__)

# Default HTTP timeout for OAuth requests
DEFAULT_TIMEOUT = 30.0


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    model_config = {"extra": "allow"}


def _response_body(response: httpx.Response) -> dict | str:
    """Best-effort decoded body for diagnostics."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    return body if isinstance(body, dict) else response.text


class TokenExchangeClient:
    """Client for the provider token endpoint."""

    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        redirect_uri: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the token client.

        Args:
            token_endpoint: OAuth token endpoint
            client_id: OAuth client identifier (public client, no secret)
            redirect_uri: Redirect URI used in the authorization request
            http_client: Optional custom HTTP client
            timeout: Timeout for the owned HTTP client
        """
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> TokenExchangeClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _post(
        self,
        data: dict[str, str],
        error_cls: type[OAuthError],
        action: str,
    ) -> dict[str, Any]:
        client = await self._get_client()

        try:
            response = await client.post(
                self.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            body = _response_body(e.response)
            logger.error(
                "%s failed: %s %s",
                action,
                e.response.status_code,
                e.response.reason_phrase,
            )
            raise error_cls(
                f"{action} failed: {e.response.text or e.response.reason_phrase}",
                status_code=e.response.status_code,
                response_body=body,
            ) from e
        except httpx.HTTPError as e:
            logger.error("%s error: %s", action, e)
            raise error_cls(f"{action} error: {e}") from e
        except ValueError as e:
            logger.error("%s returned invalid JSON: %s", action, e)
            raise error_cls(f"{action} returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise error_cls(f"{action} returned an unexpected payload")
        return payload

    def _parse(
        self,
        payload: dict[str, Any],
        error_cls: type[OAuthError],
        action: str,
    ) -> TokenResponse:
        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as e:
            logger.error("%s returned a malformed token response: %s", action, e)
            raise error_cls(
                f"{action} returned a malformed token response",
                response_body=mask_sensitive_data(payload),
            ) from e

    async def exchange_code(self, code: str, verifier: str) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            verifier: PKCE code verifier from the authorization request

        Returns:
            Validated token response

        Raises:
            TokenExchangeError: If the exchange fails
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "code": code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": verifier,
        }

        logger.debug("Exchanging authorization code for tokens")
        payload = await self._post(data, TokenExchangeError, "Token exchange")
        tokens = self._parse(payload, TokenExchangeError, "Token exchange")

        logger.info("Successfully exchanged code for tokens (scope: %s)", tokens.scope or "N/A")
        return tokens

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Use a refresh token to obtain new tokens.

        The provider may omit ``refresh_token``; the one passed in is then
        carried into the returned response.

        Args:
            refresh_token: The current refresh token

        Returns:
            Validated token response

        Raises:
            TokenRefreshError: If the refresh fails
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "refresh_token": refresh_token,
        }

        logger.debug("Refreshing access token")
        payload = await self._post(data, TokenRefreshError, "Token refresh")
        tokens = self._parse(payload, TokenRefreshError, "Token refresh")

        if tokens.refresh_token is None:
            tokens.refresh_token = refresh_token

        logger.info("Successfully refreshed access token")
        return tokens
