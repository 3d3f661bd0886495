"""Session management for OAuth authentication.

The SessionManager drives the Authorization Code + PKCE flow for a single
user session: it starts logins, completes callbacks, hands out access
tokens (refreshing them when close to expiry) and tears sessions down.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlparse

import httpx

from refract_auth.exceptions import (
    AuthorizationDeniedError,
    LoginCancelledError,
    MissingPKCEVerifierError,
    StateMismatchError,
    TokenRefreshError,
)
from refract_auth.logging_config import get_logger
from refract_auth.oauth.authorization import build_authorization_request, build_end_session_url
from refract_auth.oauth.claims import JWTClaims, decode_display_claims
from refract_auth.oauth.pkce import create_pkce_pair
from refract_auth.oauth.token_client import TokenExchangeClient
from refract_auth.oauth.token_store import AuthState, TokenStore
from refract_auth.security import RandomBytes, constant_time_equals
from refract_auth.storage import KeyValueStorage, create_storage

if TYPE_CHECKING:
    from refract_auth.config import Config

logger = get_logger(__name__)

Clock = Callable[[], int]
Navigator = Callable[[str], object]


def system_clock() -> int:
    """Current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


class AuthStatus(str, Enum):
    """Session states."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class SessionManager:
    """Orchestrates login, callback, token refresh and logout.

    Collaborators should only rely on ``is_authenticated``,
    ``get_access_token``, ``login``, ``logout`` and ``get_user_info``.

    Refreshes are single-flight: concurrent ``get_access_token`` calls near
    expiry await one shared refresh. Every callback and logout bumps a
    session generation; a refresh started under an older generation never
    writes to the store.
    """

    def __init__(
        self,
        config: Config,
        token_store: TokenStore,
        token_client: TokenExchangeClient,
        navigator: Navigator | None = None,
        clock: Clock = system_clock,
        random_bytes: RandomBytes = secrets.token_bytes,
    ) -> None:
        """Initialize session manager.

        Args:
            config: Application configuration (provider must be set)
            token_store: Session persistence
            token_client: Token endpoint client
            navigator: Called with every URL the user should be sent to
            clock: Millisecond clock
            random_bytes: Cryptographically secure byte source

        Raises:
            ConfigError: If provider settings are missing
        """
        config.require_provider()
        self._config = config
        self._token_store = token_store
        self._token_client = token_client
        self._navigator = navigator
        self._clock = clock
        self._random_bytes = random_bytes
        self._refresh_buffer_ms = config.refresh_buffer_seconds * 1000
        self._refresh_task: asyncio.Task[str | None] | None = None
        self._refresh_generation = 0
        self._generation = 0

    @property
    def token_store(self) -> TokenStore:
        """Persistence backing this session."""
        return self._token_store

    @property
    def status(self) -> AuthStatus:
        """Current session state."""
        task = self._refresh_task
        if task is not None and not task.done() and self._refresh_generation == self._generation:
            return AuthStatus.REFRESHING
        if self.is_authenticated():
            return AuthStatus.AUTHENTICATED
        if self._token_store.load_verifier() is not None:
            return AuthStatus.AUTHENTICATING
        return AuthStatus.UNAUTHENTICATED

    def _navigate(self, url: str) -> None:
        if self._navigator is not None:
            self._navigator(url)

    def login(self, redirect_path: str | None = None) -> str:
        """Start a login and send the user to the provider.

        Args:
            redirect_path: Where to return the user after login

        Returns:
            The authorization URL
        """
        if redirect_path:
            self._token_store.save_redirect_path(redirect_path)

        pkce = create_pkce_pair(random_bytes=self._random_bytes)
        request = build_authorization_request(
            authorization_endpoint=self._config.authorization_endpoint,
            client_id=self._config.client_id or "",
            redirect_uri=self._config.effective_redirect_uri,
            scope=self._config.scope,
            code_challenge=pkce.challenge,
            random_bytes=self._random_bytes,
        )
        self._token_store.save_pending_login(pkce.verifier, request.state)

        logger.info("Starting login for client %s", self._config.client_id)
        self._navigate(request.url)
        return request.url

    async def handle_callback(self, code: str, state: str | None = None) -> str | None:
        """Complete a login by exchanging the authorization code.

        Args:
            code: Authorization code from the redirect
            state: State value from the redirect

        Returns:
            The redirect path saved at login, now consumed

        Raises:
            MissingPKCEVerifierError: If no login is pending
            StateMismatchError: If the state is missing or does not match
            TokenExchangeError: If the provider rejects the code
            LoginCancelledError: If logout ran while the code was being exchanged
        """
        verifier = self._token_store.load_verifier()
        if verifier is None:
            logger.warning("Callback received without a pending login")
            raise MissingPKCEVerifierError

        if state is not None or self._config.require_state:
            expected = self._token_store.load_oauth_state()
            if expected is None or not constant_time_equals(expected, state):
                logger.warning("Callback state does not match the pending login")
                raise StateMismatchError

        generation = self._generation
        tokens = await self._token_client.exchange_code(code, verifier)
        if generation != self._generation:
            logger.info("Discarding exchanged tokens; session ended during login")
            raise LoginCancelledError

        self._generation += 1
        self._token_store.save(AuthState.from_token_response(tokens, self._clock()))
        self._token_store.clear_pending_login()

        redirect_path = self._token_store.load_redirect_path()
        self._token_store.clear_redirect_path()

        logger.info("Login completed")
        return redirect_path

    async def handle_callback_url(self, url: str) -> str | None:
        """Complete a login from the full redirect URL.

        Raises:
            AuthorizationDeniedError: If the provider returned an error
            MissingPKCEVerifierError: If no login is pending
            StateMismatchError: If the state is missing or does not match
            TokenExchangeError: If the provider rejects the code
        """
        params = parse_qs(urlparse(url).query)

        def first(name: str) -> str | None:
            values = params.get(name)
            return values[0] if values else None

        error = first("error")
        if error:
            raise AuthorizationDeniedError(error, first("error_description"))

        code = first("code")
        if not code:
            raise AuthorizationDeniedError("invalid_request", "Missing code parameter")

        return await self.handle_callback(code, first("state"))

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing it if close to expiry.

        Returns:
            Access token, or None when there is no usable session
        """
        auth_state = self._token_store.load()
        if auth_state is None:
            return None

        if not auth_state.expires_within(self._clock(), self._refresh_buffer_ms):
            return auth_state.access_token

        if not auth_state.refresh_token:
            logger.debug("Access token near expiry and no refresh token available")
            return None

        task = self._refresh_task
        if task is None or task.done() or self._refresh_generation != self._generation:
            task = asyncio.ensure_future(
                self._refresh(auth_state.refresh_token, self._generation)
            )
            task.add_done_callback(self._on_refresh_done)
            self._refresh_task = task
            self._refresh_generation = self._generation
        else:
            logger.debug("Joining in-flight token refresh")

        # Shielded so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(task)

    def _on_refresh_done(self, task: asyncio.Task[str | None]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, refresh_token: str, generation: int) -> str | None:
        try:
            tokens = await self._token_client.refresh(refresh_token)
        except TokenRefreshError as e:
            if generation != self._generation:
                logger.debug("Ignoring refresh failure for a replaced session: %s", e)
                return None
            logger.warning("Session expired, logging out: %s", e)
            self.logout()
            return None

        if generation != self._generation:
            logger.info("Discarding refreshed tokens; session changed during refresh")
            return None

        new_state = AuthState.from_token_response(tokens, self._clock())
        self._token_store.save(new_state)
        return new_state.access_token

    def is_authenticated(self) -> bool:
        """True if the stored access token has not yet expired. Never refreshes."""
        auth_state = self._token_store.load()
        if auth_state is None:
            return False
        return not auth_state.is_expired(self._clock())

    def logout(self) -> str:
        """End the session locally and at the provider.

        Returns:
            The end-session URL, or the application root without an id token
        """
        auth_state = self._token_store.load()

        self._generation += 1
        self._token_store.clear()
        self._token_store.clear_pending_login()
        self._token_store.clear_redirect_path()

        if auth_state is not None and auth_state.id_token:
            url = build_end_session_url(
                self._config.end_session_endpoint,
                auth_state.id_token,
                self._config.effective_post_logout_redirect_uri,
            )
        else:
            url = self._config.app_url

        logger.info("Logged out")
        self._navigate(url)
        return url

    def get_user_info(self) -> JWTClaims | None:
        """Display-only claims of the stored id token; not a trust boundary."""
        auth_state = self._token_store.load()
        if auth_state is None:
            return None
        return decode_display_claims(auth_state.id_token)

    def get_redirect_path(self) -> str | None:
        """Path saved by the last login, if not yet consumed."""
        return self._token_store.load_redirect_path()

    def clear_redirect_path(self) -> None:
        """Forget the saved post-login path."""
        self._token_store.clear_redirect_path()

    async def close(self) -> None:
        """Release the token client's HTTP resources."""
        await self._token_client.close()


def create_session_manager(
    config: Config,
    storage: KeyValueStorage | None = None,
    http_client: httpx.AsyncClient | None = None,
    navigator: Navigator | None = None,
    clock: Clock = system_clock,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> SessionManager:
    """Build a SessionManager from configuration.

    Args:
        config: Application configuration
        storage: Storage backend (defaults to the configured one)
        http_client: Optional shared HTTP client
        navigator: Called with every URL the user should be sent to
        clock: Millisecond clock
        random_bytes: Cryptographically secure byte source

    Returns:
        Configured SessionManager
    """
    config.require_provider()

    if storage is None:
        encryption_key = (
            config.token_encryption_key.get_secret_value()
            if config.token_encryption_key
            else None
        )
        storage = create_storage(encryption_key=encryption_key, file_path=config.token_store_path)

    token_client = TokenExchangeClient(
        token_endpoint=config.token_endpoint,
        client_id=config.client_id or "",
        redirect_uri=config.effective_redirect_uri,
        http_client=http_client,
        timeout=config.http_timeout,
    )

    return SessionManager(
        config=config,
        token_store=TokenStore(storage, namespace=config.storage_namespace),
        token_client=token_client,
        navigator=navigator,
        clock=clock,
        random_bytes=random_bytes,
    )
