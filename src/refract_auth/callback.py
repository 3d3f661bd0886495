"""Loopback receiver for the provider redirect.

Serves ``/auth/callback`` on the redirect URI's host and port with
Starlette and uvicorn, and hands the first callback's query parameters
back to the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast
from urllib.parse import urlencode, urlparse

from starlette.applications import Starlette
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from refract_auth.exceptions import CallbackServerError
from refract_auth.logging_config import get_logger

if TYPE_CHECKING:
    import uvicorn
    from starlette.requests import Request

logger = get_logger(__name__)

_SUCCESS_PAGE = """<!doctype html>
<html><body>
<h1>Signed in</h1>
<p>You can close this window and return to the terminal.</p>
</body></html>
"""

_FAILURE_PAGE = """<!doctype html>
<html><body>
<h1>Sign-in failed</h1>
<p>{message}</p>
<p>You can close this window.</p>
</body></html>
"""


@dataclass(frozen=True)
class CallbackParams:
    """Query parameters of the provider redirect."""

    code: str | None
    state: str | None
    error: str | None = None
    error_description: str | None = None

    def to_url(self, redirect_uri: str) -> str:
        """Rebuild the redirect URL the provider sent the user to."""
        query = {
            name: value
            for name, value in (
                ("code", self.code),
                ("state", self.state),
                ("error", self.error),
                ("error_description", self.error_description),
            )
            if value is not None
        }
        return f"{redirect_uri}?{urlencode(query)}"


class CallbackReceiver:
    """Captures the first provider redirect delivered to the callback route."""

    def __init__(self, path: str = "/auth/callback") -> None:
        self.path = path
        self.params: CallbackParams | None = None
        self._received = asyncio.Event()
        self.app = self._create_app()

    def _create_app(self) -> Starlette:
        async def health_check(request: Request) -> JSONResponse:
            return JSONResponse({"status": "ok", "waiting": self.params is None})

        async def oauth_callback(request: Request) -> HTMLResponse:
            if self.params is not None:
                return HTMLResponse(
                    _FAILURE_PAGE.format(message="This sign-in was already completed."),
                    status_code=409,
                )

            params = CallbackParams(
                code=request.query_params.get("code"),
                state=request.query_params.get("state"),
                error=request.query_params.get("error"),
                error_description=request.query_params.get("error_description"),
            )
            self.params = params
            self._received.set()

            if params.error:
                logger.error("OAuth error: %s - %s", params.error, params.error_description)
                return HTMLResponse(
                    _FAILURE_PAGE.format(message="The identity provider reported an error."),
                    status_code=400,
                )

            if not params.code:
                return HTMLResponse(
                    _FAILURE_PAGE.format(message="Missing code parameter."),
                    status_code=400,
                )

            logger.debug("Received OAuth callback")
            return HTMLResponse(_SUCCESS_PAGE)

        routes = [
            Route("/health", health_check, methods=["GET"]),
            Route(self.path, oauth_callback, methods=["GET"]),
        ]
        return Starlette(routes=routes)

    async def wait(self, timeout: float) -> CallbackParams:
        """Wait for the callback.

        Raises:
            TimeoutError: If no callback arrives in time
        """
        await asyncio.wait_for(self._received.wait(), timeout=timeout)
        return cast("CallbackParams", self.params)


async def _serve(server: uvicorn.Server, host: str, port: int) -> None:
    # uvicorn exits the process when it cannot bind
    try:
        await server.serve()
    except SystemExit as e:
        msg = f"Could not start callback server on {host}:{port}"
        raise CallbackServerError(msg) from e


async def wait_for_callback(
    redirect_uri: str,
    timeout: float,
    on_ready: Callable[[], object] | None = None,
) -> CallbackParams:
    """Serve the redirect URI locally until the provider calls back.

    Args:
        redirect_uri: Loopback redirect URI, e.g. http://127.0.0.1:8765/auth/callback
        timeout: Seconds to wait
        on_ready: Called once the server accepts connections

    Returns:
        Parameters of the callback

    Raises:
        ValueError: If the redirect URI has no host or port
        CallbackServerError: If the server cannot start
        TimeoutError: If no callback arrives in time
    """
    import uvicorn

    parsed = urlparse(redirect_uri)
    if not parsed.hostname or not parsed.port:
        msg = f"Redirect URI must include a host and port: {redirect_uri}"
        raise ValueError(msg)

    receiver = CallbackReceiver(path=parsed.path or "/")
    server = uvicorn.Server(
        uvicorn.Config(
            app=receiver.app,
            host=parsed.hostname,
            port=parsed.port,
            log_level="warning",
        )
    )
    serve_task = asyncio.create_task(_serve(server, parsed.hostname, parsed.port))

    try:
        while not server.started:
            if serve_task.done():
                serve_task.result()
                msg = f"Could not start callback server on {parsed.hostname}:{parsed.port}"
                raise CallbackServerError(msg)
            await asyncio.sleep(0.05)

        logger.info("Waiting for OAuth callback on %s", redirect_uri)
        if on_ready is not None:
            on_ready()
        return await receiver.wait(timeout)
    finally:
        server.should_exit = True
        if not serve_task.done():
            await serve_task
