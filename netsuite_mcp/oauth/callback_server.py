"""Local HTTP server that receives the OAuth redirect from NetSuite.

One listener handles one authorization attempt::

    IDLE -> LISTENING -> COMPLETED | FAILED | TIMED_OUT

``start()`` returns a future that resolves once the code has been handed to
the ``on_code`` coroutine successfully, or fails with the reason the attempt
ended. The listening socket is released on every terminal transition.
"""

import asyncio
import contextlib
import errno
import html
import logging
import secrets
from collections.abc import Awaitable, Callable
from enum import Enum

from aiohttp import web

from netsuite_mcp.core.config import DEFAULT_CALLBACK_PORT
from netsuite_mcp.utils.errors import (
    AuthFlowCancelledError,
    AuthTimeoutError,
    CallbackServerError,
    CSRFError,
    PortInUseError,
    ProviderError,
)

from .endpoints import CALLBACK_PATH, redirect_uri_for_port

logger = logging.getLogger(__name__)

AUTH_TIMEOUT_SECONDS = 5 * 60

# Keep serving long enough for the browser to render the success page
SUCCESS_SHUTDOWN_DELAY = 3.0

CodeHandler = Callable[[str], Awaitable[None]]

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>Authentication Successful</title></head>
<body style="font-family: system-ui, sans-serif; text-align: center; padding: 50px;">
    <h1>✅ Authentication Successful!</h1>
    <p>You can close this window and return to your IDE.</p>
</body>
</html>
"""

ERROR_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>{title}</title></head>
<body style="font-family: system-ui, sans-serif; text-align: center; padding: 50px;">
    <h1>❌ {title}</h1>
    <p style="color: #d32f2f; font-size: 1.1em;">{message}</p>
    <p style="color: #666; margin-top: 30px;">You can close this window.</p>
</body>
</html>
"""


class ListenerState(Enum):
    """Lifecycle of a callback listener."""

    IDLE = "idle"
    LISTENING = "listening"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def _error_response(title: str, message: str, status: int) -> web.Response:
    return web.Response(
        text=ERROR_PAGE.format(title=html.escape(title), message=html.escape(message)),
        content_type="text/html",
        charset="utf-8",
        status=status,
    )


class CallbackServer:
    """Single-use OAuth callback listener on ``http://localhost:{port}/callback``.

    Requests to any other path get aiohttp's plain 404. Calling ``start()``
    while a previous listener is still active stops that listener first and
    fails its future with AuthFlowCancelledError.
    """

    def __init__(
        self,
        port: int = DEFAULT_CALLBACK_PORT,
        host: str = "localhost",
        timeout: float = AUTH_TIMEOUT_SECONDS,
        shutdown_delay: float = SUCCESS_SHUTDOWN_DELAY,
    ):
        """Initialize callback server.

        Args:
            port: Local port to listen on
            host: Interface to bind
            timeout: Seconds to wait for the callback before failing
            shutdown_delay: Seconds to keep serving after a successful callback
        """
        self.port = port
        self.host = host
        self.timeout = timeout
        self.shutdown_delay = shutdown_delay
        self.state = ListenerState.IDLE

        self._runner: web.AppRunner | None = None
        self._future: asyncio.Future[None] | None = None
        self._expected_state: str | None = None
        self._on_code: CodeHandler | None = None
        self._exchanging = False
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._shutdown_task: asyncio.Task[None] | None = None

    @property
    def redirect_uri(self) -> str:
        """Redirect URI served by this listener."""
        return redirect_uri_for_port(self.port)

    @property
    def is_listening(self) -> bool:
        """Whether the listener is waiting for a callback."""
        return self.state is ListenerState.LISTENING

    async def start(self, expected_state: str, on_code: CodeHandler) -> asyncio.Future[None]:
        """Bind the port and wait for the authorization redirect.

        Args:
            expected_state: CSRF state value sent in the authorization URL
            on_code: Coroutine that exchanges the code; its failure fails the flow

        Returns:
            Future resolved when the flow completes. If the port cannot be
            bound the future is already failed with PortInUseError, or
            CallbackServerError for any other bind failure.
        """
        if self._runner is not None or self._future is not None:
            await self.stop()

        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        self._future = future
        self._expected_state = expected_state
        self._on_code = on_code
        self._exchanging = False

        app = web.Application()
        app.router.add_get(CALLBACK_PATH, self._handle_callback)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)

        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            self.state = ListenerState.FAILED
            self._future = None
            if e.errno == errno.EADDRINUSE:
                logger.error(f"❌ Port {self.port} is already in use.")
                future.set_exception(PortInUseError(self.port))
            else:
                logger.error(f"❌ Could not start OAuth callback server: {e}")
                future.set_exception(CallbackServerError(self.port, e))
            return future

        self._runner = runner
        self.state = ListenerState.LISTENING
        self._timeout_handle = loop.call_later(self.timeout, self._on_timeout)

        logger.info(f"🌐 OAuth callback server listening on http://localhost:{self.port}")
        return future

    async def stop(self) -> None:
        """Stop listening immediately and release the port.

        A pending flow is failed with AuthFlowCancelledError.
        """
        self._cancel_timeout()

        if self._future is not None and not self._future.done():
            self._future.set_exception(
                AuthFlowCancelledError("Authentication attempt was stopped before completing")
            )
            self.state = ListenerState.FAILED
        self._future = None

        task, self._shutdown_task = self._shutdown_task, None
        runner, self._runner = self._runner, None
        if task is not None and not task.done():
            # A task that already took the runner is mid-cleanup and must finish
            if runner is not None:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if runner is not None:
            await runner.cleanup()
            logger.info("OAuth callback server stopped")

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Handle the OAuth redirect."""
        if self.state is not ListenerState.LISTENING:
            return _error_response(
                "Authentication Already Finished",
                "This authentication attempt has already finished. Please try again.",
                status=400,
            )

        # Once a code is being exchanged no other request may settle the flow
        if self._exchanging:
            return _error_response(
                "Authentication In Progress",
                "This authorization code is already being processed.",
                status=400,
            )

        error = request.query.get("error")
        if error:
            error_description = request.query.get("error_description")
            logger.error(f"❌ OAuth error from NetSuite: {error} {error_description or ''}")
            self._finish(ProviderError(error, error_description))
            return await self._reply_and_shut_down(
                request,
                _error_response("Authentication Failed", error_description or error, status=500),
            )

        state = request.query.get("state") or ""
        if not secrets.compare_digest(state.encode(), (self._expected_state or "").encode()):
            logger.warning("❌ OAuth callback state mismatch, rejecting request")
            self._finish(CSRFError())
            return await self._reply_and_shut_down(
                request,
                _error_response(
                    "Invalid State", "CSRF validation failed. Please try again.", status=400
                ),
            )

        code = request.query.get("code")
        if not code:
            self._finish(ProviderError("invalid_request", "Callback did not include a code"))
            return await self._reply_and_shut_down(
                request,
                _error_response(
                    "Invalid Callback", "No authorization code was received.", status=400
                ),
            )

        on_code = self._on_code
        if on_code is None:
            return _error_response(
                "Authentication Not Started",
                "No authentication attempt is waiting for this callback.",
                status=400,
            )

        # The callback arrived, so the timeout no longer applies
        self._cancel_timeout()
        self._exchanging = True

        try:
            await on_code(code)
        except Exception as e:
            logger.error(f"❌ Token exchange failed: {e}")
            self._finish(e)
            return await self._reply_and_shut_down(
                request, _error_response("Token Exchange Failed", str(e), status=500)
            )

        self._finish(None)
        return await self._reply_and_shut_down(
            request,
            web.Response(text=SUCCESS_PAGE, content_type="text/html", charset="utf-8"),
            delay=self.shutdown_delay,
        )

    async def _reply_and_shut_down(
        self, request: web.Request, response: web.Response, delay: float = 0.0
    ) -> web.Response:
        """Send the response in full, then release the port after ``delay`` seconds."""
        await response.prepare(request)
        await response.write_eof()
        self._schedule_shutdown(delay)
        return response

    def _finish(self, error: BaseException | None) -> None:
        """Move to a terminal state and settle the future."""
        self._cancel_timeout()

        future = self._future
        if future is None or future.done():
            return

        if error is None:
            self.state = ListenerState.COMPLETED
            future.set_result(None)
        else:
            if isinstance(error, AuthTimeoutError):
                self.state = ListenerState.TIMED_OUT
            else:
                self.state = ListenerState.FAILED
            future.set_exception(error)

    def _schedule_shutdown(self, delay: float) -> None:
        if self._runner is not None and self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown_after(self._runner, delay))

    async def _shutdown_after(self, runner: web.AppRunner, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._runner is runner:
            self._runner = None
            await runner.cleanup()
            logger.info("OAuth callback server stopped")

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self.state is ListenerState.LISTENING:
            logger.error("❌ Authentication timeout, no callback received")
            self._finish(AuthTimeoutError(self.timeout))
            self._schedule_shutdown(0.0)

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
