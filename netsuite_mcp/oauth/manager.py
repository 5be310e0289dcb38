"""Authentication orchestrator for NetSuite OAuth 2.0 with PKCE.

The manager drives one authorization attempt at a time through an explicit
state machine::

    UNAUTHENTICATED -> FLOW_STARTED -> AWAITING_USER -> EXCHANGING_TOKEN -> AUTHENTICATED

Any in-flight state may move to FAILED, which immediately returns to
UNAUTHENTICATED so the user can retry. Whether a usable session exists is
always derived from the session file, never from an in-memory flag.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import partial
from pathlib import Path

from netsuite_mcp.core.config import DEFAULT_CALLBACK_PORT, resolve_credentials
from netsuite_mcp.utils.browser import open_browser
from netsuite_mcp.utils.errors import (
    AuthFlowInProgressError,
    InvalidStateTransitionError,
    UnauthenticatedError,
)

from .callback_server import AUTH_TIMEOUT_SECONDS, CallbackServer
from .endpoints import build_authorization_url
from .flow_context import FlowContext
from .session_store import SessionRecord, SessionStore
from .token_exchange import TokenService

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "mcp"

OpenURL = Callable[[str], Awaitable[object] | object]


class AuthState(Enum):
    """States of the authorization flow."""

    UNAUTHENTICATED = "unauthenticated"
    FLOW_STARTED = "flow_started"
    AWAITING_USER = "awaiting_user"
    EXCHANGING_TOKEN = "exchanging_token"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.UNAUTHENTICATED: frozenset({AuthState.FLOW_STARTED}),
    AuthState.FLOW_STARTED: frozenset({AuthState.AWAITING_USER, AuthState.FAILED}),
    AuthState.AWAITING_USER: frozenset({AuthState.EXCHANGING_TOKEN, AuthState.FAILED}),
    AuthState.EXCHANGING_TOKEN: frozenset({AuthState.AUTHENTICATED, AuthState.FAILED}),
    AuthState.AUTHENTICATED: frozenset({AuthState.FLOW_STARTED, AuthState.UNAUTHENTICATED}),
    AuthState.FAILED: frozenset({AuthState.UNAUTHENTICATED}),
}

IN_FLIGHT_STATES = frozenset(
    {AuthState.FLOW_STARTED, AuthState.AWAITING_USER, AuthState.EXCHANGING_TOKEN}
)


class OAuthManager:
    """Owns the authorization flow and hands out valid access tokens.

    Every downstream NetSuite call should obtain its bearer token from
    ``ensure_valid_token()``, which refreshes the token when it is close to
    expiring.

    Usage:
        manager = OAuthManager(storage_path=Path("~/.netsuite-mcp/sessions"))
        if not manager.has_valid_session():
            await manager.start_auth_flow("1234567_SB1", "client-id")
        token = await manager.ensure_valid_token()
    """

    def __init__(
        self,
        storage_path: Path,
        callback_port: int = DEFAULT_CALLBACK_PORT,
        scope: str = DEFAULT_SCOPE,
        token_service: TokenService | None = None,
        callback_server: CallbackServer | None = None,
        open_url: OpenURL = open_browser,
        callback_timeout: float = AUTH_TIMEOUT_SECONDS,
    ):
        """Initialize the OAuth manager.

        Args:
            storage_path: Directory holding the session file
            callback_port: Port for the local callback server
            scope: OAuth scope to request
            token_service: Token exchange/refresh service (default: TokenService())
            callback_server: Callback listener (default: one bound to callback_port)
            open_url: Callable that opens the authorization URL; may be async.
                Failures are logged and ignored.
            callback_timeout: Seconds to wait for the user to finish logging in
        """
        self.storage = SessionStore(storage_path)
        self.callback_server = callback_server or CallbackServer(
            port=callback_port, timeout=callback_timeout
        )
        self.token_service = token_service or TokenService()
        self.scope = scope
        self.open_url = open_url

        self._state = AuthState.UNAUTHENTICATED
        self._refresh_lock = asyncio.Lock()

    @property
    def state(self) -> AuthState:
        """Current state of the authorization flow."""
        return self._state

    @property
    def callback_port(self) -> int:
        """Port the callback server listens on."""
        return self.callback_server.port

    @property
    def redirect_uri(self) -> str:
        """Redirect URI that must be registered on the integration record."""
        return self.callback_server.redirect_uri

    def _transition(self, target: AuthState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidStateTransitionError(self._state.value, target.value)
        logger.debug(f"Auth state: {self._state.value} -> {target.value}")
        self._state = target

    def _fail(self) -> None:
        if self._state in IN_FLIGHT_STATES:
            self._transition(AuthState.FAILED)
        if self._state is AuthState.FAILED:
            self._transition(AuthState.UNAUTHENTICATED)

    async def start_auth_flow(
        self, account_id: str | None = None, client_id: str | None = None
    ) -> SessionRecord:
        """Run the browser-based authorization flow and persist the session.

        Suspends until the user completes (or abandons) the NetSuite login.

        Args:
            account_id: NetSuite account ID (default: NETSUITE_ACCOUNT_ID)
            client_id: OAuth client ID (default: NETSUITE_CLIENT_ID)

        Returns:
            The saved SessionRecord

        Raises:
            AuthFlowInProgressError: If a flow is already running
            ConfigurationError: If the account or client ID is missing
            PortInUseError: If the callback port is taken
            CallbackServerError: If the callback server fails to start otherwise
            CSRFError: If the callback state does not match
            ProviderError: If NetSuite reports an error or rejects the code
            AuthTimeoutError: If the user does not finish in time
            SessionStorageError: If the session cannot be saved
        """
        if self._state in IN_FLIGHT_STATES:
            raise AuthFlowInProgressError()

        account_id, client_id = resolve_credentials(account_id, client_id)

        self._transition(AuthState.FLOW_STARTED)
        logger.info("🔐 Starting NetSuite authentication...")
        logger.info(f"📋 Account ID: {account_id}")
        logger.info(f"📋 Client ID: {client_id[:8]}...")

        context = FlowContext(
            account_id=account_id,
            client_id=client_id,
            redirect_uri=self.redirect_uri,
        )
        auth_url = build_authorization_url(
            account_id=context.account_id,
            client_id=context.client_id,
            redirect_uri=context.redirect_uri,
            state=context.state,
            pkce=context.pkce,
            scope=self.scope,
        )
        result: list[SessionRecord] = []

        try:
            flow = await self.callback_server.start(
                context.state, partial(self._handle_code, context, result)
            )
            if not flow.done():
                self._transition(AuthState.AWAITING_USER)
                logger.info("Please open this URL to authorize:")
                logger.info(auth_url)
                await self._open_browser(auth_url)
                logger.info("⏳ Waiting for authorization...")
            await flow
        except asyncio.CancelledError:
            await self.callback_server.stop()
            self._fail()
            raise
        except Exception as e:
            logger.error(f"❌ Authentication failed: {e}")
            self._fail()
            raise

        logger.info("✅ Authentication successful")
        return result[0]

    async def _handle_code(
        self, context: FlowContext, result: list[SessionRecord], code: str
    ) -> None:
        """Exchange the authorization code and save the session."""
        self._transition(AuthState.EXCHANGING_TOKEN)
        record = await self.token_service.exchange_code(code, context)
        self.storage.save(record)
        result.append(record)
        self._transition(AuthState.AUTHENTICATED)

    async def _open_browser(self, url: str) -> None:
        try:
            opened = self.open_url(url)
            if asyncio.iscoroutine(opened):
                await opened
        except Exception as e:
            logger.warning(f"⚠️  Could not auto-open browser: {e}")
            logger.warning("   Please open the URL manually")

    async def ensure_valid_token(self) -> str:
        """Get an access token, refreshing it first if it expires soon.

        Returns:
            A valid access token

        Raises:
            UnauthenticatedError: If there is no usable session
            RefreshFailedError: If the refresh grant fails
            InvalidStateTransitionError: If a refresh is needed during a login flow
            SessionStorageError: If the session cannot be read or saved
        """
        record = self._load_usable()
        if not self.token_service.should_refresh(record):
            return record.access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            record = self._load_usable()
            if self.token_service.should_refresh(record):
                if self._state in IN_FLIGHT_STATES:
                    raise InvalidStateTransitionError(self._state.value, "refreshing")
                record = await self.token_service.refresh(record)
                self.storage.save(record)

        return record.access_token

    def _load_usable(self) -> SessionRecord:
        record = self.storage.load()
        if record is None or not record.is_usable():
            raise UnauthenticatedError()
        return record

    def has_valid_session(self) -> bool:
        """Check if a usable session exists. Expiry is not considered."""
        return self.storage.is_authenticated()

    def get_account_id(self) -> str | None:
        """Get the account ID of the stored session."""
        record = self.storage.load()
        return record.account_id if record else None

    def clear_session(self) -> None:
        """Log out by deleting the stored session."""
        self.storage.clear()
        if self._state is AuthState.AUTHENTICATED:
            self._transition(AuthState.UNAUTHENTICATED)
