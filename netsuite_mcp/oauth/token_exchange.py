"""NetSuite OAuth token exchange and refresh.

NetSuite integration records set up as public clients require every
parameter in the form body and reject requests that carry a client secret
or an ``Authorization`` header.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from pydantic import ValidationError

from netsuite_mcp.utils.errors import ProviderError, RefreshFailedError

from .endpoints import token_endpoint
from .flow_context import FlowContext
from .session_store import SessionRecord

logger = logging.getLogger(__name__)

# Refresh when the access token expires within this window
REFRESH_MARGIN = timedelta(minutes=5)

# Used when the provider omits expires_in
DEFAULT_EXPIRES_IN = 3600

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def parse_oauth_error(response: httpx.Response) -> tuple[str, str | None]:
    """Parse an OAuth error response (RFC 6749 Section 5.2).

    Args:
        response: HTTP response from the token endpoint

    Returns:
        Tuple of (error, error_description). Falls back to the raw body when
        the response is not a JSON error object.
    """
    try:
        error_data = response.json()
        return error_data.get("error", "unknown_error"), error_data.get("error_description")
    except (ValueError, AttributeError):
        return "http_error", response.text or None


class TokenService:
    """Exchanges authorization codes and refreshes access tokens."""

    def __init__(
        self,
        timeout: float = 30.0,
        token_url: Callable[[str], str] = token_endpoint,
    ):
        """Initialize token service.

        Args:
            timeout: HTTP timeout in seconds for token requests
            token_url: Maps an account ID to its token endpoint
        """
        self.timeout = timeout
        self.token_url = token_url

    async def exchange_code(self, code: str, context: FlowContext) -> SessionRecord:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the OAuth callback
            context: Flow context holding the PKCE verifier and redirect URI

        Returns:
            Authenticated SessionRecord

        Raises:
            ProviderError: If the token endpoint fails or returns an error
        """
        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": context.redirect_uri,
            "client_id": context.client_id,
            "code_verifier": context.pkce.verifier,
        }

        logger.info("🔄 Exchanging authorization code for tokens...")
        try:
            token_response = await self._post(self.token_url(context.account_id), token_data)
            record = self._build_record(
                {
                    "access_token": token_response["access_token"],
                    "refresh_token": token_response.get("refresh_token"),
                    "expires_at": self._expires_at(token_response),
                    "account_id": context.account_id,
                    "client_id": context.client_id,
                    "authenticated": True,
                }
            )
        except ProviderError as e:
            logger.error(f"❌ Token exchange error: {e}")
            raise

        logger.info("✅ Tokens obtained successfully")
        return record

    async def refresh(self, record: SessionRecord) -> SessionRecord:
        """Refresh the access token of a session.

        The old refresh token is kept when NetSuite does not issue a new one.

        Args:
            record: Current session record

        Returns:
            Updated SessionRecord

        Raises:
            RefreshFailedError: If there is no refresh token or the grant fails
        """
        if not record.refresh_token:
            raise RefreshFailedError(
                "No refresh token available. Please re-authenticate with netsuite_authenticate."
            )

        refresh_data = {
            "grant_type": "refresh_token",
            "refresh_token": record.refresh_token,
            "client_id": record.client_id,
        }

        logger.info("🔄 Refreshing access token...")
        try:
            token_response = await self._post(self.token_url(record.account_id), refresh_data)
            refreshed = self._build_record(
                {
                    **record.model_dump(),
                    "access_token": token_response["access_token"],
                    "refresh_token": token_response.get("refresh_token") or record.refresh_token,
                    "expires_at": self._expires_at(token_response),
                    "authenticated": True,
                }
            )
        except ProviderError as e:
            logger.error(f"❌ Token refresh failed: {e}")
            raise RefreshFailedError(
                f"Failed to refresh access token ({e}). Please re-authenticate."
            ) from e

        logger.info("✅ Token refreshed successfully")
        return refreshed

    @staticmethod
    def should_refresh(record: SessionRecord, now: datetime | None = None) -> bool:
        """Check if the access token expires in less than five minutes.

        Exactly five minutes left does not trigger a refresh. A record without
        an expiry is always refreshed.
        """
        if record.expires_at is None:
            return True
        now = now or datetime.now(UTC)
        return record.expires_at - now < REFRESH_MARGIN

    async def _post(self, url: str, data: dict[str, str]) -> dict[str, Any]:
        """POST a form-encoded token request and validate the response.

        Raises:
            ProviderError: On network failure, non-2xx status, error payload,
                or a malformed token response
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(url, data=data, headers=FORM_HEADERS)
                response.raise_for_status()
                token_response = response.json()
            except httpx.HTTPStatusError as e:
                error, description = parse_oauth_error(e.response)
                raise ProviderError(error, description, status_code=e.response.status_code) from e
            except httpx.HTTPError as e:
                raise ProviderError("request_failed", str(e)) from e
            except ValueError as e:
                raise ProviderError("invalid_response", "Token endpoint did not return JSON") from e

        if not isinstance(token_response, dict):
            raise ProviderError("invalid_response", "Token endpoint did not return a JSON object")
        if "error" in token_response:
            raise ProviderError(token_response["error"], token_response.get("error_description"))
        access_token = token_response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderError("invalid_response", "Token response missing 'access_token' field")

        refresh_token = token_response.get("refresh_token")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ProviderError("invalid_response", "Token response has an invalid 'refresh_token'")

        expires_in = token_response.get("expires_in")
        if expires_in is not None:
            try:
                seconds = int(expires_in)
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    "invalid_response", f"Token response has an invalid 'expires_in': {expires_in!r}"
                ) from e
            if seconds < 0:
                raise ProviderError(
                    "invalid_response", f"Token response has a negative 'expires_in': {seconds}"
                )
            token_response["expires_in"] = seconds

        return token_response

    @staticmethod
    def _build_record(data: dict[str, Any]) -> SessionRecord:
        try:
            return SessionRecord.model_validate(data)
        except ValidationError as e:
            raise ProviderError("invalid_response", f"Unusable token response: {e}") from e

    @staticmethod
    def _expires_at(token_response: dict[str, Any]) -> datetime:
        expires_in = token_response.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        return datetime.now(UTC) + timedelta(seconds=expires_in)
