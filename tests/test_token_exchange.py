"""Tests for token exchange and refresh."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from netsuite_mcp.oauth.flow_context import FlowContext
from netsuite_mcp.oauth.session_store import SessionRecord
from netsuite_mcp.oauth.token_exchange import TokenService, parse_oauth_error
from netsuite_mcp.utils.errors import ProviderError, RefreshFailedError

TOKEN_URL = "https://1234567-sb1.suitetalk.api.netsuite.com/services/rest/auth/oauth2/v1/token"


def token_response(status_code: int, payload=None, text: str | None = None) -> httpx.Response:
    request = httpx.Request("POST", TOKEN_URL)
    if payload is not None:
        return httpx.Response(status_code, json=payload, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


@pytest.fixture
def flow_context() -> FlowContext:
    """Create a flow context for a sandbox account."""
    return FlowContext(
        account_id="1234567_SB1",
        client_id="test-client-id-abcdef",
        redirect_uri="http://localhost:8080/callback",
    )


class TestParseOAuthError:
    """Tests for OAuth error parsing."""

    def test_parses_json_error(self):
        """Test parsing an RFC 6749 error body."""
        response = token_response(
            400, {"error": "invalid_grant", "error_description": "Code expired"}
        )
        assert parse_oauth_error(response) == ("invalid_grant", "Code expired")

    def test_falls_back_to_raw_body(self):
        """Test that a non-JSON body is returned as the description."""
        response = token_response(502, text="Bad Gateway")
        assert parse_oauth_error(response) == ("http_error", "Bad Gateway")


class TestExchangeCode:
    """Tests for the authorization code grant."""

    @pytest.mark.asyncio
    async def test_exchange_code_success(self, flow_context: FlowContext):
        """Test that a successful exchange returns an authenticated record."""
        service = TokenService()
        response = token_response(
            200,
            {
                "access_token": "new_access_token",
                "refresh_token": "new_refresh_token",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
        )

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = response
            record = await service.exchange_code("auth_code_123", flow_context)

        assert record.authenticated is True
        assert record.access_token == "new_access_token"
        assert record.refresh_token == "new_refresh_token"
        assert record.account_id == "1234567_SB1"
        assert record.client_id == "test-client-id-abcdef"
        remaining = record.time_until_expiry()
        assert remaining is not None
        assert 3500 < remaining.total_seconds() <= 3600

    @pytest.mark.asyncio
    async def test_exchange_code_sends_pkce_form_without_secret(self, flow_context: FlowContext):
        """Test that the request is a public-client form post."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"access_token": "token"})
            await service.exchange_code("auth_code_123", flow_context)

        args, kwargs = mock_post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"] == {
            "grant_type": "authorization_code",
            "code": "auth_code_123",
            "redirect_uri": "http://localhost:8080/callback",
            "client_id": "test-client-id-abcdef",
            "code_verifier": flow_context.pkce.verifier,
        }
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert "Authorization" not in kwargs["headers"]
        assert "client_secret" not in kwargs["data"]

    @pytest.mark.asyncio
    async def test_exchange_code_defaults_expiry(self, flow_context: FlowContext):
        """Test that a missing expires_in defaults to one hour."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"access_token": "token"})
            record = await service.exchange_code("code", flow_context)

        remaining = record.time_until_expiry()
        assert remaining is not None
        assert 3500 < remaining.total_seconds() <= 3600
        assert record.refresh_token is None

    @pytest.mark.asyncio
    async def test_exchange_code_provider_error(self, flow_context: FlowContext):
        """Test that a 400 error body becomes a ProviderError."""
        service = TokenService()
        response = token_response(
            400, {"error": "invalid_grant", "error_description": "Code already used"}
        )

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = response
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.error_description == "Code already used"
        assert exc_info.value.status_code == 400
        assert "invalid_grant: Code already used" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_exchange_code_error_payload_with_200(self, flow_context: FlowContext):
        """Test that an error member in a 200 response is still an error."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"error": "invalid_client"})
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "invalid_client"

    @pytest.mark.asyncio
    async def test_exchange_code_missing_access_token(self, flow_context: FlowContext):
        """Test that a response without an access token is rejected."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"token_type": "Bearer"})
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "invalid_response"

    @pytest.mark.asyncio
    async def test_exchange_code_non_string_access_token(self, flow_context: FlowContext):
        """Test that a numeric access token is rejected."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                200, {"access_token": 12345, "expires_in": 3600}
            )
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "invalid_response"

    @pytest.mark.asyncio
    async def test_exchange_code_invalid_expires_in(self, flow_context: FlowContext):
        """Test that a non-numeric expires_in is a ProviderError."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                200, {"access_token": "token", "expires_in": "soon"}
            )
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "invalid_response"
        assert "soon" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_exchange_code_zero_expires_in(self, flow_context: FlowContext):
        """Test that expires_in of zero means already expired, not the default."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"access_token": "token", "expires_in": 0})
            record = await service.exchange_code("code", flow_context)

        remaining = record.time_until_expiry()
        assert remaining is not None
        assert remaining.total_seconds() <= 0
        assert service.should_refresh(record) is True

    @pytest.mark.asyncio
    async def test_exchange_code_network_error(self, flow_context: FlowContext):
        """Test that a transport failure becomes a ProviderError."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ConnectError("Connection refused")
            with pytest.raises(ProviderError) as exc_info:
                await service.exchange_code("code", flow_context)

        assert exc_info.value.error == "request_failed"


class TestRefresh:
    """Tests for the refresh token grant."""

    @pytest.mark.asyncio
    async def test_refresh_success(self, expiring_record: SessionRecord):
        """Test that refresh replaces the access token and expiry."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                200,
                {
                    "access_token": "refreshed_token",
                    "refresh_token": "rotated_refresh_token",
                    "expires_in": 3600,
                },
            )
            record = await service.refresh(expiring_record)

        assert record.access_token == "refreshed_token"
        assert record.refresh_token == "rotated_refresh_token"
        assert record.account_id == expiring_record.account_id
        assert service.should_refresh(record) is False

        kwargs = mock_post.call_args.kwargs
        assert kwargs["data"] == {
            "grant_type": "refresh_token",
            "refresh_token": "test_refresh_token_67890",
            "client_id": "test-client-id-abcdef",
        }

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(
        self, expiring_record: SessionRecord
    ):
        """Test that the old refresh token is kept if none is returned."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(200, {"access_token": "refreshed_token"})
            record = await service.refresh(expiring_record)

        assert record.refresh_token == "test_refresh_token_67890"

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self, expiring_record: SessionRecord):
        """Test that a record without a refresh token cannot be refreshed."""
        service = TokenService()
        record = expiring_record.model_copy(update={"refresh_token": None})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(RefreshFailedError):
                await service.refresh(record)

        mock_post.assert_not_called()

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, expiring_record: SessionRecord):
        """Test that a rejected refresh grant raises RefreshFailedError."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                400, {"error": "invalid_grant", "error_description": "Refresh token revoked"}
            )
            with pytest.raises(RefreshFailedError) as exc_info:
                await service.refresh(expiring_record)

        assert isinstance(exc_info.value.__cause__, ProviderError)

    @pytest.mark.asyncio
    async def test_refresh_invalid_expires_in(self, expiring_record: SessionRecord):
        """Test that a malformed expires_in fails the refresh cleanly."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                200, {"access_token": "AT", "expires_in": "soon"}
            )
            with pytest.raises(RefreshFailedError) as exc_info:
                await service.refresh(expiring_record)

        assert isinstance(exc_info.value.__cause__, ProviderError)

    @pytest.mark.asyncio
    async def test_refresh_non_string_access_token(self, expiring_record: SessionRecord):
        """Test that a refreshed record is validated before it is returned."""
        service = TokenService()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = token_response(
                200, {"access_token": 12345, "expires_in": 3600}
            )
            with pytest.raises(RefreshFailedError):
                await service.refresh(expiring_record)

        assert expiring_record.access_token == "old_access_token"


class TestShouldRefresh:
    """Tests for the refresh window."""

    NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)

    def _record(self, expires_at: datetime | None) -> SessionRecord:
        return SessionRecord(
            access_token="token",
            expires_at=expires_at,
            account_id="1234567",
            client_id="client",
        )

    def test_well_before_expiry(self):
        """Test that a token with an hour left is not refreshed."""
        record = self._record(self.NOW + timedelta(hours=1))
        assert TokenService.should_refresh(record, now=self.NOW) is False

    def test_exactly_five_minutes_left(self):
        """Test that exactly five minutes left does not trigger a refresh."""
        record = self._record(self.NOW + timedelta(minutes=5))
        assert TokenService.should_refresh(record, now=self.NOW) is False

    def test_just_under_five_minutes_left(self):
        """Test that anything under five minutes triggers a refresh."""
        record = self._record(self.NOW + timedelta(minutes=5) - timedelta(seconds=1))
        assert TokenService.should_refresh(record, now=self.NOW) is True

    def test_already_expired(self):
        """Test that an expired token is refreshed."""
        record = self._record(self.NOW - timedelta(minutes=1))
        assert TokenService.should_refresh(record, now=self.NOW) is True

    def test_missing_expiry(self):
        """Test that a record without an expiry is refreshed."""
        assert TokenService.should_refresh(self._record(None), now=self.NOW) is True
