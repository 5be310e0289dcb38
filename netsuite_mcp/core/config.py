"""Configuration management for the NetSuite MCP server."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from netsuite_mcp.utils.errors import ConfigurationError

DEFAULT_CALLBACK_PORT = 8080

MISSING_CREDENTIALS_MESSAGE = """Missing required credentials: {missing}

Please provide credentials in one of two ways:

1. Via arguments:
   {{
     "accountId": "your-account-id",
     "clientId": "your-client-id"
   }}

2. Via environment variables:
   NETSUITE_ACCOUNT_ID
   NETSUITE_CLIENT_ID"""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # NetSuite integration record
    netsuite_account_id: str | None = Field(
        default=None, description="NetSuite account ID (e.g. 1234567 or 1234567_SB1)"
    )
    netsuite_client_id: str | None = Field(
        default=None, description="OAuth 2.0 client ID from the NetSuite integration record"
    )
    netsuite_oauth_scope: str = Field(default="mcp", description="OAuth scope to request")

    # OAuth callback listener
    oauth_callback_port: int = Field(
        default=DEFAULT_CALLBACK_PORT,
        ge=1,
        le=65535,
        description="Local port for the OAuth redirect (http://localhost:{port}/callback)",
    )

    # Session storage
    session_storage_path: Path = Field(
        default=Path.home() / ".netsuite-mcp" / "sessions",
        description="Directory holding session.json",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Path | None = Field(default=None, description="Optional log file")


def resolve_credentials(
    account_id: str | None = None,
    client_id: str | None = None,
    settings: Settings | None = None,
) -> tuple[str, str]:
    """Resolve the account and client IDs.

    Explicit arguments take precedence over the environment.

    Args:
        account_id: Account ID passed by the caller
        client_id: Client ID passed by the caller
        settings: Settings to fall back to (default: read the environment now)

    Returns:
        Tuple of (account_id, client_id)

    Raises:
        ConfigurationError: If either value cannot be resolved
    """
    if settings is None:
        settings = Settings()

    account_id = (account_id or settings.netsuite_account_id or "").strip()
    client_id = (client_id or settings.netsuite_client_id or "").strip()

    missing = []
    if not account_id:
        missing.append("account ID")
    if not client_id:
        missing.append("client ID")
    if missing:
        raise ConfigurationError(MISSING_CREDENTIALS_MESSAGE.format(missing=", ".join(missing)))

    return account_id, client_id
