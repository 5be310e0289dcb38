"""NetSuite OAuth and MCP endpoint URLs."""

from urllib.parse import urlencode

from .pkce import PKCEPair

CALLBACK_PATH = "/callback"


def account_host(account_id: str) -> str:
    """Convert an account ID to its host name label.

    Sandbox accounts are written ``1234567_SB1`` but served from
    ``1234567-sb1.<domain>``.
    """
    return account_id.strip().lower().replace("_", "-")


def authorization_endpoint(account_id: str) -> str:
    """Get the browser-facing authorization endpoint for an account."""
    return f"https://{account_host(account_id)}.app.netsuite.com/app/login/oauth2/authorize.nl"


def token_endpoint(account_id: str) -> str:
    """Get the token endpoint for an account."""
    return (
        f"https://{account_host(account_id)}.suitetalk.api.netsuite.com"
        "/services/rest/auth/oauth2/v1/token"
    )


def mcp_endpoint(account_id: str) -> str:
    """Get the NetSuite MCP JSON-RPC endpoint for an account."""
    return f"https://{account_host(account_id)}.suitetalk.api.netsuite.com/services/mcp/v1/all"


def redirect_uri_for_port(port: int) -> str:
    """Get the local redirect URI registered on the integration record."""
    return f"http://localhost:{port}{CALLBACK_PATH}"


def build_authorization_url(
    account_id: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    pkce: PKCEPair,
    scope: str,
) -> str:
    """Build the authorization URL the user opens in a browser."""
    auth_params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": pkce.challenge,
        "code_challenge_method": pkce.method,
    }
    return f"{authorization_endpoint(account_id)}?{urlencode(auth_params)}"
