"""Client for the NetSuite MCP REST API.

NetSuite exposes its tools over JSON-RPC 2.0 at a per-account endpoint. Every
request carries a bearer token obtained from ``OAuthManager.ensure_valid_token``;
token refresh is never attempted here.
"""

import logging
import secrets
import time
from typing import Any

import httpx

from netsuite_mcp.oauth.endpoints import mcp_endpoint
from netsuite_mcp.oauth.manager import OAuthManager
from netsuite_mcp.utils.errors import (
    AuthenticationExpiredError,
    ToolExecutionError,
    UnauthenticatedError,
)

from .capability_cache import CapabilityCache

logger = logging.getLogger(__name__)

LIST_TIMEOUT_SECONDS = 30.0
CALL_TIMEOUT_SECONDS = 60.0


def generate_request_id() -> str:
    """Generate a unique JSON-RPC request ID."""
    return f"mcp-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


class NetSuiteTools:
    """Lists and executes NetSuite MCP tools on behalf of the signed-in user."""

    def __init__(
        self,
        oauth_manager: OAuthManager,
        cache: CapabilityCache | None = None,
        list_timeout: float = LIST_TIMEOUT_SECONDS,
        call_timeout: float = CALL_TIMEOUT_SECONDS,
    ):
        """Initialize tools client.

        Args:
            oauth_manager: Source of access tokens and the account ID
            cache: Tool list cache (default: 5 minute TTL)
            list_timeout: HTTP timeout for tools/list
            call_timeout: HTTP timeout for tools/call
        """
        self.oauth_manager = oauth_manager
        self.cache = cache or CapabilityCache()
        self.list_timeout = list_timeout
        self.call_timeout = call_timeout

    def _endpoint(self) -> str:
        account_id = self.oauth_manager.get_account_id()
        if not account_id:
            raise UnauthenticatedError("Account ID not found. Please authenticate first.")
        return mcp_endpoint(account_id)

    async def _rpc(self, method: str, params: dict[str, Any], timeout: float) -> Any:
        """Send a JSON-RPC request and return its result.

        Raises:
            AuthenticationExpiredError: On HTTP 401
            ToolExecutionError: On any other HTTP failure or a JSON-RPC error
        """
        access_token = await self.oauth_manager.ensure_valid_token()
        endpoint = self._endpoint()

        payload = {
            "jsonrpc": "2.0",
            "id": generate_request_id(),
            "method": method,
            "params": params,
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=timeout) as client:
            try:
                response = await client.post(endpoint, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 401:
                    logger.error("❌ Authentication failed - token may be expired")
                    self.cache.invalidate()
                    raise AuthenticationExpiredError() from e
                logger.error(f"❌ NetSuite returned HTTP {e.response.status_code}: {e.response.text}")
                raise ToolExecutionError(f"{method} failed: HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise ToolExecutionError(f"{method} failed: {e}") from e
            except ValueError as e:
                raise ToolExecutionError(f"{method} failed: invalid JSON response") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ToolExecutionError(message or f"{method} failed")

        return data.get("result") if isinstance(data, dict) else None

    async def fetch_tools(self) -> list[dict[str, Any]]:
        """Fetch available tools, serving the cache while it is fresh.

        Returns:
            Tool descriptors in MCP format (name, description, inputSchema)
        """
        cached = self.cache.get()
        if cached is not None:
            logger.debug(f"📦 Using cached tools ({round(self.cache.age() or 0)}s old)")
            return cached

        logger.info("🔍 Fetching available tools from NetSuite...")
        result = await self._rpc("tools/list", {}, timeout=self.list_timeout)

        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            logger.warning("NetSuite returned no tool list")
            return []

        self.cache.store(tools)
        logger.info(f"✅ Fetched {len(tools)} tools from NetSuite")
        return tools

    async def execute_tool(self, tool_name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Execute a NetSuite tool.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments

        Returns:
            The JSON-RPC result
        """
        logger.info(f"🔧 Executing tool: {tool_name}")
        result = await self._rpc(
            "tools/call",
            {"name": tool_name, "arguments": arguments or {}},
            timeout=self.call_timeout,
        )
        logger.info("✅ Tool executed successfully")
        return result

    async def get_tool(self, tool_name: str) -> dict[str, Any] | None:
        """Find a tool descriptor by name."""
        tools = await self.fetch_tools()
        return next((tool for tool in tools if tool.get("name") == tool_name), None)

    @staticmethod
    def validate_parameters(tool: dict[str, Any] | None, arguments: dict[str, Any]) -> None:
        """Check that every required parameter of the tool is present.

        Raises:
            ToolExecutionError: If a required parameter is missing
        """
        if not tool or not tool.get("inputSchema"):
            return

        for param in tool["inputSchema"].get("required", []):
            if param not in arguments:
                raise ToolExecutionError(f"Missing required parameter: {param}")

    def clear_cache(self) -> None:
        """Clear the tool cache (after login or logout)."""
        self.cache.invalidate()
        logger.debug("🗑️  Tools cache cleared")

    def get_cache_status(self) -> dict[str, Any]:
        """Get cache status."""
        return self.cache.status()
