"""MCP server exposing NetSuite tools behind OAuth 2.0 authentication.

Until a session exists only the ``netsuite_authenticate`` and
``netsuite_logout`` tools are listed. Once authenticated, the tools offered by
the NetSuite MCP REST API are listed and proxied.
"""

import json
import logging
from typing import Any

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from netsuite_mcp.core.config import Settings, resolve_credentials
from netsuite_mcp.oauth.manager import OAuthManager
from netsuite_mcp.tools.netsuite_tools import NetSuiteTools
from netsuite_mcp.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

SERVER_NAME = "netsuite-mcp"

AUTHENTICATE_TOOL = "netsuite_authenticate"
LOGOUT_TOOL = "netsuite_logout"

AUTHENTICATE_TOOL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "accountId": {
            "type": "string",
            "description": (
                "NetSuite Account ID (e.g., 1234567 or 1234567_SB1 for sandbox). "
                "Optional if NETSUITE_ACCOUNT_ID env var is set."
            ),
        },
        "clientId": {
            "type": "string",
            "description": (
                "OAuth 2.0 Client ID from NetSuite integration record. "
                "Optional if NETSUITE_CLIENT_ID env var is set."
            ),
        },
    },
    "required": [],
}

NOT_AUTHENTICATED_MESSAGE = """❌ Not authenticated. Please use the netsuite_authenticate tool first.

Example:
{
  "accountId": "1234567",
  "clientId": "your-client-id"
}"""

AUTH_SUCCESS_MESSAGE = (
    "✅ Successfully authenticated with NetSuite!\n\n"
    "You can now use NetSuite MCP tools. Try asking:\n"
    '- "List all saved searches"\n'
    '- "Run a SuiteQL query to get customer data"\n'
    '- "Show me available reports"'
)

LOGOUT_MESSAGE = """✅ Successfully logged out from NetSuite.

Use netsuite_authenticate to login again."""


def authenticate_tool() -> types.Tool:
    return types.Tool(
        name=AUTHENTICATE_TOOL,
        description=(
            "Authenticate with NetSuite to access MCP tools. Required before using any "
            "NetSuite tools. If NETSUITE_ACCOUNT_ID and NETSUITE_CLIENT_ID environment "
            "variables are set, they will be used automatically."
        ),
        inputSchema=AUTHENTICATE_TOOL_SCHEMA,
    )


def logout_tool() -> types.Tool:
    return types.Tool(
        name=LOGOUT_TOOL,
        description="Clear NetSuite authentication session and logout",
        inputSchema={"type": "object", "properties": {}},
    )


def remediation_checklist(port: int) -> str:
    """Steps to check after a failed authentication."""
    return (
        "Please check:\n"
        "1. Your NetSuite Account ID is correct\n"
        "2. Your OAuth Client ID is correct\n"
        "3. The integration record has PKCE enabled\n"
        f"4. The redirect URI is set to: http://localhost:{port}/callback\n"
        f"5. Port {port} is not in use by another application"
    )


def merge_tools(remote: list[dict[str, Any]], local: list[types.Tool]) -> list[types.Tool]:
    """Merge remote tool descriptors with local tools.

    Local tools replace remote tools of the same name. Remote order is kept
    and local tools are appended.
    """
    local_names = {tool.name for tool in local}
    merged = [
        types.Tool(
            name=tool["name"],
            description=tool.get("description"),
            inputSchema=tool.get("inputSchema") or {"type": "object", "properties": {}},
        )
        for tool in remote
        if tool.get("name") and tool["name"] not in local_names
    ]
    return merged + local


def text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


class NetSuiteMCPServer:
    """MCP server proxying NetSuite tools for an authenticated user."""

    def __init__(
        self,
        settings: Settings | None = None,
        oauth_manager: OAuthManager | None = None,
        tools: NetSuiteTools | None = None,
    ):
        """Initialize the server.

        Args:
            settings: Application settings (default: read the environment)
            oauth_manager: Authentication orchestrator (default: built from settings)
            tools: Remote tool client (default: built on oauth_manager)
        """
        self.settings = settings or Settings()
        self.oauth_manager = oauth_manager or OAuthManager(
            storage_path=self.settings.session_storage_path,
            callback_port=self.settings.oauth_callback_port,
            scope=self.settings.netsuite_oauth_scope,
        )
        self.tools = tools or NetSuiteTools(self.oauth_manager)
        self.app = Server(SERVER_NAME)

    async def handle_list_tools(self) -> list[types.Tool]:
        """List the tools available in the current authentication state."""
        try:
            if not self.oauth_manager.has_valid_session():
                logger.warning("⚠️  Not authenticated - returning authentication tool")
                return [authenticate_tool(), logout_tool()]

            logger.info("✅ Authenticated - fetching NetSuite tools")
            remote_tools = await self.tools.fetch_tools()
            return merge_tools(remote_tools, [logout_tool()])
        except Exception as e:
            logger.error(f"❌ Error in tools/list: {e}")
            return [authenticate_tool()]

    async def handle_call_tool(
        self, name: str, arguments: dict[str, Any] | None
    ) -> types.CallToolResult:
        """Run a local tool or forward the call to NetSuite."""
        arguments = arguments or {}

        try:
            if name == AUTHENTICATE_TOOL:
                return await self.authenticate(arguments)
            if name == LOGOUT_TOOL:
                return self.logout()

            if not self.oauth_manager.has_valid_session():
                return text_result(NOT_AUTHENTICATED_MESSAGE, is_error=True)

            logger.info(f"🔧 Executing NetSuite tool: {name}")
            result = await self.tools.execute_tool(name, arguments)
        except Exception as e:
            logger.error(f"❌ Tool execution error: {e}")
            return text_result(f"❌ Error: {e}", is_error=True)

        text = result if isinstance(result, str) else json.dumps(result, indent=2)
        return text_result(text)

    async def authenticate(self, arguments: dict[str, Any]) -> types.CallToolResult:
        """Handle the netsuite_authenticate tool."""
        try:
            account_id, client_id = resolve_credentials(
                arguments.get("accountId"), arguments.get("clientId"), self.settings
            )
        except ConfigurationError as e:
            return text_result(f"❌ {e}", is_error=True)

        if self.settings.netsuite_account_id or self.settings.netsuite_client_id:
            logger.info("✅ Using credentials from environment variables")

        try:
            await self.oauth_manager.start_auth_flow(account_id, client_id)
        except Exception as e:
            return text_result(
                f"❌ Authentication failed: {e}\n\n"
                f"{remediation_checklist(self.oauth_manager.callback_port)}",
                is_error=True,
            )

        self.tools.clear_cache()
        return text_result(AUTH_SUCCESS_MESSAGE)

    def logout(self) -> types.CallToolResult:
        """Handle the netsuite_logout tool."""
        try:
            self.oauth_manager.clear_session()
        except Exception as e:
            logger.error(f"❌ Logout error: {e}")
            return text_result(f"❌ Logout failed: {e}", is_error=True)

        self.tools.clear_cache()
        logger.info("✅ Logged out successfully")
        return text_result(LOGOUT_MESSAGE)

    def setup_handlers(self) -> None:
        """Set up MCP handlers for tool listing and calling."""

        @self.app.list_tools()
        async def list_tools() -> list[types.Tool]:
            return await self.handle_list_tools()

        @self.app.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
            return await self.handle_call_tool(name, arguments)

    async def run(self) -> None:
        """Run the MCP server over stdio."""
        logger.info("🚀 NetSuite MCP Server starting...")
        logger.info(f"🌐 Callback Port: {self.oauth_manager.callback_port}")
        logger.info(f"📁 Sessions Directory: {self.oauth_manager.storage.storage_path}")

        if self.oauth_manager.has_valid_session():
            logger.info("✅ Already authenticated with NetSuite")
            logger.info(f"📋 Account ID: {self.oauth_manager.get_account_id()}")
        else:
            logger.warning("⚠️  Not authenticated - authentication required")

        self.setup_handlers()

        async with stdio_server() as (read_stream, write_stream):
            logger.info("✅ NetSuite MCP Server ready")
            await self.app.run(
                read_stream,
                write_stream,
                self.app.create_initialization_options(),
            )
