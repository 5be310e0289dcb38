"""NetSuite MCP server with OAuth 2.0 Authorization Code + PKCE authentication."""

from .core.config import Settings
from .oauth import OAuthManager
from .server import NetSuiteMCPServer
from .tools import NetSuiteTools

__version__ = "1.0.0"

__all__ = ["NetSuiteMCPServer", "NetSuiteTools", "OAuthManager", "Settings", "__version__"]
