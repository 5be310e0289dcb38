"""MCP server exposing NetSuite tools."""

from .server import NetSuiteMCPServer, merge_tools

__all__ = ["NetSuiteMCPServer", "merge_tools"]
