"""Remote NetSuite MCP tools."""

from .capability_cache import CacheEntry, CapabilityCache
from .netsuite_tools import NetSuiteTools, generate_request_id

__all__ = ["CacheEntry", "CapabilityCache", "NetSuiteTools", "generate_request_id"]
