"""Shared utilities: errors, logging and browser launching."""

from .browser import open_browser
from .errors import (
    AuthenticationExpiredError,
    AuthError,
    AuthFlowCancelledError,
    AuthFlowInProgressError,
    AuthTimeoutError,
    CallbackServerError,
    ConfigurationError,
    CSRFError,
    InvalidStateTransitionError,
    NetSuiteMCPError,
    PortInUseError,
    ProviderError,
    RefreshFailedError,
    SessionStorageError,
    ToolExecutionError,
    UnauthenticatedError,
)
from .logging_config import setup_logging

__all__ = [
    "open_browser",
    "setup_logging",
    # Errors
    "NetSuiteMCPError",
    "ConfigurationError",
    "SessionStorageError",
    "AuthError",
    "PortInUseError",
    "CallbackServerError",
    "CSRFError",
    "ProviderError",
    "AuthTimeoutError",
    "UnauthenticatedError",
    "AuthenticationExpiredError",
    "RefreshFailedError",
    "AuthFlowInProgressError",
    "AuthFlowCancelledError",
    "InvalidStateTransitionError",
    "ToolExecutionError",
]
