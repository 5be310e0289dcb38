"""Error types for the NetSuite MCP server."""


class NetSuiteMCPError(Exception):
    """Base exception for NetSuite MCP errors."""

    pass


# Configuration errors
class ConfigurationError(NetSuiteMCPError):
    """Raised when configuration is missing or invalid."""

    pass


class SessionStorageError(NetSuiteMCPError):
    """Raised when the session file cannot be written, read or decoded."""

    pass


# Authentication errors
class AuthError(NetSuiteMCPError):
    """Base exception for authentication failures."""

    pass


class PortInUseError(AuthError):
    """Raised when the OAuth callback server cannot bind its port."""

    def __init__(self, port: int):
        super().__init__(
            f"Port {port} is already in use. Close the application using it "
            "or set OAUTH_CALLBACK_PORT to a free port."
        )
        self.port = port


class CallbackServerError(AuthError):
    """Raised when the OAuth callback server fails to start for another reason."""

    def __init__(self, port: int, error: OSError):
        super().__init__(f"Could not start OAuth callback server on port {port}: {error}")
        self.port = port
        self.error = error


class CSRFError(AuthError):
    """Raised when the callback state does not match the one we generated."""

    def __init__(self, message: str = "Invalid state parameter (CSRF validation failed)"):
        super().__init__(message)


class ProviderError(AuthError):
    """Raised when NetSuite reports an OAuth error or rejects a token request."""

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        status_code: int | None = None,
    ):
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        message = f"{error}: {error_description}" if error_description else error
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)


class AuthTimeoutError(AuthError, TimeoutError):
    """Raised when no OAuth callback arrives before the listener times out."""

    def __init__(self, timeout: float):
        minutes = timeout / 60
        super().__init__(f"Authentication timeout ({minutes:g} minutes)")
        self.timeout = timeout


class UnauthenticatedError(AuthError):
    """Raised when a token is required but no usable session exists."""

    def __init__(self, message: str = "Not authenticated. Use netsuite_authenticate first."):
        super().__init__(message)


class AuthenticationExpiredError(UnauthenticatedError):
    """Raised when NetSuite rejects the access token with HTTP 401."""

    def __init__(self):
        super().__init__("NetSuite authentication failed. Please re-authenticate.")


class RefreshFailedError(AuthError):
    """Raised when the refresh grant is rejected. The user must log in again."""

    pass


class AuthFlowInProgressError(AuthError):
    """Raised when an authorization flow is started while another is running."""

    def __init__(self):
        super().__init__("An authentication flow is already in progress")


class AuthFlowCancelledError(AuthError):
    """Raised when a pending callback listener is stopped before completing."""

    pass


class InvalidStateTransitionError(AuthError):
    """Raised when the auth orchestrator is asked to make an illegal transition."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target


# Remote tool errors
class ToolExecutionError(NetSuiteMCPError):
    """Raised when a remote NetSuite tool call fails."""

    pass
