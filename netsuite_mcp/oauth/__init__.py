"""NetSuite OAuth 2.0 authentication.

This package provides:
- PKCE verifier/challenge generation
- Session persistence
- A local callback server for the authorization redirect
- Token exchange and refresh
- The OAuthManager orchestrating the flow
"""

from .callback_server import CallbackServer, ListenerState
from .flow_context import FlowContext
from .manager import AuthState, OAuthManager
from .pkce import PKCEPair, generate_pkce_pair
from .session_store import SessionRecord, SessionStore
from .token_exchange import TokenService

__all__ = [
    # Orchestrator
    "OAuthManager",
    "AuthState",
    "FlowContext",
    # Callback listener
    "CallbackServer",
    "ListenerState",
    # PKCE
    "PKCEPair",
    "generate_pkce_pair",
    # Sessions and tokens
    "SessionRecord",
    "SessionStore",
    "TokenService",
]
