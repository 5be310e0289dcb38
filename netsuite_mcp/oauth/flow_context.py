"""Per-attempt authorization flow context."""

import secrets
from dataclasses import dataclass, field

from .pkce import PKCEPair, generate_pkce_pair


def generate_state() -> str:
    """Generate an opaque CSRF state value."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class FlowContext:
    """Everything one authorization attempt needs.

    Only ``state`` is shared with the callback server. The PKCE verifier never
    leaves the process and is discarded with the context.
    """

    account_id: str
    client_id: str
    redirect_uri: str
    state: str = field(default_factory=generate_state)
    pkce: PKCEPair = field(default_factory=generate_pkce_pair, repr=False)
