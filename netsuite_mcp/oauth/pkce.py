"""PKCE (Proof Key for Code Exchange) utilities.

NetSuite integration records configured as public clients authenticate the
token request with a PKCE verifier instead of a client secret (RFC 7636).
"""

import hashlib
import secrets
from base64 import urlsafe_b64encode
from dataclasses import dataclass

CODE_CHALLENGE_METHOD = "S256"


def base64url_encode(data: bytes) -> str:
    """Base64URL-encode bytes without padding."""
    return urlsafe_b64encode(data).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class PKCEPair:
    """A code verifier and its S256 challenge, valid for one flow attempt."""

    verifier: str
    challenge: str
    method: str = CODE_CHALLENGE_METHOD


def generate_pkce_pair() -> PKCEPair:
    """Generate PKCE code verifier and challenge.

    Returns:
        PKCEPair with a 43-character verifier and its SHA256 challenge
    """
    # 32 random bytes encode to 43 characters
    code_verifier = base64url_encode(secrets.token_bytes(32))

    # The challenge hashes the ASCII verifier string, not the raw bytes
    code_challenge = base64url_encode(hashlib.sha256(code_verifier.encode("ascii")).digest())

    return PKCEPair(verifier=code_verifier, challenge=code_challenge)
