"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 code verifier and S256 code challenge generation,
which bind an authorization code to a secret held by this client.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

CODE_VERIFIER_LENGTH = 128
CODE_CHALLENGE_METHOD = "S256"

_ALPHANUMERICS = string.ascii_letters + string.digits


def generate_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1 allows 43-128 unreserved characters. Only
    alphanumerics are used so the verifier never needs escaping.

    Args:
        length: Number of characters to generate

    Returns:
        Random alphanumeric string of the requested length
    """
    return "".join(secrets.choice(_ALPHANUMERICS) for _ in range(length))


def generate_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a code verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    with the trailing padding removed.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()

    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
