"""Error codes and exception hierarchy for the authorization flow.

OAuth 2.0 error codes (RFC 6749 Section 4.2.2.1) are delivered to callers
inside results and are never raised. The exceptions below cover failures of
the collaborators the manager talks to.
"""

from __future__ import annotations

from enum import Enum


class OAuth2Error(str, Enum):
    """A failed authorization, as reported by the server or the manager."""

    UNAUTHORIZED_CLIENT = "unauthorized_client"
    ACCESS_DENIED = "access_denied"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    INVALID_SCOPE = "invalid_scope"
    SERVER_ERROR = "server_error"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"

    # State received from the server does not match the stored state
    INCONSISTENT_STATE = "inconsistent_state"

    # Anything outside the OAuth2 specification
    UNKNOWN = "unknown"

    @classmethod
    def from_code(cls, error_code: str | None) -> OAuth2Error:
        """Map a raw server error code, falling back to UNKNOWN."""
        try:
            return cls(error_code)
        except ValueError:
            return cls.UNKNOWN


class DropboxAuthError(Exception):
    """Base exception for all dbxauth errors."""

    pass


class ConfigurationError(DropboxAuthError):
    """Raised when the client configuration is missing or invalid."""

    pass


class TokenExchangeError(DropboxAuthError):
    """Raised when authorization code to token exchange fails.

    Carries the OAuth error code and description so the manager can turn
    the failure into a result.
    """

    def __init__(self, error_code: str, description: str):
        super().__init__(f"{error_code}: {description}")
        self.error_code = error_code
        self.description = description


class StorageError(DropboxAuthError):
    """Raised when a storage backend cannot be read or written."""

    pass
