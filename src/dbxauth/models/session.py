"""Authorization session models for the code flow with PKCE.

Contains the scope request supplied by callers and the per-attempt
session data that lives from ``authorize`` until the redirect is handled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from dbxauth.constants import (
    CODE_CHALLENGE_KEY,
    CODE_CHALLENGE_METHOD_KEY,
    INCLUDE_GRANTED_SCOPES_KEY,
    RESPONSE_TYPE_KEY,
    SCOPE_KEY,
    STATE_KEY,
    TOKEN_ACCESS_TYPE_KEY,
)
from dbxauth.primitives.pkce import (
    CODE_CHALLENGE_METHOD,
    generate_code_challenge,
    generate_code_verifier,
)

STATE_PREFIX = "oauth2code"


class ScopeType(str, Enum):
    """Type of the requested scopes."""

    TEAM = "team"
    USER = "user"


@dataclass(frozen=True)
class ScopeRequest:
    """Requested API scopes for a code flow authorization.

    When ``include_granted_scopes`` is set the server returns a token with
    every scope the user previously granted plus the new ones.
    """

    scope_type: ScopeType
    scopes: list[str] = field(default_factory=list)
    include_granted_scopes: bool = False

    @property
    def scope_string(self) -> str | None:
        if not self.scopes:
            return None
        return " ".join(self.scopes)


@dataclass(frozen=True)
class PkceData:
    """PKCE parameters for one authorization attempt. Never persisted."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = CODE_CHALLENGE_METHOD

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if self.code_challenge_method != CODE_CHALLENGE_METHOD:
            raise ValueError("Only S256 code challenge method is supported")

    @classmethod
    def generate(cls) -> PkceData:
        """Create fresh PKCE data with a new random verifier."""
        code_verifier = generate_code_verifier()
        return cls(
            code_verifier=code_verifier,
            code_challenge=generate_code_challenge(code_verifier),
        )


@dataclass(frozen=True)
class AuthSession:
    """All the data of one OAuth 2 Authorization Code Flow with PKCE."""

    scope_request: ScopeRequest | None
    pkce_data: PkceData
    state: str
    token_access_type: str = "offline"
    response_type: str = "code"

    @classmethod
    def create(cls, scope_request: ScopeRequest | None = None) -> AuthSession:
        pkce_data = PkceData.generate()
        return cls(
            scope_request=scope_request,
            pkce_data=pkce_data,
            state=build_session_state(pkce_data, scope_request, "offline"),
        )

    def code_flow_params(self) -> list[tuple[str, str]]:
        """Query parameters the code flow adds to an authorization request."""
        params: list[tuple[str, str]] = []
        if self.scope_request is not None:
            if self.scope_request.scope_string:
                params.append((SCOPE_KEY, self.scope_request.scope_string))
            if self.scope_request.include_granted_scopes:
                params.append(
                    (INCLUDE_GRANTED_SCOPES_KEY, self.scope_request.scope_type.value)
                )

        params.extend(
            [
                (CODE_CHALLENGE_KEY, self.pkce_data.code_challenge),
                (CODE_CHALLENGE_METHOD_KEY, self.pkce_data.code_challenge_method),
                (TOKEN_ACCESS_TYPE_KEY, self.token_access_type),
                (RESPONSE_TYPE_KEY, self.response_type),
                (STATE_KEY, self.state),
            ]
        )
        return params


def build_session_state(
    pkce_data: PkceData,
    scope_request: ScopeRequest | None,
    token_access_type: str,
) -> str:
    """Build the composite CSRF state binding the challenge and scopes."""
    state = (
        f"{STATE_PREFIX}:{pkce_data.code_challenge}:"
        f"{pkce_data.code_challenge_method}:{token_access_type}"
    )
    if scope_request is not None:
        if scope_request.scope_string:
            state += f":{scope_request.scope_string}"
        if scope_request.include_granted_scopes:
            state += f":{scope_request.scope_type.value}"
    return state
