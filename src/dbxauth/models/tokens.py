"""Credential and token exchange models.

Contains the durable access token record kept in secure storage, plus the
request and response shapes of the authorization code exchange.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class AccessToken(BaseModel):
    """An access token for one user, stored under its ``uid``.

    Serialized with camelCase keys so records written by earlier SDK
    versions decode unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="accessToken")
    uid: str

    # Only present for short-lived tokens
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    token_expiration_timestamp: float | None = Field(
        default=None, alias="tokenExpirationTimestamp"
    )

    def __str__(self) -> str:
        return self.access_token

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


@dataclass(frozen=True)
class TokenExchangeRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636) that proves this client
    started the flow.
    """

    code: str
    code_verifier: str
    app_key: str
    locale: str
    redirect_uri: str
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Returns:
            Dictionary suitable for httpx data parameter
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "code_verifier": self.code_verifier,
            "client_id": self.app_key,
            "redirect_uri": self.redirect_uri,
            "locale": self.locale,
        }


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Covers both successful responses (Section 5.1) and error responses
    (Section 5.2).
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None

    # Account identifiers; team apps receive team_id instead of uid
    uid: str | None = None
    account_id: str | None = None
    team_id: str | None = None

    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.access_token is not None

    def user_id(self) -> str | None:
        return self.uid or self.account_id or self.team_id

    def calculate_expires_at(self) -> float | None:
        """Calculate absolute expiry timestamp from expires_in."""
        if self.expires_in is None:
            return None
        return time.time() + self.expires_in

    def to_access_token(self) -> AccessToken:
        """Convert a successful response into a storable credential.

        Raises:
            ValueError: If the response is not a success or has no user id
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to AccessToken")

        uid = self.user_id()
        if uid is None:
            raise ValueError("Token response missing user identifier")

        return AccessToken(
            access_token=self.access_token,
            uid=uid,
            refresh_token=self.refresh_token,
            token_expiration_timestamp=self.calculate_expires_at(),
        )
