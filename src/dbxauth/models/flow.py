"""Authorization request models.

Contains the authorization URL builder shared by the token flow and the
code flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote, urlencode

from dbxauth.constants import (
    AUTHORIZE_PATH,
    CLIENT_ID_KEY,
    DISABLE_SIGNUP_KEY,
    LOCALE_KEY,
    REDIRECT_URI_KEY,
)


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the web authorize page."""

    host: str
    client_id: str
    redirect_uri: str
    locale: str
    # Flow specific parameters, appended after the common ones
    flow_params: list[tuple[str, str]] = field(default_factory=list)

    def query_params(self) -> list[tuple[str, str]]:
        params = [
            (CLIENT_ID_KEY, self.client_id),
            (REDIRECT_URI_KEY, self.redirect_uri),
            (LOCALE_KEY, self.locale),
            (DISABLE_SIGNUP_KEY, "true"),
        ]
        params.extend(self.flow_params)
        return params

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        query = urlencode(self.query_params(), quote_via=quote)
        return f"https://{self.host}{AUTHORIZE_PATH}?{query}"
