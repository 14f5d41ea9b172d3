"""Authorization code to access token exchange.

Implements the RFC 6749 Section 4.1.3 token request with the PKCE
code_verifier (RFC 7636) against the provider's token endpoint.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from dbxauth.constants import DEFAULT_API_HOST, TOKEN_ENDPOINT_PATH
from dbxauth.models.errors import TokenExchangeError
from dbxauth.models.tokens import AccessToken, TokenExchangeRequest, TokenResponse

logger = logging.getLogger(__name__)


class TokenExchanger(Protocol):
    """Transport that turns an authorization code into an access token."""

    async def exchange(self, request: TokenExchangeRequest) -> AccessToken:
        """Exchange the code in request.

        Raises:
            TokenExchangeError: If the exchange fails for any reason
        """
        ...


class OAuth2TokenExchange:
    """Exchanges authorization codes at the token endpoint over httpx.

    Uses application/x-www-form-urlencoded encoding as required by RFC 6749.
    """

    def __init__(self, api_host: str = DEFAULT_API_HOST, timeout: float = 30.0):
        """Initialize the token exchange.

        Args:
            api_host: Host serving the token endpoint
            timeout: HTTP request timeout in seconds
        """
        self.token_endpoint = f"https://{api_host}{TOKEN_ENDPOINT_PATH}"
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange(self, request: TokenExchangeRequest) -> AccessToken:
        """Exchange an authorization code for an access token.

        Args:
            request: Token exchange request parameters

        Returns:
            AccessToken: The credential to store

        Raises:
            TokenExchangeError: If the request fails or the server rejects it
        """
        logger.debug(f"Exchanging authorization code at {self.token_endpoint}")

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            response = await self._http_client.post(
                self.token_endpoint,
                data=request.to_form_data(),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                "unknown", f"HTTP error during token exchange: {e}"
            ) from e

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> AccessToken:
        """Parse token endpoint response into an AccessToken.

        Raises:
            TokenExchangeError: If the response is an error or cannot be parsed
        """
        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(
                "unknown",
                f"Invalid token response format (HTTP {response.status_code}): {e}",
            ) from e

        if response.status_code != 200 or not token_response.is_success():
            error_code = token_response.error or "unknown"
            error_description = (
                token_response.error_description
                or f"Token exchange failed with HTTP {response.status_code}"
            )
            logger.warning(
                f"Token exchange failed with {response.status_code}: "
                f"{error_code} - {error_description}"
            )
            raise TokenExchangeError(error_code, error_description)

        try:
            access_token = token_response.to_access_token()
        except ValueError as e:
            raise TokenExchangeError("unknown", str(e)) from e

        logger.info("Token exchange successful")
        return access_token

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
