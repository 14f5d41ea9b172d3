"""Delegated authorization through an installed companion app.

When the provider's app is installed, the authorization request is handed
to it over an inter-app URL instead of a browser, and the response comes
back on ``db-<appKey>://1/connect``. Session and state validation and the
code exchange are shared with the web flow.
"""

from __future__ import annotations

import logging
import uuid
from urllib.parse import quote, urlencode, urlsplit

from dbxauth.constants import (
    APP_KEY_PARAM,
    CODE_CHALLENGE_KEY,
    CODE_CHALLENGE_METHOD_KEY,
    CODE_KEY,
    CONNECT_PATH,
    DAUTH_REDIRECT_HOST,
    DAUTH_SCHEMES,
    ERROR_DIALOG_TITLE,
    EXTRA_QUERY_PARAMS_KEY,
    INCLUDE_GRANTED_SCOPES_KEY,
    LINK_NONCE_KEY,
    OAUTH_SECRET_KEY,
    OAUTH_TOKEN_KEY,
    RESPONSE_TYPE_KEY,
    SCOPE_KEY,
    SIGNATURE_PARAM,
    STATE_KEY,
    TOKEN_ACCESS_TYPE_KEY,
    UID_KEY,
)
from dbxauth.manager import OAuthManager
from dbxauth.models.errors import OAuth2Error
from dbxauth.models.results import (
    OAuthCompletion,
    OAuthFailure,
    OAuthResult,
    OAuthSuccess,
)
from dbxauth.models.session import STATE_PREFIX, AuthSession
from dbxauth.models.tokens import AccessToken
from dbxauth.platform import AuthPresenter
from dbxauth.services.security import extract_params_from_url, states_match

logger = logging.getLogger(__name__)

UNVERIFIED_LINK_MESSAGE = "Unable to verify link request"
CANCELLED_LINK_MESSAGE = "User cancelled Dropbox link"
TOKEN_FLOW_STATE_PREFIX = "oauth2"


class NativeAppOAuthManager(OAuthManager):
    """Authorization manager that prefers the installed companion app.

    Falls back to the browser channel of ``OAuthManager`` when no
    companion app can be opened.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.dauth_redirect_url = (
            f"{self.config.app_scheme}://{DAUTH_REDIRECT_HOST}{CONNECT_PATH}"
        )
        self.urls.append(self.dauth_redirect_url)

    @property
    def link_nonce_key(self) -> str:
        return f"{self.config.storage_namespace}.{LINK_NONCE_KEY}"

    async def handle_redirect_url(
        self, url: str, completion: OAuthCompletion | None = None
    ) -> OAuthResult | None:
        result = await super().handle_redirect_url(url)
        if self.presenter is not None:
            self.presenter.dismiss_auth_channel()

        if completion is not None:
            completion(result)
        return result

    async def extract_from_url(self, url: str) -> OAuthResult:
        if urlsplit(url).netloc == DAUTH_REDIRECT_HOST:
            return await self.extract_from_dauth_url(url)
        return await self.extract_from_redirect_url(url)

    def check_and_present_platform_auth(self, presenter: AuthPresenter) -> bool:
        if not self.has_application_queries_schemes():
            message = (
                f"dbxauth: unable to link; app isn't registered to query for URL "
                f"schemes {' and '.join(DAUTH_SCHEMES)}. Add both schemes to the "
                f"schemes the application may query."
            )
            logger.error(message)
            presenter.present_error(message, ERROR_DIALOG_TITLE)
            return True

        scheme = self.dauth_scheme(presenter)
        if scheme is None:
            return False

        nonce = None
        if self.auth_session is not None:
            url = self.dauth_session_url(scheme, self.auth_session)
        else:
            nonce = str(uuid.uuid4()).upper()
            self.preferences.set(self.link_nonce_key, nonce)
            url = self.dauth_nonce_url(scheme, nonce)

        logger.debug(f"Handing authorization to companion app via {scheme}")
        if presenter.present_platform_auth(url):
            return True

        # The browser fallback validates against the CSRF state instead
        if nonce is not None:
            self.clear_preference(self.link_nonce_key)
        return False

    def has_application_queries_schemes(self) -> bool:
        return all(scheme in self.config.queries_schemes for scheme in DAUTH_SCHEMES)

    def dauth_scheme(self, presenter: AuthPresenter) -> str | None:
        """Return the first companion app scheme the presenter can open."""
        for scheme in DAUTH_SCHEMES:
            if presenter.can_present_external_app(self.dauth_nonce_url(scheme, None)):
                return scheme
        return None

    def dauth_nonce_url(self, scheme: str, nonce: str | None) -> str:
        """Companion app URL for the token flow."""
        params = self._dauth_common_params()
        if nonce is not None:
            params.append((STATE_KEY, f"{TOKEN_FLOW_STATE_PREFIX}:{nonce}"))
        return self._build_dauth_url(scheme, params)

    def dauth_session_url(self, scheme: str, auth_session: AuthSession) -> str:
        """Companion app URL for the code flow."""
        params = self._dauth_common_params()
        params.extend(
            [
                (STATE_KEY, auth_session.state),
                (EXTRA_QUERY_PARAMS_KEY, build_extra_query_params(auth_session)),
            ]
        )
        return self._build_dauth_url(scheme, params)

    async def extract_from_dauth_url(self, url: str) -> OAuthResult:
        if urlsplit(url).path != CONNECT_PATH:
            return OAuthFailure(OAuth2Error.ACCESS_DENIED, CANCELLED_LINK_MESSAGE)

        results = extract_params_from_url(url)
        auth_session = self.auth_session
        if auth_session is not None:
            return await self._handle_code_flow_results(results, auth_session)
        return self._handle_token_flow_results(results)

    async def _handle_code_flow_results(
        self, results: dict[str, str], auth_session: AuthSession
    ) -> OAuthResult:
        if not states_match(auth_session.state, results.get(STATE_KEY)):
            logger.warning("Rejected companion app response with inconsistent state")
            return OAuthFailure(OAuth2Error.UNKNOWN, UNVERIFIED_LINK_MESSAGE)

        self.clear_preference(self.csrf_key)

        auth_code = results.get(CODE_KEY)
        if auth_code is None and results.get(OAUTH_TOKEN_KEY) == f"{STATE_PREFIX}:":
            auth_code = results.get(OAUTH_SECRET_KEY)

        if auth_code is None:
            return OAuthFailure(OAuth2Error.UNKNOWN, UNVERIFIED_LINK_MESSAGE)

        return await self.finish_pkce_oauth(
            auth_code, auth_session.pkce_data.code_verifier
        )

    def _handle_token_flow_results(self, results: dict[str, str]) -> OAuthResult:
        nonce = self.read_preference(self.link_nonce_key)
        expected_state = f"{TOKEN_FLOW_STATE_PREFIX}:{nonce}" if nonce else None
        access_token = results.get(OAUTH_SECRET_KEY)
        uid = results.get(UID_KEY)

        if (
            not states_match(expected_state, results.get(STATE_KEY))
            or access_token is None
            or uid is None
        ):
            logger.warning("Rejected companion app token flow response")
            return OAuthFailure(OAuth2Error.UNKNOWN, UNVERIFIED_LINK_MESSAGE)

        self.clear_preference(self.link_nonce_key)
        return OAuthSuccess(AccessToken(access_token=access_token, uid=uid))

    def _dauth_common_params(self) -> list[tuple[str, str]]:
        return [(APP_KEY_PARAM, self.app_key), (SIGNATURE_PARAM, "")]

    @staticmethod
    def _build_dauth_url(scheme: str, params: list[tuple[str, str]]) -> str:
        query = urlencode(params, quote_via=quote)
        return f"{scheme}://{DAUTH_REDIRECT_HOST}{CONNECT_PATH}?{query}"


def build_extra_query_params(auth_session: AuthSession) -> str:
    """Fold every code flow parameter into one opaque query string."""
    pkce_data = auth_session.pkce_data
    extra_query_params = (
        f"{CODE_CHALLENGE_KEY}={pkce_data.code_challenge}"
        f"&{CODE_CHALLENGE_METHOD_KEY}={pkce_data.code_challenge_method}"
        f"&{TOKEN_ACCESS_TYPE_KEY}={auth_session.token_access_type}"
        f"&{RESPONSE_TYPE_KEY}={auth_session.response_type}"
    )
    scope_request = auth_session.scope_request
    if scope_request is not None:
        if scope_request.scope_string:
            extra_query_params += f"&{SCOPE_KEY}={scope_request.scope_string}"
        if scope_request.include_granted_scopes:
            extra_query_params += (
                f"&{INCLUDE_GRANTED_SCOPES_KEY}={scope_request.scope_type.value}"
            )
    return extra_query_params
