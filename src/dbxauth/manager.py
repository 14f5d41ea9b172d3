"""OAuth 2 authorization manager.

Coordinates the legacy token flow and the Authorization Code Flow with PKCE
behind one state machine: it builds the authorization request, hands it to
the host's presenter, validates the redirect that comes back, exchanges
authorization codes for tokens and stores the resulting credentials.
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from dbxauth.config import AuthConfig
from dbxauth.constants import (
    ACCESS_TOKEN_KEY,
    CODE_KEY,
    CSRF_KEY,
    ERROR_DESCRIPTION_KEY,
    ERROR_DIALOG_TITLE,
    ERROR_KEY,
    RESPONSE_TYPE_KEY,
    STATE_KEY,
    UID_KEY,
)
from dbxauth.models.errors import OAuth2Error, StorageError, TokenExchangeError
from dbxauth.models.flow import AuthorizationRequest
from dbxauth.models.results import (
    OAuthCancel,
    OAuthCompletion,
    OAuthFailure,
    OAuthResult,
    OAuthSuccess,
)
from dbxauth.models.session import AuthSession, ScopeRequest
from dbxauth.models.tokens import AccessToken, TokenExchangeRequest
from dbxauth.platform import AuthPresenter
from dbxauth.services.credentials import CredentialStore
from dbxauth.services.reachability import Reachability, SocketReachability
from dbxauth.services.security import (
    extract_params_from_url,
    generate_state,
    is_cancel_url,
    same_endpoint,
    states_match,
)
from dbxauth.services.storage import (
    MemoryPreferenceStore,
    MemorySecureStorage,
    PreferenceStore,
    SecureStorageBackend,
)
from dbxauth.services.tokens import OAuth2TokenExchange, TokenExchanger

logger = logging.getLogger(__name__)

INCONSISTENT_STATE_MESSAGE = "Auth flow failed because of inconsistent state."
INVALID_RESPONSE_MESSAGE = "Invalid response."


class OAuthManager:
    """Manages authorization flows and access token storage.

    One manager serves one app key. At most one code flow session is live
    at a time; starting a new authorization replaces it.
    """

    def __init__(
        self,
        config: AuthConfig,
        preferences: PreferenceStore | None = None,
        secure_storage: SecureStorageBackend | None = None,
        credential_store: CredentialStore | None = None,
        reachability: Reachability | None = None,
        token_exchanger: TokenExchanger | None = None,
    ):
        """Initialize the manager.

        Args:
            config: App key, hosts and registered URL schemes
            preferences: Store for the CSRF state; in memory if omitted
            secure_storage: Backend for the default credential store
            credential_store: Credential store to use instead of the default
            reachability: Network check run before each authorization
            token_exchanger: Transport for the code exchange
        """
        self.config = config
        self.preferences = preferences or MemoryPreferenceStore()
        self.credential_store = credential_store or CredentialStore(
            secure_storage or MemorySecureStorage(),
            self.preferences,
            CredentialStore.service_name(config.bundle_id, config.storage_namespace),
        )
        self.reachability = reachability or SocketReachability(config.host)
        # Only an exchanger built here is closed by close()
        self._owns_token_exchanger = token_exchanger is None
        self.token_exchanger = token_exchanger or OAuth2TokenExchange(
            api_host=config.api_host, timeout=config.timeout
        )

        self.redirect_url = config.redirect_url
        self.urls = [self.redirect_url]

        # None while in the legacy token flow
        self.auth_session: AuthSession | None = None
        self.presenter: AuthPresenter | None = None

    @property
    def app_key(self) -> str:
        return self.config.app_key

    @property
    def csrf_key(self) -> str:
        return f"{self.config.storage_namespace}.{CSRF_KEY}"

    def authorize(
        self,
        presenter: AuthPresenter,
        use_pkce: bool = False,
        scope_request: ScopeRequest | None = None,
    ) -> None:
        """Start an authorization flow.

        Args:
            presenter: Host capabilities used to show the flow
            use_pkce: Use the code flow with PKCE instead of the legacy
                token flow
            scope_request: Requested scopes, only used in the code flow
        """

        def cancel_handler() -> None:
            presenter.present_external_app(self.config.cancel_url)

        if not self.reachability.is_connected():
            logger.warning("Authorization requested without a network connection")

            def retry_handler() -> None:
                self.authorize(presenter, use_pkce, scope_request)

            presenter.present_error_with_retry(
                "Try again once you have an internet connection",
                "No internet connection",
                {"Cancel": cancel_handler, "Retry": retry_handler},
            )
            return

        if not self.conforms_to_app_scheme():
            app_scheme = self.config.app_scheme
            message = (
                f"dbxauth: unable to link; app isn't registered for correct URL "
                f"scheme ({app_scheme}). Add this scheme to the URL schemes the "
                f"application registers."
            )
            logger.error(message)
            presenter.present_error(message, ERROR_DIALOG_TITLE)
            return

        self.auth_session = AuthSession.create(scope_request) if use_pkce else None
        self.presenter = presenter

        url = self.auth_url()
        logger.debug(
            f"Starting {'code' if use_pkce else 'token'} flow for app {self.app_key}"
        )

        if self.check_and_present_platform_auth(presenter):
            return

        def try_intercept(intercepted_url: str) -> bool:
            if self.can_handle_url(intercepted_url):
                presenter.present_external_app(intercepted_url)
                return True
            return False

        presenter.present_auth_channel(url, try_intercept, cancel_handler)

    def conforms_to_app_scheme(self) -> bool:
        return self.config.app_scheme in self.config.registered_url_schemes

    def auth_url(self) -> str:
        """Build the authorization URL and persist its state for validation."""
        if self.auth_session is not None:
            state = self.auth_session.state
            flow_params = self.auth_session.code_flow_params()
        else:
            state = generate_state()
            flow_params = [(RESPONSE_TYPE_KEY, "token"), (STATE_KEY, state)]

        self.preferences.set(self.csrf_key, state)

        request = AuthorizationRequest(
            host=self.config.host,
            client_id=self.app_key,
            redirect_uri=self.redirect_url,
            locale=self.config.locale_identifier,
            flow_params=flow_params,
        )
        return request.build_authorization_url()

    def check_and_present_platform_auth(self, presenter: AuthPresenter) -> bool:
        """Try a platform-native handoff. True if the flow continues there."""
        return False

    def can_handle_url(self, url: str) -> bool:
        try:
            parsed = urlsplit(url)
            return any(same_endpoint(parsed, urlsplit(known)) for known in self.urls)
        except ValueError:
            return False

    async def handle_redirect_url(
        self, url: str, completion: OAuthCompletion | None = None
    ) -> OAuthResult | None:
        """Try to handle a redirect back into the application.

        Args:
            url: The URL to attempt to handle
            completion: Called with the result once it is known

        Returns:
            None if the URL does not belong to this manager, otherwise the
            result of the authorization
        """
        result: OAuthResult | None
        if self._is_cancel_url(url):
            result = OAuthCancel()
        elif not self.can_handle_url(url):
            result = None
        else:
            result = await self.extract_from_url(url)
            if isinstance(result, OAuthSuccess):
                if not self.store_access_token(result.token):
                    logger.warning(
                        f"Authorized user {result.token.uid} but failed to store "
                        f"the access token"
                    )
                else:
                    logger.info(f"Authorized user {result.token.uid}")

        if completion is not None:
            completion(result)
        return result

    async def extract_from_url(self, url: str) -> OAuthResult:
        return await self.extract_from_redirect_url(url)

    async def extract_from_redirect_url(self, url: str) -> OAuthResult:
        """Interpret a web redirect of the token flow or the code flow."""
        try:
            results = extract_params_from_url(url)
        except ValueError as e:
            logger.warning(f"Unable to parse redirect URL: {e}")
            return OAuthFailure(OAuth2Error.UNKNOWN, INVALID_RESPONSE_MESSAGE)

        error = results.get(ERROR_KEY)
        if error is not None:
            # Every error other than access_denied is reported as a cancel
            if error != OAuth2Error.ACCESS_DENIED.value:
                logger.debug(f"Authorization ended with error {error}")
                return OAuthCancel()
            return OAuthFailure(
                OAuth2Error.from_code(error), results.get(ERROR_DESCRIPTION_KEY, "")
            )

        state = results.get(STATE_KEY)
        stored_state = self.read_preference(self.csrf_key)
        if not states_match(stored_state, state):
            logger.warning("Rejected redirect with inconsistent state")
            return OAuthFailure(OAuth2Error.INCONSISTENT_STATE, INCONSISTENT_STATE_MESSAGE)

        # State is single use
        self.clear_preference(self.csrf_key)

        auth_session = self.auth_session
        auth_code = results.get(CODE_KEY)
        if auth_session is not None and auth_code is not None:
            return await self.finish_pkce_oauth(
                auth_code, auth_session.pkce_data.code_verifier
            )

        access_token = results.get(ACCESS_TOKEN_KEY)
        uid = results.get(UID_KEY)
        if access_token is not None and uid is not None:
            return OAuthSuccess(AccessToken(access_token=access_token, uid=uid))

        return OAuthFailure(OAuth2Error.UNKNOWN, INVALID_RESPONSE_MESSAGE)

    async def finish_pkce_oauth(self, auth_code: str, code_verifier: str) -> OAuthResult:
        """Exchange an authorization code, showing loading around the request."""
        presenter = self.presenter
        request = TokenExchangeRequest(
            code=auth_code,
            code_verifier=code_verifier,
            app_key=self.app_key,
            locale=self.config.locale_identifier,
            redirect_uri=self.redirect_url,
        )

        if presenter is not None:
            presenter.present_loading()
        try:
            token = await self.token_exchanger.exchange(request)
        except TokenExchangeError as e:
            logger.warning(f"Authorization code exchange failed: {e.error_code}")
            return OAuthFailure(OAuth2Error.from_code(e.error_code), e.description)
        finally:
            if presenter is not None:
                presenter.dismiss_loading()

        return OAuthSuccess(token)

    def _is_cancel_url(self, url: str) -> bool:
        try:
            return is_cancel_url(url)
        except ValueError:
            return False

    def read_preference(self, key: str) -> str | None:
        """Read flow state. An unreadable store reads as missing state."""
        try:
            return self.preferences.get(key)
        except StorageError as e:
            logger.warning(f"Unable to read {key}: {e}")
            return None

    def clear_preference(self, key: str) -> None:
        try:
            self.preferences.delete(key)
        except StorageError as e:
            logger.warning(f"Unable to clear {key}: {e}")

    async def close(self) -> None:
        """Release the HTTP client of the default token exchanger."""
        if self._owns_token_exchanger:
            await self.token_exchanger.close()

    # Credential storage

    def store_access_token(self, token: AccessToken) -> bool:
        """Save an access token under its uid.

        Returns:
            Whether the operation succeeded
        """
        return self.credential_store.set(token.uid, token)

    def get_access_token(self, user: str | None) -> AccessToken | None:
        if user is None:
            return None
        return self.credential_store.get(user)

    def get_all_access_tokens(self) -> dict[str, AccessToken]:
        """Retrieve all stored access tokens, keyed by uid."""
        return self.credential_store.get_all()

    def has_stored_access_tokens(self) -> bool:
        return len(self.get_all_access_tokens()) != 0

    def get_first_access_token(self) -> AccessToken | None:
        """Return an arbitrary stored access token, if any."""
        return next(iter(self.get_all_access_tokens().values()), None)

    def clear_stored_access_token(self, token: AccessToken) -> bool:
        return self.credential_store.delete(token.uid)

    def clear_stored_access_tokens(self) -> bool:
        return self.credential_store.clear()
