"""Tests for authorization through the installed companion app."""

from unittest.mock import MagicMock
from urllib.parse import parse_qs, quote, urlsplit

import pytest

from dbxauth.models.errors import OAuth2Error
from dbxauth.models.results import OAuthCancel, OAuthFailure, OAuthSuccess
from dbxauth.models.session import AuthSession, ScopeRequest, ScopeType
from dbxauth.models.tokens import AccessToken
from dbxauth.native import build_extra_query_params

from conftest import APP_KEY, make_presenter

CONNECT = f"db-{APP_KEY}://1/connect"


def connect_with(**params: str) -> str:
    query = "&".join(f"{key}={quote(value, safe='')}" for key, value in params.items())
    return f"{CONNECT}?{query}"


def platform_auth_url(presenter: MagicMock) -> str:
    presenter.present_platform_auth.assert_called_once()
    return presenter.present_platform_auth.call_args[0][0]


class TestPlatformHandoff:
    def test_missing_queries_schemes_is_a_configuration_error(
        self, native_manager, config
    ):
        # Arrange
        config.queries_schemes = ["dbapi-2"]
        presenter = make_presenter(("dbapi-2",))

        # Act
        native_manager.authorize(presenter, use_pkce=True)

        # Assert
        presenter.present_error.assert_called_once()
        message, title = presenter.present_error.call_args[0]
        assert "dbapi-8-emm" in message
        assert title == "dbxauth Error"
        presenter.present_platform_auth.assert_not_called()
        presenter.present_auth_channel.assert_not_called()

    def test_falls_back_to_browser_without_companion_app(self, native_manager):
        presenter = make_presenter()

        native_manager.authorize(presenter, use_pkce=True)

        presenter.present_platform_auth.assert_not_called()
        presenter.present_auth_channel.assert_called_once()
        assert presenter.can_present_external_app.call_count == 2

    def test_code_flow_request(self, native_manager):
        # Arrange
        presenter = make_presenter(("dbapi-2",))

        # Act
        native_manager.authorize(
            presenter,
            use_pkce=True,
            scope_request=ScopeRequest(ScopeType.USER, ["files.read", "files.write"]),
        )

        # Assert
        url = platform_auth_url(presenter)
        parsed = urlsplit(url)
        assert parsed.scheme == "dbapi-2"
        assert parsed.netloc == "1"
        assert parsed.path == "/connect"

        session = native_manager.auth_session
        query = parse_qs(parsed.query, keep_blank_values=True)
        assert query["k"] == [APP_KEY]
        assert query["s"] == [""]
        assert query["state"] == [session.state]
        assert query["extra_query_params"] == [build_extra_query_params(session)]
        presenter.present_auth_channel.assert_not_called()

    def test_second_scheme_is_used_when_first_is_missing(self, native_manager):
        presenter = make_presenter(("dbapi-8-emm",))

        native_manager.authorize(presenter, use_pkce=True)

        assert urlsplit(platform_auth_url(presenter)).scheme == "dbapi-8-emm"

    def test_token_flow_request_uses_a_nonce(self, native_manager):
        presenter = make_presenter(("dbapi-2",))

        native_manager.authorize(presenter)

        nonce = native_manager.preferences.get(native_manager.link_nonce_key)
        query = parse_qs(urlsplit(platform_auth_url(presenter)).query)
        assert nonce
        assert query["state"] == [f"oauth2:{nonce}"]
        assert "extra_query_params" not in query

    def test_rejected_platform_auth_falls_back_to_browser(self, native_manager):
        # Arrange
        presenter = make_presenter(("dbapi-2",))
        presenter.present_platform_auth.return_value = False

        # Act
        native_manager.authorize(presenter, use_pkce=True)

        # Assert
        presenter.present_platform_auth.assert_called_once()
        presenter.present_auth_channel.assert_called_once()
        url = presenter.present_auth_channel.call_args[0][0]
        assert urlsplit(url).netloc == "www.dropbox.com"

    def test_rejected_token_flow_handoff_drops_the_nonce(self, native_manager):
        presenter = make_presenter(("dbapi-2",))
        presenter.present_platform_auth.return_value = False

        native_manager.authorize(presenter)

        presenter.present_auth_channel.assert_called_once()
        assert native_manager.preferences.get(native_manager.link_nonce_key) is None
        assert native_manager.preferences.get(native_manager.csrf_key)


class TestBuildExtraQueryParams:
    def test_without_scopes(self):
        session = AuthSession.create()
        pkce_data = session.pkce_data

        assert build_extra_query_params(session) == (
            f"code_challenge={pkce_data.code_challenge}"
            f"&code_challenge_method=S256"
            f"&token_access_type=offline"
            f"&response_type=code"
        )

    def test_with_scopes(self):
        session = AuthSession.create(
            ScopeRequest(
                ScopeType.TEAM, ["team_data.member"], include_granted_scopes=True
            )
        )

        assert build_extra_query_params(session).endswith(
            "&response_type=code&scope=team_data.member&include_granted_scopes=team"
        )


class TestCompanionAppCodeFlow:
    def setup_method(self):
        self.presenter = make_presenter(("dbapi-2",))

    async def test_code_is_exchanged(self, native_manager, token_exchanger):
        # Arrange
        native_manager.authorize(self.presenter, use_pkce=True)
        session = native_manager.auth_session

        # Act
        result = await native_manager.handle_redirect_url(
            connect_with(state=session.state, code="dauth-code")
        )

        # Assert
        assert isinstance(result, OAuthSuccess)
        request = token_exchanger.exchange.call_args[0][0]
        assert request.code == "dauth-code"
        assert request.code_verifier == session.pkce_data.code_verifier
        assert native_manager.preferences.get(native_manager.csrf_key) is None
        assert native_manager.get_access_token("user-42") == result.token
        self.presenter.dismiss_auth_channel.assert_called_once()

    async def test_code_in_legacy_response_shape(
        self, native_manager, token_exchanger
    ):
        native_manager.authorize(self.presenter, use_pkce=True)

        result = await native_manager.handle_redirect_url(
            connect_with(
                state=native_manager.auth_session.state,
                oauth_token="oauth2code:",
                oauth_token_secret="legacy-code",
            )
        )

        assert isinstance(result, OAuthSuccess)
        assert token_exchanger.exchange.call_args[0][0].code == "legacy-code"

    async def test_state_mismatch(self, native_manager, token_exchanger):
        native_manager.authorize(self.presenter, use_pkce=True)

        result = await native_manager.handle_redirect_url(
            connect_with(state="oauth2code:other", code="dauth-code")
        )

        assert result == OAuthFailure(
            OAuth2Error.UNKNOWN, "Unable to verify link request"
        )
        token_exchanger.exchange.assert_not_awaited()

    async def test_missing_code(self, native_manager, token_exchanger):
        native_manager.authorize(self.presenter, use_pkce=True)

        result = await native_manager.handle_redirect_url(
            connect_with(state=native_manager.auth_session.state)
        )

        assert result == OAuthFailure(
            OAuth2Error.UNKNOWN, "Unable to verify link request"
        )
        token_exchanger.exchange.assert_not_awaited()


class TestCompanionAppTokenFlow:
    def setup_method(self):
        self.presenter = make_presenter(("dbapi-2",))

    async def test_token_response(self, native_manager, token_exchanger):
        # Arrange
        native_manager.authorize(self.presenter)
        nonce = native_manager.preferences.get(native_manager.link_nonce_key)

        # Act
        result = await native_manager.handle_redirect_url(
            connect_with(
                state=f"oauth2:{nonce}", oauth_token_secret="sl.dauth", uid="u5"
            )
        )

        # Assert
        assert result == OAuthSuccess(AccessToken(access_token="sl.dauth", uid="u5"))
        assert native_manager.preferences.get(native_manager.link_nonce_key) is None
        assert native_manager.get_access_token("u5").access_token == "sl.dauth"
        token_exchanger.exchange.assert_not_awaited()

    @pytest.mark.parametrize(
        "params",
        [
            {"state": "oauth2:wrong", "oauth_token_secret": "sl.dauth", "uid": "u5"},
            {"oauth_token_secret": "sl.dauth", "uid": "u5"},
        ],
    )
    async def test_unverified_response(self, native_manager, params):
        native_manager.authorize(self.presenter)
        nonce = native_manager.preferences.get(native_manager.link_nonce_key)

        result = await native_manager.handle_redirect_url(connect_with(**params))

        assert result == OAuthFailure(
            OAuth2Error.UNKNOWN, "Unable to verify link request"
        )
        assert native_manager.preferences.get(native_manager.link_nonce_key) == nonce

    async def test_missing_uid(self, native_manager):
        native_manager.authorize(self.presenter)
        nonce = native_manager.preferences.get(native_manager.link_nonce_key)

        result = await native_manager.handle_redirect_url(
            connect_with(state=f"oauth2:{nonce}", oauth_token_secret="sl.dauth")
        )

        assert result.error is OAuth2Error.UNKNOWN


class TestCompanionAppRedirects:
    async def test_connect_without_params_is_unverified(self, native_manager):
        native_manager.authorize(make_presenter(("dbapi-2",)), use_pkce=True)

        result = await native_manager.handle_redirect_url(CONNECT)

        assert result == OAuthFailure(
            OAuth2Error.UNKNOWN, "Unable to verify link request"
        )

    async def test_other_companion_app_paths_are_not_handled(self, native_manager):
        result = await native_manager.handle_redirect_url(f"db-{APP_KEY}://1/other")

        assert result is None

    async def test_cancel_url(self, native_manager):
        presenter = make_presenter(("dbapi-2",))
        native_manager.authorize(presenter, use_pkce=True)

        result = await native_manager.handle_redirect_url(f"db-{APP_KEY}://1/cancel")

        assert result == OAuthCancel()
        presenter.dismiss_auth_channel.assert_called_once()

    async def test_web_redirect_still_works(self, native_manager, presenter):
        native_manager.authorize(presenter, use_pkce=True)
        completion = MagicMock()

        result = await native_manager.handle_redirect_url(
            f"db-{APP_KEY}://2/token?code=web-code"
            f"&state={quote(native_manager.auth_session.state, safe='')}",
            completion,
        )

        assert isinstance(result, OAuthSuccess)
        presenter.dismiss_auth_channel.assert_called_once()
        completion.assert_called_once_with(result)

    async def test_dismiss_happens_before_completion(self, native_manager, presenter):
        native_manager.authorize(presenter)
        order = []
        presenter.dismiss_auth_channel.side_effect = lambda: order.append("dismiss")

        await native_manager.handle_redirect_url(
            f"db-{APP_KEY}://2/cancel", lambda result: order.append("completion")
        )

        assert order == ["dismiss", "completion"]


async def test_extract_from_dauth_url_rejects_other_paths(native_manager):
    native_manager.authorize(make_presenter(("dbapi-2",)), use_pkce=True)

    result = await native_manager.extract_from_dauth_url(f"db-{APP_KEY}://1/other")

    assert result == OAuthFailure(
        OAuth2Error.ACCESS_DENIED, "User cancelled Dropbox link"
    )
