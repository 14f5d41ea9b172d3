"""Tests for starting an authorization flow.

Covers the network and URL scheme preconditions, the authorization URL of
both flows and the browser channel callbacks.
"""

from urllib.parse import parse_qs, urlsplit

from dbxauth.models.session import ScopeRequest, ScopeType
from dbxauth.primitives.pkce import generate_code_challenge

from conftest import APP_KEY


def auth_channel_call(presenter):
    presenter.present_auth_channel.assert_called_once()
    return presenter.present_auth_channel.call_args[0]


def query_of(url: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(url).query)


class TestPreconditions:
    def test_no_network_offers_retry(self, manager, presenter, reachability):
        # Arrange
        reachability.connected = False

        # Act
        manager.authorize(presenter, use_pkce=True)

        # Assert
        presenter.present_error_with_retry.assert_called_once()
        message, title, handlers = presenter.present_error_with_retry.call_args[0]
        assert title == "No internet connection"
        assert message == "Try again once you have an internet connection"
        assert set(handlers) == {"Cancel", "Retry"}
        presenter.present_auth_channel.assert_not_called()
        assert manager.auth_session is None

    def test_retry_runs_authorize_again(self, manager, presenter, reachability):
        reachability.connected = False
        manager.authorize(presenter, use_pkce=True)
        handlers = presenter.present_error_with_retry.call_args[0][2]

        reachability.connected = True
        handlers["Retry"]()

        assert reachability.checks == 2
        assert manager.auth_session is not None
        presenter.present_auth_channel.assert_called_once()

    def test_cancel_opens_the_cancel_url(self, manager, presenter, reachability):
        reachability.connected = False
        manager.authorize(presenter)
        handlers = presenter.present_error_with_retry.call_args[0][2]

        handlers["Cancel"]()

        presenter.present_external_app.assert_called_once_with(
            f"db-{APP_KEY}://2/cancel"
        )

    def test_unregistered_scheme_is_a_configuration_error(
        self, manager, presenter, config
    ):
        # Arrange
        config.registered_url_schemes = ["db-somethingelse"]

        # Act
        manager.authorize(presenter)

        # Assert
        presenter.present_error.assert_called_once()
        message, title = presenter.present_error.call_args[0]
        assert f"db-{APP_KEY}" in message
        assert title == "dbxauth Error"
        presenter.present_auth_channel.assert_not_called()
        assert manager.preferences.get(manager.csrf_key) is None


class TestCodeFlow:
    def test_authorization_url(self, manager, presenter):
        # Act
        manager.authorize(
            presenter,
            use_pkce=True,
            scope_request=ScopeRequest(ScopeType.USER, ["files.read"]),
        )

        # Assert
        url = auth_channel_call(presenter)[0]
        parsed = urlsplit(url)
        assert parsed.scheme == "https"
        assert parsed.netloc == "www.dropbox.com"
        assert parsed.path == "/oauth2/authorize"

        session = manager.auth_session
        query = query_of(url)
        assert query["client_id"] == [APP_KEY]
        assert query["redirect_uri"] == [f"db-{APP_KEY}://2/token"]
        assert query["locale"] == ["en"]
        assert query["disable_signup"] == ["true"]
        assert query["scope"] == ["files.read"]
        assert query["code_challenge"] == [
            generate_code_challenge(session.pkce_data.code_verifier)
        ]
        assert query["code_challenge_method"] == ["S256"]
        assert query["token_access_type"] == ["offline"]
        assert query["response_type"] == ["code"]
        assert query["state"] == [session.state]
        assert "include_granted_scopes" not in query

    def test_state_is_persisted_for_validation(self, manager, presenter):
        manager.authorize(presenter, use_pkce=True)

        assert manager.preferences.get(manager.csrf_key) == manager.auth_session.state
        assert manager.auth_session.state.startswith("oauth2code:")

    def test_include_granted_scopes(self, manager, presenter):
        manager.authorize(
            presenter,
            use_pkce=True,
            scope_request=ScopeRequest(
                ScopeType.TEAM, ["team_data.member"], include_granted_scopes=True
            ),
        )

        query = query_of(auth_channel_call(presenter)[0])
        assert query["include_granted_scopes"] == ["team"]
        assert manager.auth_session.state.endswith(":team_data.member:team")

    def test_new_authorize_replaces_the_session(self, manager, presenter):
        manager.authorize(presenter, use_pkce=True)
        first = manager.auth_session

        manager.authorize(presenter, use_pkce=True)

        assert manager.auth_session is not first
        assert manager.auth_session.pkce_data != first.pkce_data
        assert manager.preferences.get(manager.csrf_key) == manager.auth_session.state


class TestTokenFlow:
    def test_authorization_url(self, manager, presenter):
        manager.authorize(presenter)

        query = query_of(auth_channel_call(presenter)[0])
        assert manager.auth_session is None
        assert query["response_type"] == ["token"]
        assert query["state"] == [manager.preferences.get(manager.csrf_key)]
        assert "code_challenge" not in query

    def test_token_flow_after_code_flow_drops_the_session(self, manager, presenter):
        manager.authorize(presenter, use_pkce=True)

        manager.authorize(presenter)

        assert manager.auth_session is None


class TestAuthChannelCallbacks:
    def test_intercept_takes_over_redirects(self, manager, presenter):
        manager.authorize(presenter, use_pkce=True)
        _, try_intercept, _ = auth_channel_call(presenter)

        redirect = f"db-{APP_KEY}://2/token?code=abc&state=xyz"

        assert try_intercept(redirect)
        presenter.present_external_app.assert_called_once_with(redirect)

    def test_intercept_ignores_other_navigation(self, manager, presenter):
        manager.authorize(presenter, use_pkce=True)
        _, try_intercept, _ = auth_channel_call(presenter)

        assert not try_intercept("https://www.dropbox.com/login")
        presenter.present_external_app.assert_not_called()

    def test_cancel_handler_opens_the_cancel_url(self, manager, presenter):
        manager.authorize(presenter)
        _, _, cancel_handler = auth_channel_call(presenter)

        cancel_handler()

        presenter.present_external_app.assert_called_once_with(
            f"db-{APP_KEY}://2/cancel"
        )


class TestCanHandleUrl:
    def test_redirect_url(self, manager):
        assert manager.can_handle_url(f"db-{APP_KEY}://2/token?code=abc")

    def test_companion_app_url_needs_native_manager(self, manager, native_manager):
        url = f"db-{APP_KEY}://1/connect?state=x"

        assert not manager.can_handle_url(url)
        assert native_manager.can_handle_url(url)

    def test_other_urls(self, manager):
        assert not manager.can_handle_url("db-other://2/token")
        assert not manager.can_handle_url("https://example.com/")
