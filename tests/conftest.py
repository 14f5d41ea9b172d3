from unittest.mock import AsyncMock, MagicMock

import pytest

from dbxauth.config import AuthConfig
from dbxauth.manager import OAuthManager
from dbxauth.models.tokens import AccessToken
from dbxauth.native import NativeAppOAuthManager
from dbxauth.services.storage import MemoryPreferenceStore, MemorySecureStorage

APP_KEY = "abc123"


class FakeReachability:
    """Reachability with a switchable connection state."""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.checks = 0

    def is_connected(self) -> bool:
        self.checks += 1
        return self.connected


def make_presenter(can_open_schemes: tuple[str, ...] = ()) -> MagicMock:
    """Presenter mock that records every call in mock_calls order."""
    presenter = MagicMock()
    presenter.present_platform_auth.return_value = True
    presenter.can_present_external_app.side_effect = lambda url: url.split(":")[
        0
    ] in can_open_schemes
    return presenter


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(
        app_key=APP_KEY,
        locale="en",
        bundle_id="com.example.app",
        registered_url_schemes=[f"db-{APP_KEY}"],
        queries_schemes=["dbapi-2", "dbapi-8-emm"],
    )


@pytest.fixture
def preferences() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
def secure_storage() -> MemorySecureStorage:
    return MemorySecureStorage()


@pytest.fixture
def reachability() -> FakeReachability:
    return FakeReachability()


@pytest.fixture
def token_exchanger() -> AsyncMock:
    exchanger = AsyncMock()
    exchanger.exchange.return_value = AccessToken(
        access_token="sl.exchanged-token",
        uid="user-42",
        refresh_token="refresh-abc",
        token_expiration_timestamp=1_900_000_000.0,
    )
    return exchanger


@pytest.fixture
def presenter() -> MagicMock:
    return make_presenter()


@pytest.fixture
def manager(
    config, preferences, secure_storage, reachability, token_exchanger
) -> OAuthManager:
    return OAuthManager(
        config,
        preferences=preferences,
        secure_storage=secure_storage,
        reachability=reachability,
        token_exchanger=token_exchanger,
    )


@pytest.fixture
def native_manager(
    config, preferences, secure_storage, reachability, token_exchanger
) -> NativeAppOAuthManager:
    return NativeAppOAuthManager(
        config,
        preferences=preferences,
        secure_storage=secure_storage,
        reachability=reachability,
        token_exchanger=token_exchanger,
    )
