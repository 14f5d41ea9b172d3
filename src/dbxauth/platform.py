"""Presentation contract between the managers and the host application.

The managers never draw anything themselves. They call an ``AuthPresenter``
to show errors, open the authorization page, hand off to a companion app
and indicate loading.
"""

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

ButtonHandlers = dict[str, Callable[[], None]]


class AuthPresenter(Protocol):
    """Capabilities the host application provides to the authorization flow."""

    def present_error(self, message: str, title: str) -> None:
        """Show a non-retryable error."""
        ...

    def present_error_with_retry(
        self, message: str, title: str, button_handlers: ButtonHandlers
    ) -> None:
        """Show an error offering the "Cancel" and "Retry" actions."""
        ...

    def present_platform_auth(self, url: str) -> bool:
        """Hand the request to a platform-native channel. True if accepted."""
        ...

    def present_auth_channel(
        self,
        url: str,
        try_intercept: Callable[[str], bool],
        cancel_handler: Callable[[], None],
    ) -> None:
        """Show the authorization page in an embedded browser.

        Args:
            url: Authorization URL to load
            try_intercept: Called with navigations; True means the URL was
                taken over by the flow and must not be loaded
            cancel_handler: Called if the user dismisses the browser
        """
        ...

    def present_external_app(self, url: str) -> None: ...

    def can_present_external_app(self, url: str) -> bool: ...

    def present_loading(self) -> None: ...

    def dismiss_loading(self) -> None: ...

    def dismiss_auth_channel(self) -> None:
        """Close the browser shown by present_auth_channel, if any."""
        ...


class LoadingStatusDelegate(Protocol):
    """Custom loading experience while the flow waits on the network."""

    def show_loading(self) -> None: ...

    def dismiss_loading(self) -> None: ...


class LoggingLoadingIndicator:
    """Default loading indicator that reports progress through logging."""

    def __init__(self) -> None:
        self.is_loading = False

    def show_loading(self) -> None:
        self.is_loading = True
        logger.info("Waiting for authorization to complete...")

    def dismiss_loading(self) -> None:
        self.is_loading = False
        logger.debug("Authorization loading finished")


class BrowserPresenter:
    """Presenter for desktop and command line hosts.

    Opens URLs with the system browser and keeps the callbacks of the active
    browser channel so the host can forward navigations with ``intercept``
    and report dismissal with ``cancel``.
    """

    def __init__(
        self,
        open_url: Callable[[str], object] | None = None,
        installed_schemes: list[str] | None = None,
        loading_status_delegate: LoadingStatusDelegate | None = None,
        prompt: Callable[[str], str] | None = None,
    ):
        """Initialize the presenter.

        Args:
            open_url: Opens a URL; defaults to webbrowser.open
            installed_schemes: URL schemes of apps that can be opened
            loading_status_delegate: Custom loading experience
            prompt: Asks the user a question and returns the answer. Without
                a prompt, retryable errors are cancelled.
        """
        self.open_url = open_url or webbrowser.open
        self.installed_schemes = set(installed_schemes or [])
        self.loading_status_delegate = (
            loading_status_delegate or LoggingLoadingIndicator()
        )
        self.prompt = prompt

        self._try_intercept: Callable[[str], bool] | None = None
        self._cancel_handler: Callable[[], None] | None = None

    @property
    def has_auth_channel(self) -> bool:
        return self._cancel_handler is not None

    def present_error(self, message: str, title: str) -> None:
        logger.error(f"{title}: {message}")

    def present_error_with_retry(
        self, message: str, title: str, button_handlers: ButtonHandlers
    ) -> None:
        logger.warning(f"{title}: {message}")

        answer = ""
        if self.prompt is not None:
            answer = self.prompt(f"{title}. {message}. Retry? [y/N] ")

        action = "Retry" if answer.strip().lower() in ("y", "yes") else "Cancel"
        handler = button_handlers.get(action)
        if handler is not None:
            handler()

    def present_platform_auth(self, url: str) -> bool:
        self.present_external_app(url)
        return True

    def present_auth_channel(
        self,
        url: str,
        try_intercept: Callable[[str], bool],
        cancel_handler: Callable[[], None],
    ) -> None:
        self._try_intercept = try_intercept
        self._cancel_handler = cancel_handler
        self.open_url(url)

    def present_external_app(self, url: str) -> None:
        self.open_url(url)

    def can_present_external_app(self, url: str) -> bool:
        scheme, _, _ = url.partition(":")
        return scheme in self.installed_schemes

    def present_loading(self) -> None:
        self.loading_status_delegate.show_loading()

    def dismiss_loading(self) -> None:
        self.loading_status_delegate.dismiss_loading()

    def dismiss_auth_channel(self) -> None:
        self._try_intercept = None
        self._cancel_handler = None

    def intercept(self, url: str) -> bool:
        """Offer a navigation of the browser channel to the flow."""
        if self._try_intercept is None:
            return False
        return self._try_intercept(url)

    def cancel(self) -> None:
        """Report that the user closed the browser without finishing."""
        cancel_handler = self._cancel_handler
        self.dismiss_auth_channel()
        if cancel_handler is not None:
            cancel_handler()
