"""Results delivered to callers when an authorization attempt ends."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from dbxauth.models.errors import OAuth2Error
from dbxauth.models.tokens import AccessToken


@dataclass(frozen=True)
class OAuthSuccess:
    """The authorization succeeded."""

    token: AccessToken


@dataclass(frozen=True)
class OAuthFailure:
    """The authorization failed with an error code and a descriptive message."""

    error: OAuth2Error
    description: str


@dataclass(frozen=True)
class OAuthCancel:
    """The authorization was cancelled by the user."""


OAuthResult = OAuthSuccess | OAuthFailure | OAuthCancel

# Receives None when the redirect URL does not belong to the manager
OAuthCompletion = Callable[[OAuthResult | None], None]
