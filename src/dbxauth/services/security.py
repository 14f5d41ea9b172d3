"""Security utilities for the authorization flows.

Provides state parameter generation and comparison, and redirect URL
inspection helpers used by the managers.
"""

from __future__ import annotations

import secrets
import uuid
from urllib.parse import SplitResult, parse_qsl, urlsplit

from dbxauth.constants import CANCEL_PATH, DAUTH_REDIRECT_HOST, WEB_REDIRECT_HOST


def generate_state() -> str:
    """Generate a globally unique state parameter for the token flow."""
    return str(uuid.uuid4()).upper()


def states_match(expected: str | None, actual: str | None) -> bool:
    """Compare two state values in constant time. Missing values never match."""
    if expected is None or actual is None:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


def extract_params_from_url(url: str) -> dict[str, str]:
    """Parse the query of a redirect URL into a mapping.

    Values are URL-decoded, blank values are kept and the last value wins
    for repeated keys.
    """
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def is_cancel_url(url: str) -> bool:
    """True for ``<scheme>://1/cancel`` and ``<scheme>://2/cancel``."""
    parsed = urlsplit(url)
    return (
        parsed.netloc in (DAUTH_REDIRECT_HOST, WEB_REDIRECT_HOST)
        and parsed.path == CANCEL_PATH
    )


def same_endpoint(url: SplitResult, known: SplitResult) -> bool:
    """Match two URLs on scheme, host and path."""
    return (
        url.scheme == known.scheme
        and url.netloc == known.netloc
        and url.path == known.path
    )
