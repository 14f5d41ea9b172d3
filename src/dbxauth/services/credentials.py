"""Secure credential storage.

``CredentialStore`` maps user identifiers to access token records on top of
a ``SecureStorageBackend``. Every entry is written as readable after first
unlock, on this device only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError

from dbxauth.constants import ACCESSIBILITY_MIGRATION_KEY, KEYCHAIN_SERVICE_SUFFIX
from dbxauth.models.tokens import AccessToken
from dbxauth.services.storage import (
    Accessibility,
    PreferenceStore,
    SecureStorageBackend,
)

logger = logging.getLogger(__name__)

ENTRY_ACCESSIBILITY = Accessibility.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY

TokenDecoder = Callable[[bytes, str], AccessToken | None]


def decode_token_record(data: bytes, key: str) -> AccessToken | None:
    """Decode the current structured JSON record."""
    try:
        return AccessToken.model_validate_json(data)
    except ValidationError:
        return None


def decode_legacy_token_string(data: bytes, key: str) -> AccessToken | None:
    """Decode a bare access token string written by earlier versions.

    The storage key doubles as the uid.
    """
    try:
        access_token = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if not access_token:
        return None
    return AccessToken(access_token=access_token, uid=key)


class CredentialStore:
    """Persistent mapping from uid to ``AccessToken``.

    Reads go through an ordered list of decoders so records stored in older
    formats keep working. The first time the store is used it tightens the
    accessibility policy of entries written by older versions.
    """

    def __init__(
        self,
        backend: SecureStorageBackend,
        preferences: PreferenceStore,
        service: str,
        decoders: list[TokenDecoder] | None = None,
    ):
        """Initialize the credential store.

        Args:
            backend: Secure storage holding the records
            preferences: Store used to remember that migration already ran
            service: Service name every entry is scoped to
            decoders: Record decoders, tried in order
        """
        self.backend = backend
        self.preferences = preferences
        self.service = service
        self.decoders = decoders or [decode_token_record, decode_legacy_token_string]
        self._migration_checked = False

    @staticmethod
    def service_name(bundle_id: str, namespace: str) -> str:
        """Service name scoping the entries of one manager."""
        return f"{bundle_id}.{namespace}.{KEYCHAIN_SERVICE_SUFFIX}"

    def set(self, key: str, token: AccessToken) -> bool:
        """Store a token under key, replacing any existing entry."""
        self._ensure_migrated()
        self.backend.delete(self.service, key)
        return self.backend.add(
            self.service, key, token.to_json_bytes(), ENTRY_ACCESSIBILITY
        )

    def get(self, key: str) -> AccessToken | None:
        self._ensure_migrated()
        data = self.backend.get(self.service, key)
        if data is None:
            return None

        for decoder in self.decoders:
            token = decoder(data, key)
            if token is not None:
                return token

        logger.warning(f"Unable to decode stored credential for {key}")
        return None

    def keys(self) -> list[str]:
        self._ensure_migrated()
        return self.backend.accounts(self.service)

    def get_all(self) -> dict[str, AccessToken]:
        tokens = {}
        for key in self.keys():
            token = self.get(key)
            if token is not None:
                tokens[key] = token
        return tokens

    def delete(self, key: str) -> bool:
        self._ensure_migrated()
        return self.backend.delete(self.service, key)

    def clear(self) -> bool:
        self._ensure_migrated()
        return self.backend.delete_all(self.service)

    def _ensure_migrated(self) -> None:
        if self._migration_checked:
            return
        self._migration_checked = True

        migration_key = f"{self.service}.{ACCESSIBILITY_MIGRATION_KEY}"
        if self.preferences.get(migration_key) == "true":
            return

        updated = self.backend.update_accessibility(self.service, ENTRY_ACCESSIBILITY)
        self.preferences.set(migration_key, "true")
        logger.info(f"Migrated accessibility of {updated} stored credentials")
