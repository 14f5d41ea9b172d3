"""Storage contracts and reference implementations.

Two kinds of storage back the managers:

- ``SecureStorageBackend``: an OS keychain style store of byte values keyed
  by (service, account), each entry carrying an accessibility policy.
- ``PreferenceStore``: a plain string key-value store holding the CSRF
  state, the link nonce and migration flags. It must outlive the process
  when the host can be suspended during authorization.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dbxauth.models.errors import StorageError

logger = logging.getLogger(__name__)


class Accessibility(str, Enum):
    """When a secure storage entry can be read."""

    WHEN_UNLOCKED = "when_unlocked"
    AFTER_FIRST_UNLOCK = "after_first_unlock"
    # Readable after the first unlock, never backed up or transferred
    AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY = "after_first_unlock_this_device_only"


class SecureStorageBackend(ABC):
    """Abstract secure store of byte values scoped by service name."""

    @abstractmethod
    def add(
        self, service: str, account: str, value: bytes, accessibility: Accessibility
    ) -> bool:
        """Add or replace an entry.

        Returns:
            True if the entry was written
        """

    @abstractmethod
    def get(self, service: str, account: str) -> bytes | None:
        """Return the stored bytes, or None if there is no entry."""

    @abstractmethod
    def accounts(self, service: str) -> list[str]:
        """Return the account names stored under a service."""

    @abstractmethod
    def delete(self, service: str, account: str) -> bool:
        """Delete one entry. Returns False if nothing was deleted."""

    @abstractmethod
    def delete_all(self, service: str) -> bool:
        """Delete every entry of a service. Returns False if nothing was deleted."""

    @abstractmethod
    def update_accessibility(self, service: str, accessibility: Accessibility) -> int:
        """Change the policy of every entry of a service, keeping the values.

        Returns:
            Number of entries updated
        """


@dataclass
class _SecureEntry:
    value: bytes
    accessibility: Accessibility


class MemorySecureStorage(SecureStorageBackend):
    """In-memory secure storage.

    Warning:
        Values are lost when the process exits. Suitable for tests and
        for hosts that provide their own persistence on top.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], _SecureEntry] = {}

    def add(
        self, service: str, account: str, value: bytes, accessibility: Accessibility
    ) -> bool:
        self._entries[(service, account)] = _SecureEntry(value, accessibility)
        return True

    def get(self, service: str, account: str) -> bytes | None:
        entry = self._entries.get((service, account))
        return entry.value if entry else None

    def accessibility_of(self, service: str, account: str) -> Accessibility | None:
        entry = self._entries.get((service, account))
        return entry.accessibility if entry else None

    def accounts(self, service: str) -> list[str]:
        return [account for (svc, account) in self._entries if svc == service]

    def delete(self, service: str, account: str) -> bool:
        return self._entries.pop((service, account), None) is not None

    def delete_all(self, service: str) -> bool:
        keys = [key for key in self._entries if key[0] == service]
        for key in keys:
            del self._entries[key]
        return bool(keys)

    def update_accessibility(self, service: str, accessibility: Accessibility) -> int:
        updated = 0
        for (svc, _), entry in self._entries.items():
            if svc == service:
                entry.accessibility = accessibility
                updated += 1
        return updated


class PreferenceStore(ABC):
    """Abstract string key-value store for small flow state."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""


class MemoryPreferenceStore(PreferenceStore):
    """In-memory preference store."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceStore(PreferenceStore):
    """Preference store persisted as a JSON object in a single file.

    Every write rewrites the file, so state written before the process is
    suspended or restarted is still there when the redirect arrives.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = value
        self._save(values)

    def delete(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._save(values)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read preferences from {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Preferences file {self.path} is not a JSON object")
        return data

    def _save(self, values: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(values), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Failed to write preferences to {self.path}: {e}") from e

        logger.debug(f"Saved {len(values)} preference values to {self.path}")
