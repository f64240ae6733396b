"""
Local secret store — small device secrets kept outside the vault file.

Holds the device PIN hash and the master password under fixed keys. The
host platform normally provides the real store (OS keychain); the core only
depends on the ``SecretStore`` interface. ``MemorySecretStore`` and
``FileSecretStore`` are provided for tests and desktop hosts.
"""
import os
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import orjson
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from ..exceptions import VaultIOError
from .store import atomic_write

logger = logging.getLogger("vaultx.vault")

MASTER_PASSWORD_KEY = "master_password_v1"
PIN_HASH_KEY = "pin_hash_v1"

_hasher = PasswordHasher()


class SecretStore(ABC):
    """Key/value store for small secrets, keyed by fixed string identifiers."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def clear_all(self) -> None:
        """Remove every secret."""

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class MemorySecretStore(SecretStore):
    """Process-local store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def exists(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear_all(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data.keys())


class FileSecretStore(SecretStore):
    """JSON file readable by the owner only, rewritten atomically on change."""

    def __init__(self, path: str | os.PathLike):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as err:
            raise VaultIOError(f"Unable to read secret store: {err.strerror}") from err
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise VaultIOError("Secret store is corrupted") from err
        if not isinstance(data, dict):
            raise VaultIOError("Secret store is corrupted")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            atomic_write(self._path, orjson.dumps(data))
        except OSError as err:
            raise VaultIOError(f"Unable to write secret store: {err.strerror}") from err

    def exists(self, key: str) -> bool:
        return key in self._read()

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def clear_all(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as err:
            raise VaultIOError(f"Unable to clear secret store: {err.strerror}") from err

    def keys(self) -> list[str]:
        return list(self._read().keys())


# ---------------------------------------------------------------------------
# PIN hash helpers
# ---------------------------------------------------------------------------

def store_pin(store: SecretStore, pin: str) -> None:
    """Record an Argon2 hash of the device secret."""
    store.set(PIN_HASH_KEY, _hasher.hash(pin))


def check_pin(store: SecretStore, pin: str) -> bool | None:
    """Compare ``pin`` against the stored hash.

    Returns:
        True/False for match/mismatch, None when no PIN hash is configured.
    """
    stored = store.get(PIN_HASH_KEY)
    if stored is None:
        return None
    try:
        return _hasher.verify(stored, pin)
    except (VerificationError, InvalidHashError):
        return False
