"""Exceptions raised by the vault core.

Every failure that crosses the public API is one of these; errors coming
from ``cryptography``, ``argon2``, ``orjson`` or ``pydantic`` are chained
with ``raise ... from err`` and never surface directly.
"""
from typing import Optional


class VaultError(Exception):
    """Base exception for the vault core."""

    def __init__(self, message: str, *, recoverable: Optional[bool] = None):
        super().__init__(message)
        self.recoverable = recoverable


class AuthError(VaultError):
    """Wrong PIN or password. The user may retry."""

    def __init__(self, message: str = "Incorrect PIN or password"):
        super().__init__(message, recoverable=True)


class DecryptionError(VaultError):
    """Envelope could not be decrypted: wrong key, corrupted or tampered."""

    def __init__(self, message: str = "Unable to decrypt envelope"):
        super().__init__(message, recoverable=False)


class VaultNotFound(VaultError):
    """No vault file exists yet (first run)."""

    def __init__(self, message: str = "No vault found"):
        super().__init__(message, recoverable=True)


class VaultIOError(VaultError):
    """Filesystem failure while reading or writing vault state."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class SessionLocked(VaultError):
    """Raised when a locked (destroyed) session is used."""

    def __init__(self, message: str = "Session is locked"):
        super().__init__(message, recoverable=True)


class BackupError(VaultError):
    """Base exception for backup import/export failures."""


class InvalidBackupFormat(BackupError):
    """Backup is missing required fields or has an unrecognized version."""

    def __init__(self, message: str = "Not a valid VaultX backup"):
        super().__init__(message, recoverable=False)


class WrongPassphrase(BackupError):
    """The backup passphrase did not decrypt the stored master password."""

    def __init__(self, message: str = "Incorrect backup password"):
        super().__init__(message, recoverable=True)
