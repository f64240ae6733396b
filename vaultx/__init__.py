"""VaultX.

Offline password vault core: encrypted vault envelopes, an explicit
unlock/lock session lifecycle, portable backups and deterministic
per-service passwords.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    AuthError,
    DecryptionError,
    VaultNotFound,
    VaultIOError,
    SessionLocked,
    BackupError,
    InvalidBackupFormat,
    WrongPassphrase,
)
from .data import Credential, UserProfile, VaultData, Session
from .generator import derive_password
from .vault import VaultConfig, VaultSessionManager

__all__ = [
    "__version__",
    "VaultError",
    "AuthError",
    "DecryptionError",
    "VaultNotFound",
    "VaultIOError",
    "SessionLocked",
    "BackupError",
    "InvalidBackupFormat",
    "WrongPassphrase",
    "Credential",
    "UserProfile",
    "VaultData",
    "Session",
    "derive_password",
    "VaultConfig",
    "VaultSessionManager",
]
