"""Vault — Encrypted credential storage for a single device.

Security Note (Threat Model):
    The unlocked vault and its derived key live in process memory for the
    lifetime of a Session. ``lock()`` overwrites the key bytes and drops the
    plaintext, but Python may have copied either elsewhere in the heap; a
    memory dump of a running, unlocked process can expose them. Losing the
    device secret loses the vault: there is no recovery path by design.
"""

from .crypto import Envelope, SessionKey, derive_key, encode, decode
from .config import VaultConfig
from .store import VaultStore
from .secrets import SecretStore, MemorySecretStore, FileSecretStore
from .backup import (
    BackupFile,
    RestoredBackup,
    export_backup,
    import_backup,
    restore_backup,
    read_backup,
    write_backup,
)
from .key_rotation import rekey_envelope
from .session_vault import VaultSessionManager

__all__ = [
    "Envelope",
    "SessionKey",
    "derive_key",
    "encode",
    "decode",
    "VaultConfig",
    "VaultStore",
    "SecretStore",
    "MemorySecretStore",
    "FileSecretStore",
    "BackupFile",
    "RestoredBackup",
    "export_backup",
    "import_backup",
    "restore_backup",
    "read_backup",
    "write_backup",
    "rekey_envelope",
    "VaultSessionManager",
]
