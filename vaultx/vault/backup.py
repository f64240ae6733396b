"""
Vault Backup — Portable ``.vxb`` export and restore.

A backup is UTF-8 JSON::

    {"version": 1, "vault": "<envelope text>", "encryptedMasterPassword": "<...>"}

``vault`` is the stored envelope copied verbatim; it stays protected by the
device secret it was written with. ``encryptedMasterPassword`` (optional) is
the master password sealed under the backup passphrase, so derived passwords
can be regenerated on a new device.

Restoring clears every local secret *before* the new vault is written, so a
failed restore never leaves the old PIN pointing at a replaced vault.

Security Note:
    Never log passphrases, the master password or envelope contents.
"""
import os
import logging
from pathlib import Path
from typing import Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import (
    DecryptionError,
    InvalidBackupFormat,
    VaultIOError,
    WrongPassphrase,
)
from .crypto import Envelope, decrypt_text, encrypt_text
from .secrets import MASTER_PASSWORD_KEY, SecretStore
from .store import VaultStore, atomic_write

logger = logging.getLogger("vaultx.vault")

BACKUP_VERSION = 1
SUPPORTED_BACKUP_VERSIONS = frozenset({1})
BACKUP_EXTENSION = ".vxb"


class BackupFile(BaseModel):
    """The JSON document written to a ``.vxb`` file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int
    vault: str
    encrypted_master_password: Optional[str] = Field(
        default=None, alias="encryptedMasterPassword",
    )

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(by_alias=True, exclude_none=True))

    @classmethod
    def from_json(cls, data: bytes | str) -> "BackupFile":
        """Parse backup JSON.

        Raises:
            InvalidBackupFormat: On malformed JSON or missing/ill-typed fields.
        """
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise InvalidBackupFormat() from err
        if not isinstance(parsed, dict):
            raise InvalidBackupFormat()
        try:
            return cls.model_validate(parsed, strict=True)
        except ValidationError as err:
            raise InvalidBackupFormat() from err


class RestoredBackup(BaseModel):
    """What a backup yields once validated and decrypted."""

    model_config = ConfigDict(frozen=True)

    envelope: Envelope
    master_password: Optional[str] = None


def export_backup(
    envelope: Envelope,
    master_password: str | None,
    backup_passphrase: str,
) -> BackupFile:
    """Build a backup from the stored envelope.

    Args:
        envelope: Current vault envelope, copied without re-encryption.
        master_password: Master password to carry along, if configured.
        backup_passphrase: Passphrase protecting the master password.

    Returns:
        The BackupFile document.

    Raises:
        ValueError: If ``backup_passphrase`` is empty.
    """
    if not backup_passphrase:
        raise ValueError("Backup passphrase cannot be empty")
    encrypted = None
    if master_password:
        encrypted = encrypt_text(master_password, backup_passphrase)
    logger.info(
        "Backup exported (vault v%d, master password: %s)",
        envelope.version, "yes" if encrypted else "no",
    )
    return BackupFile(
        version=BACKUP_VERSION,
        vault=envelope.to_string(),
        encrypted_master_password=encrypted,
    )


def import_backup(backup: BackupFile, backup_passphrase: str) -> RestoredBackup:
    """Validate a backup and recover its envelope and master password.

    Raises:
        InvalidBackupFormat: Unknown version, empty or malformed ``vault``.
        WrongPassphrase: The master password did not decrypt to a non-empty
            string with ``backup_passphrase``.
    """
    if backup.version not in SUPPORTED_BACKUP_VERSIONS:
        logger.warning("Rejected backup with version %s", backup.version)
        raise InvalidBackupFormat(f"Unsupported backup version: {backup.version}")
    if not backup.vault:
        raise InvalidBackupFormat()
    try:
        envelope = Envelope.from_string(backup.vault)
    except DecryptionError as err:
        logger.warning("Rejected backup: vault field is not an envelope")
        raise InvalidBackupFormat() from err

    master_password = None
    if backup.encrypted_master_password:
        if not backup_passphrase:
            raise WrongPassphrase()
        try:
            master_password = decrypt_text(
                backup.encrypted_master_password, backup_passphrase,
            )
        except DecryptionError as err:
            logger.warning("Backup master password did not decrypt")
            raise WrongPassphrase() from err
        if not master_password:
            raise WrongPassphrase()
    return RestoredBackup(envelope=envelope, master_password=master_password)


def restore_backup(
    backup: BackupFile,
    backup_passphrase: str,
    store: VaultStore,
    secrets: SecretStore,
) -> RestoredBackup:
    """Import a backup and install it as the local vault.

    Order: validate and decrypt, clear all local secrets, store the master
    password, write the vault. The caller must lock any open session first
    and run a fresh PIN setup afterwards.

    Raises:
        InvalidBackupFormat, WrongPassphrase: Nothing local was changed.
        VaultIOError: Secrets may be cleared; the previous vault file is
            left intact.
    """
    restored = import_backup(backup, backup_passphrase)
    secrets.clear_all()
    if restored.master_password:
        secrets.set(MASTER_PASSWORD_KEY, restored.master_password)
    store.save(restored.envelope)
    logger.info("Backup restored to %s", store.path)
    return restored


def backup_path(path: str | os.PathLike) -> Path:
    """``path`` with the ``.vxb`` extension appended when missing."""
    path = Path(path)
    if path.suffix.lower() != BACKUP_EXTENSION:
        path = path.with_name(path.name + BACKUP_EXTENSION)
    return path


def write_backup(path: str | os.PathLike, backup: BackupFile) -> Path:
    """Write ``backup`` to ``path`` (``.vxb`` appended if missing).

    Raises:
        VaultIOError: If the file could not be written.
    """
    target = backup_path(path)
    try:
        atomic_write(target, backup.to_json())
    except OSError as err:
        logger.error("Error writing backup %s: %s", target, err)
        raise VaultIOError(f"Unable to write backup: {err.strerror}") from err
    return target


def read_backup(path: str | os.PathLike) -> BackupFile:
    """Read and parse a ``.vxb`` file.

    Raises:
        InvalidBackupFormat: Wrong extension or malformed content.
        VaultIOError: If the file could not be read.
    """
    path = Path(path)
    if path.suffix.lower() != BACKUP_EXTENSION:
        raise InvalidBackupFormat("Please select a VaultX backup file (.vxb)")
    try:
        data = path.read_bytes()
    except OSError as err:
        logger.error("Error reading backup %s: %s", path, err)
        raise VaultIOError(f"Unable to read backup: {err.strerror}") from err
    return BackupFile.from_json(data)
