"""
VaultSessionManager — Unlock lifecycle and every write to the vault.

Provides the public API for the vault:
- ``setup(secret, phone)`` — create the first vault and record the PIN hash
- ``unlock(secret)`` / ``lock(session)`` — open and destroy a Session
- ``add_credential`` / ``update_credential`` / ``delete_credential`` /
  ``update_profile`` — mutate, re-encrypt and atomically save
- ``change_secret(session, new_secret)`` — re-key the vault
- ``reset()`` — forget every local secret and erase the vault
- ``export_backup`` / ``restore_backup`` — portable .vxb backups

Security Note:
    Never log plaintext, secrets or key material. Only log envelope versions,
    counts and operations. At most one Session is unlocked at a time, and
    all writes are serialized behind a single lock.
"""
import logging
import threading
from collections.abc import Callable

from pydantic import ValidationError

from ..data import Credential, Session, UserProfile, VaultData
from ..exceptions import AuthError, DecryptionError, SessionLocked, VaultError
from ..generator import derive_password
from .backup import BackupFile, RestoredBackup, export_backup, restore_backup
from .config import VaultConfig
from .crypto import (
    CURRENT_VERSION,
    Envelope,
    SessionKey,
    decode,
    encode,
    serialize_value,
    deserialize_value,
)
from .key_rotation import rotate_session_key
from .secrets import (
    MASTER_PASSWORD_KEY,
    PIN_HASH_KEY,
    FileSecretStore,
    SecretStore,
    check_pin,
    store_pin,
)
from .store import VaultStore

logger = logging.getLogger("vaultx.vault")


class VaultSessionManager:
    """Owns the vault file, the secret store and the single unlocked Session.

    Every operation that writes runs a full serialize-encrypt-save cycle
    under ``self._lock``; the Session only sees new data once the envelope
    is on disk.
    """

    def __init__(
        self,
        store: VaultStore,
        secrets: SecretStore,
        envelope_version: int = CURRENT_VERSION,
    ):
        self._store = store
        self._secrets = secrets
        self._version = envelope_version
        self._lock = threading.RLock()
        self._session: Session | None = None

    @classmethod
    def from_config(cls, config: VaultConfig | None = None) -> "VaultSessionManager":
        """Build a manager with file-backed vault and secret store."""
        config = config or VaultConfig.from_env()
        return cls(
            store=VaultStore(config.vault_path),
            secrets=FileSecretStore(config.secrets_path),
            envelope_version=config.envelope_version,
        )

    @property
    def store(self) -> VaultStore:
        return self._store

    @property
    def secrets(self) -> SecretStore:
        return self._secrets

    @property
    def session(self) -> Session | None:
        """The unlocked session, if any."""
        if self._session is not None and not self._session.active:
            self._session = None
        return self._session

    # ------------------------------------------------------------------
    # State checks
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        """True when a vault file is present (unlock flow vs. first run)."""
        return self._store.exists()

    def setup_required(self) -> bool:
        """True when a vault exists but no device secret is registered.

        This is the state right after a backup restore: the caller must run
        a fresh PIN setup (unlock, then ``change_secret``).
        """
        return self._store.exists() and not self._secrets.exists(PIN_HASH_KEY)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _activate(self, session: Session) -> Session:
        if self._session is not None and self._session is not session:
            logger.info("Locking previous session %s", self._session.session_id)
            self._session.close()
        self._session = session
        return session

    def _require_active(self, session: Session) -> None:
        if session is not self._session or not session.active:
            raise SessionLocked()

    def _commit(
        self,
        session: Session,
        data: VaultData,
        key: SessionKey | None = None,
        envelope: Envelope | None = None,
    ) -> None:
        if envelope is None:
            envelope = encode(serialize_value(data.to_payload()), key or session.key)
        self._store.save(envelope)
        session._replace(data, key)

    def _mutate(self, session: Session, change: Callable[[VaultData], object]) -> object:
        with self._lock:
            self._require_active(session)
            data = session.data
            result = change(data)
            try:
                data = VaultData.model_validate(data.model_dump())
            except ValidationError as err:
                raise ValueError("Change leaves the vault in an invalid state") from err
            self._commit(session, data)
            logger.debug("Vault updated: %d credential(s)", len(data.passwords))
            return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup(self, secret: str, phone: str = "") -> Session:
        """Create a new, empty vault protected by ``secret``.

        Raises:
            VaultError: If a vault already exists.
            ValueError: If ``secret`` is empty.
            VaultIOError: If the vault could not be written.
        """
        if not secret:
            raise ValueError("Secret cannot be empty")
        with self._lock:
            if self._store.exists():
                raise VaultError("A vault already exists", recoverable=False)
            data = VaultData(user=UserProfile(phone=phone))
            key = SessionKey.derive(secret, version=self._version)
            self._store.save(encode(serialize_value(data.to_payload()), key))
            store_pin(self._secrets, secret)
            logger.info("Vault created at %s (v%d)", self._store.path, self._version)
            return self._activate(Session(data, key))

    def unlock(self, secret: str) -> Session:
        """Derive the key from ``secret`` and open the stored vault.

        An envelope written with an older KDF version is re-keyed in place.

        Raises:
            VaultNotFound: If there is no vault yet.
            AuthError: On a wrong secret or an unreadable vault file.
            VaultIOError: On filesystem failures.
        """
        with self._lock:
            try:
                envelope = self._store.load()
            except DecryptionError as err:
                logger.warning("Unlock failed: vault file is malformed")
                raise AuthError() from err
            if check_pin(self._secrets, secret) is False:
                logger.warning("Unlock failed: PIN mismatch")
                raise AuthError()
            try:
                key = SessionKey.derive(secret, envelope.salt, envelope.version)
            except DecryptionError as err:
                logger.warning("Unlock failed for vault v%d", envelope.version)
                raise AuthError() from err
            try:
                try:
                    plaintext = decode(envelope, key)
                except DecryptionError as err:
                    logger.warning("Unlock failed for vault v%d", envelope.version)
                    raise AuthError() from err
                try:
                    data = VaultData.model_validate(deserialize_value(plaintext))
                except ValidationError as err:
                    raise DecryptionError("Vault contents are not recognized") from err
                if envelope.version < self._version:
                    key = self._upgrade(plaintext, secret, envelope.version, key)
            except BaseException:
                key.wipe()
                raise
            session = self._activate(Session(data, key))
            logger.info(
                "Vault unlocked: session=%s credentials=%d",
                session.session_id, len(data.passwords),
            )
            return session

    def _upgrade(
        self, plaintext: bytes, secret: str, old_version: int, old_key: SessionKey,
    ) -> SessionKey:
        envelope, key = rotate_session_key(plaintext, secret, self._version)
        try:
            self._store.save(envelope)
        except BaseException:
            key.wipe()
            raise
        old_key.wipe()
        logger.info("Vault upgraded from v%d to v%d", old_version, self._version)
        return key

    def lock(self, session: Session | None = None) -> None:
        """Destroy ``session`` (default: the active one). Safe to call twice."""
        with self._lock:
            if session is None:
                session = self._session
            if session is None:
                return
            session.close()
            if session is self._session:
                self._session = None
            logger.info("Vault locked: session=%s", session.session_id)

    def change_secret(self, session: Session, new_secret: str) -> None:
        """Re-encrypt the vault under ``new_secret`` and register its PIN hash."""
        if not new_secret:
            raise ValueError("Secret cannot be empty")
        with self._lock:
            self._require_active(session)
            data = session.data
            envelope, key = rotate_session_key(
                serialize_value(data.to_payload()), new_secret, self._version,
            )
            self._commit(session, data, key, envelope)
            store_pin(self._secrets, new_secret)

    def reset(self) -> None:
        """Lock, forget every local secret, then erase the vault file."""
        with self._lock:
            self.lock()
            self._secrets.clear_all()
            self._store.erase()
            logger.info("Vault reset")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_credential(self, session: Session, credential: Credential) -> int:
        """Append a credential; returns its index."""
        def change(data: VaultData) -> int:
            data.passwords.append(credential.model_copy())
            return len(data.passwords) - 1
        return self._mutate(session, change)

    def update_credential(self, session: Session, index: int, credential: Credential) -> None:
        """Replace the credential at ``index``.

        Raises:
            IndexError: If ``index`` is out of range.
        """
        def change(data: VaultData) -> None:
            if not 0 <= index < len(data.passwords):
                raise IndexError(f"No credential at index {index}")
            data.passwords[index] = credential.model_copy()
        self._mutate(session, change)

    def delete_credential(self, session: Session, index: int) -> Credential:
        """Remove and return the credential at ``index``.

        Raises:
            IndexError: If ``index`` is out of range.
        """
        def change(data: VaultData) -> Credential:
            if not 0 <= index < len(data.passwords):
                raise IndexError(f"No credential at index {index}")
            return data.passwords.pop(index)
        return self._mutate(session, change)

    def update_profile(self, session: Session, phone: str) -> None:
        def change(data: VaultData) -> None:
            data.user.phone = phone
        self._mutate(session, change)

    # ------------------------------------------------------------------
    # Master password
    # ------------------------------------------------------------------

    def master_password(self) -> str | None:
        return self._secrets.get(MASTER_PASSWORD_KEY)

    def set_master_password(self, password: str) -> None:
        if not password:
            raise ValueError("Master password cannot be empty")
        self._secrets.set(MASTER_PASSWORD_KEY, password)
        logger.info("Master password configured")

    def clear_master_password(self) -> None:
        self._secrets.delete(MASTER_PASSWORD_KEY)

    def derive_for(self, service: str, username: str) -> str:
        """Deterministic password for ``service``/``username``.

        Raises:
            VaultError: If no master password is configured.
        """
        master = self.master_password()
        if not master:
            raise VaultError("No master password configured", recoverable=True)
        return derive_password(service, username, master)

    def current_envelope(self) -> Envelope:
        """The stored envelope, as exported into backups."""
        return self._store.load()

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def export_backup(self, backup_passphrase: str) -> BackupFile:
        """Backup of the stored envelope plus the configured master password."""
        with self._lock:
            return export_backup(
                self._store.load(), self.master_password(), backup_passphrase,
            )

    def restore_backup(self, backup: BackupFile, backup_passphrase: str) -> RestoredBackup:
        """Replace the local vault with a backup.

        Locks the open session, then clears local secrets before writing the
        vault. Afterwards ``setup_required()`` is true.
        """
        with self._lock:
            self.lock()
            return restore_backup(
                backup, backup_passphrase, self._store, self._secrets,
            )
