"""
Tests for the backup protocol.

Tests cover:
- Export copies the envelope verbatim; master password sealed separately
- Import round trip, wrong passphrase, invalid formats
- Restore clears local secrets before the vault is written
- .vxb file I/O and the external JSON shape
"""
import json

import orjson
import pytest

from vaultx.data import Credential
from vaultx.exceptions import (
    AuthError,
    InvalidBackupFormat,
    VaultIOError,
    WrongPassphrase,
)
from vaultx.vault.backup import (
    BACKUP_VERSION,
    BackupFile,
    export_backup,
    import_backup,
    read_backup,
    restore_backup,
    write_backup,
)
from vaultx.vault.crypto import Envelope, encode, encrypt_text
from vaultx.vault.secrets import MASTER_PASSWORD_KEY, PIN_HASH_KEY, MemorySecretStore
from vaultx.vault.session_vault import VaultSessionManager
from vaultx.vault.store import VaultStore


@pytest.fixture
def envelope():
    return encode(b'{"user":{"phone":""},"passwords":[]}', "1234")


class RecordingSecretStore(MemorySecretStore):
    def __init__(self, events, initial=None):
        super().__init__(initial)
        self.events = events

    def clear_all(self):
        self.events.append("clear_all")
        super().clear_all()

    def set(self, key, value):
        self.events.append(f"set:{key}")
        super().set(key, value)


class RecordingVaultStore(VaultStore):
    def __init__(self, path, events):
        super().__init__(path)
        self.events = events

    def save(self, envelope):
        self.events.append("save")
        super().save(envelope)


class TestExport:

    def test_vault_copied_verbatim(self, envelope):
        backup = export_backup(envelope, None, "backup pass")
        assert backup.version == BACKUP_VERSION
        assert backup.vault == envelope.to_string()
        assert backup.encrypted_master_password is None

    def test_master_password_encrypted(self, envelope):
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")
        assert backup.encrypted_master_password
        assert "CorrectHorse1" not in backup.encrypted_master_password

    def test_json_shape(self, envelope):
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")
        document = json.loads(backup.to_json())
        assert set(document) == {"version", "vault", "encryptedMasterPassword"}
        assert document["version"] == 1

    def test_optional_field_omitted(self, envelope):
        document = json.loads(export_backup(envelope, None, "pass").to_json())
        assert set(document) == {"version", "vault"}

    def test_empty_passphrase(self, envelope):
        with pytest.raises(ValueError):
            export_backup(envelope, "CorrectHorse1", "")


class TestImport:

    def test_round_trip(self, envelope):
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")
        restored = import_backup(BackupFile.from_json(backup.to_json()), "backup pass")
        assert restored.envelope == envelope
        assert restored.master_password == "CorrectHorse1"

    def test_round_trip_without_master_password(self, envelope):
        backup = export_backup(envelope, None, "backup pass")
        restored = import_backup(backup, "anything")
        assert restored.envelope == envelope
        assert restored.master_password is None

    def test_wrong_passphrase(self, envelope):
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")
        with pytest.raises(WrongPassphrase):
            import_backup(backup, "Backup Pass")
        with pytest.raises(WrongPassphrase):
            import_backup(backup, "")

    def test_empty_master_password_rejected(self, envelope):
        backup = BackupFile(
            version=1, vault=envelope.to_string(),
            encrypted_master_password=encrypt_text("", "backup pass"),
        )
        with pytest.raises(WrongPassphrase):
            import_backup(backup, "backup pass")

    def test_garbage_master_password(self, envelope):
        backup = BackupFile(
            version=1, vault=envelope.to_string(), encrypted_master_password="U2FsdGVkX1+garbage",
        )
        with pytest.raises(WrongPassphrase):
            import_backup(backup, "backup pass")

    def test_unknown_version(self, envelope):
        backup = BackupFile(version=2, vault=envelope.to_string())
        with pytest.raises(InvalidBackupFormat):
            import_backup(backup, "pass")

    def test_vault_not_an_envelope(self):
        with pytest.raises(InvalidBackupFormat):
            import_backup(BackupFile(version=1, vault="hello"), "pass")
        with pytest.raises(InvalidBackupFormat):
            import_backup(BackupFile(version=1, vault=""), "pass")

    @pytest.mark.parametrize("document", [
        b"not json",
        b"[]",
        b"{}",
        b'{"version": 1}',
        b'{"vault": "abc"}',
        b'{"version": "1", "vault": "abc"}',
        b'{"version": 1, "vault": 5}',
    ])
    def test_invalid_documents(self, document):
        with pytest.raises(InvalidBackupFormat):
            BackupFile.from_json(document)

    def test_accepts_null_master_password(self, envelope):
        document = orjson.dumps(
            {"version": 1, "vault": envelope.to_string(), "encryptedMasterPassword": None}
        )
        assert BackupFile.from_json(document).encrypted_master_password is None


class TestRestore:

    def test_clear_before_write(self, envelope, tmp_path):
        events = []
        secrets = RecordingSecretStore(events, {PIN_HASH_KEY: "old", "wrap": "old"})
        store = RecordingVaultStore(tmp_path / "vault_v1.enc", events)
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")

        restore_backup(backup, "backup pass", store, secrets)

        assert events == ["clear_all", f"set:{MASTER_PASSWORD_KEY}", "save"]
        assert secrets.keys() == [MASTER_PASSWORD_KEY]
        assert store.load() == envelope

    def test_all_previous_secrets_gone(self, envelope, tmp_path):
        secrets = MemorySecretStore({PIN_HASH_KEY: "old", "wrap": "old"})
        store = VaultStore(tmp_path / "vault_v1.enc")
        restore_backup(export_backup(envelope, None, "pass"), "pass", store, secrets)
        assert not secrets.exists(PIN_HASH_KEY)
        assert not secrets.exists("wrap")
        assert secrets.keys() == []

    def test_wrong_passphrase_touches_nothing(self, envelope, tmp_path):
        events = []
        secrets = RecordingSecretStore(events, {PIN_HASH_KEY: "old"})
        store = RecordingVaultStore(tmp_path / "vault_v1.enc", events)
        backup = export_backup(envelope, "CorrectHorse1", "backup pass")
        with pytest.raises(WrongPassphrase):
            restore_backup(backup, "nope", store, secrets)
        assert events == []
        assert secrets.exists(PIN_HASH_KEY)

    def test_failed_write_keeps_old_vault(self, envelope, tmp_path, monkeypatch):
        store = VaultStore(tmp_path / "vault_v1.enc")
        old = encode(b"old", "1111")
        store.save(old)
        secrets = MemorySecretStore({PIN_HASH_KEY: "old"})

        def broken_save(self, envelope):
            raise VaultIOError("Unable to save vault: disk full")

        monkeypatch.setattr(VaultStore, "save", broken_save)
        with pytest.raises(VaultIOError):
            restore_backup(export_backup(envelope, None, "pass"), "pass", store, secrets)
        assert secrets.keys() == []
        assert store.load() == old


class TestManagerBackup:

    def test_restore_on_new_device(self, tmp_path):
        source = VaultSessionManager(VaultStore(tmp_path / "a.enc"), MemorySecretStore())
        session = source.setup("1111")
        source.add_credential(session, Credential(service="Instagram", password="pw"))
        source.set_master_password("CorrectHorse1")
        backup = source.export_backup("backup pass")

        target_secrets = MemorySecretStore()
        target = VaultSessionManager(VaultStore(tmp_path / "b.enc"), target_secrets)
        old = target.setup("2222")
        target.restore_backup(backup, "backup pass")

        assert old.active is False
        assert target.setup_required() is True
        assert target.master_password() == "CorrectHorse1"
        with pytest.raises(AuthError):
            target.unlock("2222")

        restored = target.unlock("1111")
        assert [c.service for c in restored] == ["Instagram"]
        target.change_secret(restored, "3333")
        assert target.setup_required() is False
        target.lock(restored)
        assert len(target.unlock("3333")) == 1

    def test_export_uses_stored_envelope(self, manager, session, store):
        backup = manager.export_backup("pass")
        assert backup.vault == store.load().to_string()
        assert backup.encrypted_master_password is None


class TestBackupFiles:

    def test_write_and_read(self, envelope, tmp_path):
        backup = export_backup(envelope, "CorrectHorse1", "pass")
        path = write_backup(tmp_path / "vault-2025-01-01", backup)
        assert path.suffix == ".vxb"
        assert read_backup(path) == backup

    def test_utf8_json_on_disk(self, envelope, tmp_path):
        path = write_backup(tmp_path / "b.vxb", export_backup(envelope, None, "pass"))
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["vault"] == envelope.to_string()

    def test_extension_required(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text("{}")
        with pytest.raises(InvalidBackupFormat):
            read_backup(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(VaultIOError):
            read_backup(tmp_path / "missing.vxb")

    def test_envelope_in_backup_still_needs_device_secret(self, envelope):
        restored = import_backup(export_backup(envelope, None, "pass"), "pass")
        assert isinstance(restored.envelope, Envelope)
        assert restored.envelope.to_string() == envelope.to_string()
