"""Shared fixtures for the vault test-suite."""
import pytest
from argon2 import PasswordHasher

from vaultx.vault import crypto, secrets
from vaultx.vault.secrets import MemorySecretStore
from vaultx.vault.session_vault import VaultSessionManager
from vaultx.vault.store import VaultStore


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Swap the production KDF costs for cheap ones; formats are unchanged."""
    monkeypatch.setitem(
        crypto.KDF_PARAMETERS, 1, {"algorithm": "pbkdf2-sha256", "iterations": 1000},
    )
    monkeypatch.setitem(
        crypto.KDF_PARAMETERS, 2,
        {"algorithm": "argon2id", "time_cost": 1, "memory_cost": 8, "parallelism": 1},
    )
    monkeypatch.setattr(
        secrets, "_hasher", PasswordHasher(time_cost=1, memory_cost=8, parallelism=1),
    )


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "vault_v1.enc"


@pytest.fixture
def store(vault_path):
    return VaultStore(vault_path)


@pytest.fixture
def secret_store():
    return MemorySecretStore()


@pytest.fixture
def manager(store, secret_store):
    return VaultSessionManager(store, secret_store)


@pytest.fixture
def session(manager):
    """A freshly created, unlocked vault protected by PIN 1234."""
    return manager.setup("1234", phone="+15550100")
