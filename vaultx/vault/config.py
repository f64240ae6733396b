"""
Vault Configuration — File locations and envelope version.

Reads optional overrides from environment variables:
    VAULTX_HOME = <directory holding the vault and secret store>
    VAULTX_ENVELOPE_VERSION = <integer, KDF version for new envelopes>

Security Note:
    Configuration never carries secrets; PINs and passwords only ever
    arrive as function arguments.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .crypto import CURRENT_VERSION, KDF_PARAMETERS

logger = logging.getLogger("vaultx.vault")

DEFAULT_DIR_NAME = ".vaultx"
DEFAULT_VAULT_FILE = "vault_v1.enc"
DEFAULT_SECRETS_FILE = "secrets.json"


def default_data_dir() -> Path:
    """Return the per-user application directory (``~/.vaultx``)."""
    return Path(os.path.expanduser("~")) / DEFAULT_DIR_NAME


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    data_dir: Path = Field(default_factory=default_data_dir)
    vault_filename: str = Field(default=DEFAULT_VAULT_FILE, min_length=1)
    secrets_filename: str = Field(default=DEFAULT_SECRETS_FILE, min_length=1)
    envelope_version: int = Field(default=CURRENT_VERSION)

    @field_validator("envelope_version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        """Only versions with registered KDF parameters can be written."""
        if v not in KDF_PARAMETERS:
            raise ValueError(f"Unsupported envelope version: {v}")
        return v

    @field_validator("vault_filename", "secrets_filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """File names must not escape ``data_dir``."""
        if os.sep in v or (os.altsep and os.altsep in v) or v in (".", ".."):
            raise ValueError(f"Invalid file name: {v!r}")
        return v

    @property
    def vault_path(self) -> Path:
        return self.data_dir / self.vault_filename

    @property
    def secrets_path(self) -> Path:
        return self.data_dir / self.secrets_filename

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig from environment overrides.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {}
        home = os.environ.get("VAULTX_HOME")
        if home:
            values["data_dir"] = Path(home).expanduser()
        version = os.environ.get("VAULTX_ENVELOPE_VERSION")
        if version:
            values["envelope_version"] = int(version)
        config = cls(**values)
        logger.debug(
            "Vault config: dir=%s envelope_version=%d",
            config.data_dir, config.envelope_version,
        )
        return config
