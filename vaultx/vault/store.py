"""
Vault Store — The single on-disk vault file.

The file holds one Envelope in its base64 text form. Writes go to a
temporary file in the same directory which is fsync'ed and then renamed
over the vault, so a crash leaves either the old or the new envelope.
"""
import os
import stat
import logging
import tempfile
from pathlib import Path

from ..exceptions import VaultIOError, VaultNotFound
from .crypto import Envelope

logger = logging.getLogger("vaultx.vault")

_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600


def atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via write-new-then-rename.

    Raises:
        OSError: If any filesystem step fails; the temporary file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, _FILE_MODE)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class VaultStore:
    """Reads and writes the envelope at a fixed path."""

    def __init__(self, path: str | os.PathLike):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """True if a vault file is present. Touches nothing."""
        return self._path.is_file()

    def load(self) -> Envelope:
        """Read and parse the stored envelope.

        Raises:
            VaultNotFound: If there is no vault file.
            DecryptionError: If the file does not hold a well-formed envelope.
            VaultIOError: On any other filesystem failure.
        """
        try:
            text = self._path.read_text(encoding="ascii")
        except FileNotFoundError as err:
            raise VaultNotFound() from err
        except UnicodeDecodeError:
            text = ""  # not base64 at all; parsed (and rejected) below
        except OSError as err:
            logger.error("Error reading vault file %s: %s", self._path, err)
            raise VaultIOError(f"Unable to read vault: {err.strerror}") from err
        return Envelope.from_string(text)

    def save(self, envelope: Envelope) -> None:
        """Atomically replace the vault file with ``envelope``.

        Raises:
            VaultIOError: If the file could not be written. The previous
                vault, if any, is left untouched.
        """
        try:
            atomic_write(self._path, envelope.to_string().encode("ascii"))
        except OSError as err:
            logger.error("Error saving vault file %s: %s", self._path, err)
            raise VaultIOError(f"Unable to save vault: {err.strerror}") from err
        logger.debug("Vault saved: %s (v%d)", self._path, envelope.version)

    def erase(self) -> None:
        """Delete the vault file. A missing file is not an error.

        Raises:
            VaultIOError: If the file exists but cannot be removed.
        """
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as err:
            logger.error("Error erasing vault file %s: %s", self._path, err)
            raise VaultIOError(f"Unable to erase vault: {err.strerror}") from err
        logger.info("Vault erased: %s", self._path)
