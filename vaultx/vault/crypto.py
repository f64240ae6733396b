"""
Vault Crypto Core — Key derivation, envelope encryption and serialization.

Envelope layout (binary, then base64 for storage):
    [version 2B uint16 BE][salt 16B][nonce 12B][AES-256-GCM ciphertext + tag 16B]

The 30-byte header is authenticated as GCM associated data, so flipping any
bit of the envelope makes decryption fail. ``version`` selects the KDF used to
turn a user secret plus ``salt`` into the AES key (see ``KDF_PARAMETERS``).

Security Note:
    Never log plaintext, ciphertext or key material. Nonces are random 96-bit
    and drawn fresh on every encode.
"""
import os
import struct
import base64
import binascii
import logging
from typing import Any, Union

import orjson
from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict

from ..exceptions import DecryptionError, SessionLocked

logger = logging.getLogger("vaultx.vault")

VERSION_SIZE = 2  # uint16 big-endian
SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
HEADER_SIZE = VERSION_SIZE + SALT_SIZE + NONCE_SIZE

# Fixed per version; changing an existing entry makes old vaults unreadable.
KDF_PARAMETERS: dict[int, dict[str, Any]] = {
    1: {"algorithm": "pbkdf2-sha256", "iterations": 600_000},
    2: {
        "algorithm": "argon2id",
        "time_cost": 3,
        "memory_cost": 65536,  # KiB
        "parallelism": 4,
    },
}
CURRENT_VERSION = 2


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(secret: str, salt: bytes, version: int = CURRENT_VERSION) -> bytes:
    """Stretch a user secret into a 32-byte key with the KDF of ``version``.

    Args:
        secret: PIN, password or backup passphrase.
        salt: Random salt stored alongside the ciphertext.
        version: Envelope version selecting the KDF parameters.

    Returns:
        32-byte derived key.

    Raises:
        DecryptionError: If ``version`` has no registered KDF.
    """
    params = KDF_PARAMETERS.get(version)
    if params is None:
        raise DecryptionError(f"Unsupported envelope version: {version}")
    data = secret.encode("utf-8")
    if params["algorithm"] == "pbkdf2-sha256":
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=params["iterations"],
        )
        return kdf.derive(data)
    try:
        return hash_secret_raw(
            secret=data,
            salt=salt,
            time_cost=params["time_cost"],
            memory_cost=params["memory_cost"],
            parallelism=params["parallelism"],
            hash_len=KEY_LENGTH,
            type=Type.ID,
        )
    except HashingError as err:
        raise DecryptionError("Key derivation failed") from err


class SessionKey:
    """A derived key held in memory for the lifetime of an unlocked session.

    Remembers the salt and envelope version it was derived with, so that
    re-encrypting the vault keeps it readable with the same secret.
    ``wipe()`` overwrites the key bytes; any later use raises SessionLocked.
    """

    __slots__ = ("_material", "_wiped", "salt", "version")

    def __init__(self, material: bytes, salt: bytes, version: int = CURRENT_VERSION):
        if len(material) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes")
        self._material = bytearray(material)
        self._wiped = False
        self.salt = bytes(salt)
        self.version = version

    @classmethod
    def derive(
        cls,
        secret: str,
        salt: bytes | None = None,
        version: int = CURRENT_VERSION,
    ) -> "SessionKey":
        """Derive a key from ``secret``; a fresh salt is drawn when none is given."""
        if salt is None:
            salt = os.urandom(SALT_SIZE)
        return cls(derive_key(secret, salt, version), salt, version)

    @property
    def material(self) -> bytes:
        if self._wiped:
            raise SessionLocked("Session key has been wiped")
        return bytes(self._material)

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        for i in range(len(self._material)):
            self._material[i] = 0
        self._wiped = True

    def __repr__(self) -> str:
        state = "wiped" if self.wiped else "live"
        return f"<SessionKey v{self.version} {state}>"


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class Envelope(BaseModel):
    """The encrypted, persisted form of a payload."""

    model_config = ConfigDict(frozen=True)

    version: int
    salt: bytes
    nonce: bytes
    ciphertext: bytes  # includes the trailing GCM tag

    @property
    def header(self) -> bytes:
        return struct.pack("!H", self.version) + self.salt + self.nonce

    @property
    def tag(self) -> bytes:
        return self.ciphertext[-TAG_SIZE:]

    def to_bytes(self) -> bytes:
        return self.header + self.ciphertext

    def to_string(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Envelope":
        """Split raw envelope bytes into their fields.

        Raises:
            DecryptionError: If ``raw`` is too short to be an envelope.
        """
        _min = HEADER_SIZE + TAG_SIZE
        if len(raw) < _min:
            logger.debug(
                "Envelope too short: %d bytes (minimum %d)", len(raw), _min,
            )
            raise DecryptionError()
        version = struct.unpack("!H", raw[:VERSION_SIZE])[0]
        salt = raw[VERSION_SIZE:VERSION_SIZE + SALT_SIZE]
        nonce = raw[VERSION_SIZE + SALT_SIZE:HEADER_SIZE]
        return cls(
            version=version, salt=salt, nonce=nonce, ciphertext=raw[HEADER_SIZE:],
        )

    @classmethod
    def from_string(cls, text: str) -> "Envelope":
        """Parse the base64 text form. Only canonical base64 is accepted.

        Raises:
            DecryptionError: On invalid base64 or a malformed envelope.
        """
        try:
            raw = base64.b64decode(text.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as err:
            logger.debug("Envelope is not valid base64")
            raise DecryptionError() from err
        if base64.b64encode(raw).decode("ascii") != text:
            logger.debug("Envelope base64 is not canonical")
            raise DecryptionError()
        return cls.from_bytes(raw)


KeyLike = Union[SessionKey, str]


def _resolve_key(key: KeyLike, salt: bytes, version: int) -> bytes:
    if isinstance(key, SessionKey):
        if key.salt != salt or key.version != version:
            raise DecryptionError()
        return key.material
    return derive_key(key, salt, version)


def encode(plaintext: bytes, key: KeyLike, version: int | None = None) -> Envelope:
    """Encrypt ``plaintext`` into a new Envelope.

    With a ``SessionKey`` the envelope records that key's salt and version;
    with a passphrase a fresh salt is drawn and ``version`` (default: current)
    picks the KDF. The nonce is always fresh, so two calls never produce the
    same envelope.

    Args:
        plaintext: Data to encrypt.
        key: Session key or passphrase.
        version: KDF version when ``key`` is a passphrase.

    Returns:
        The sealed Envelope.
    """
    if isinstance(key, SessionKey):
        salt, version = key.salt, key.version
        material = key.material
    else:
        version = CURRENT_VERSION if version is None else version
        salt = os.urandom(SALT_SIZE)
        material = derive_key(key, salt, version)
    nonce = os.urandom(NONCE_SIZE)
    header = struct.pack("!H", version) + salt + nonce
    ct = AESGCM(material).encrypt(nonce, plaintext, header)
    return Envelope(version=version, salt=salt, nonce=nonce, ciphertext=ct)


def decode(envelope: Envelope, key: KeyLike) -> bytes:
    """Decrypt an Envelope.

    Wrong key, tampered data and unknown versions all raise the same
    DecryptionError; the reason is only logged.

    Args:
        envelope: Envelope to open.
        key: Session key or passphrase.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        DecryptionError: If the envelope cannot be authenticated.
    """
    if envelope.version not in KDF_PARAMETERS:
        logger.debug("Unknown envelope version %d", envelope.version)
        raise DecryptionError()
    material = _resolve_key(key, envelope.salt, envelope.version)
    try:
        return AESGCM(material).decrypt(
            envelope.nonce, envelope.ciphertext, envelope.header,
        )
    except InvalidTag as err:
        logger.debug("Envelope v%d failed authentication", envelope.version)
        raise DecryptionError() from err


# ---------------------------------------------------------------------------
# Passphrase helpers (text in, text out)
# ---------------------------------------------------------------------------

def encrypt_text(text: str, passphrase: str) -> str:
    """Encrypt a short string under a passphrase; returns the envelope text."""
    return encode(text.encode("utf-8"), passphrase).to_string()


def decrypt_text(token: str, passphrase: str) -> str:
    """Reverse of ``encrypt_text``.

    Raises:
        DecryptionError: On a wrong passphrase or corrupted token.
    """
    plaintext = decode(Envelope.from_string(token), passphrase)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError() from err


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a JSON-compatible value to bytes for encryption."""
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Parse bytes produced by ``serialize_value``.

    Raises:
        DecryptionError: If the bytes are not valid JSON.
    """
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise DecryptionError("Decrypted payload is not valid JSON") from err
