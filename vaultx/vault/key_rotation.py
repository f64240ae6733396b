"""
Vault Key Rotation — Re-encrypt a vault under a new secret or KDF version.

Used when the user changes their PIN/password and when an envelope written
with an older KDF version is unlocked and upgraded to the configured one.
Every rotation draws a fresh salt, so the old key never decrypts the result.

Security Note:
    Plaintext exists in memory only for the duration of the re-encryption.
    Never log plaintext or key material.
"""
import logging

from .crypto import CURRENT_VERSION, Envelope, SessionKey, decode, encode

logger = logging.getLogger("vaultx.vault")


def rotate_session_key(
    plaintext: bytes,
    new_secret: str,
    version: int = CURRENT_VERSION,
) -> tuple[Envelope, SessionKey]:
    """Seal ``plaintext`` under a key freshly derived from ``new_secret``.

    Args:
        plaintext: Serialized vault data.
        new_secret: Secret the vault will be unlocked with from now on.
        version: Envelope/KDF version to write.

    Returns:
        The new envelope and the session key that opens it.
    """
    key = SessionKey.derive(new_secret, version=version)
    envelope = encode(plaintext, key)
    logger.info("Vault key rotated (v%d)", version)
    return envelope, key


def rekey_envelope(
    envelope: Envelope,
    old_secret: str,
    new_secret: str,
    version: int = CURRENT_VERSION,
) -> Envelope:
    """Re-encrypt a stored envelope without going through a session.

    Raises:
        DecryptionError: If ``old_secret`` does not open ``envelope``.
    """
    if envelope.version != version:
        logger.info(
            "Upgrading envelope from v%d to v%d", envelope.version, version,
        )
    plaintext = decode(envelope, old_secret)
    new_envelope, key = rotate_session_key(plaintext, new_secret, version)
    key.wipe()
    return new_envelope
