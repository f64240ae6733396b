"""
Deterministic password derivation.

A password is computed from ``(service, username, master password)`` and is
never stored: the same inputs produce the same password on any platform,
forever. Changing anything here changes every password users have already
registered with their services.
"""
import hashlib

UPPERCASE = "ABCDEFGHJKLMNPQRSTUVWXYZ"  # no I, O
LOWERCASE = "abcdefghijkmnopqrstuvwxyz"  # no l
DIGITS = "23456789"  # no 0, 1
SYMBOLS = "!@#$%^&*"

# (alphabet, number of characters) in output order
POLICY = (
    (UPPERCASE, 4),
    (LOWERCASE, 4),
    (DIGITS, 3),
    (SYMBOLS, 2),
)

MAX_LENGTH = 16
_SHUFFLE_WINDOW = 4


def _seed(service: str, username: str, master_password: str) -> str:
    service = service.strip().lower()
    username = username.strip().lower()
    return f"{service}:{username}:{master_password}"


def _hex_digest(seed: str) -> str:
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def _pick_characters(digest: str) -> list[str]:
    """Map successive bytes of the hex digest onto the policy alphabets."""
    chars: list[str] = []
    position = 0
    for alphabet, count in POLICY:
        for _ in range(count):
            value = int(digest[position * 2:position * 2 + 2], 16)
            chars.append(alphabet[value % len(alphabet)])
            position += 1
    return chars


def _shuffle(chars: list[str], digest: str) -> list[str]:
    """Fisher-Yates walk driven by overlapping 4-hex-digit windows.

    The window offset is ``(i * 3) % len(digest)``; a window that would run
    past the end of the digest is read short, as a substring would be.
    For a 13 character password over a 64 digit digest that never happens.
    """
    chars = list(chars)
    for i in range(len(chars) - 1, 0, -1):
        offset = (i * 3) % len(digest)
        window = digest[offset:offset + _SHUFFLE_WINDOW]
        j = int(window, 16) % (i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return chars


def derive_password(service: str, username: str, master_password: str) -> str:
    """Derive the password for ``service``/``username``.

    Service and username are trimmed and lowercased; the master password is
    used exactly as given.

    Args:
        service: Service name, e.g. ``"Instagram"``.
        username: Account name on that service.
        master_password: The user's master password.

    Returns:
        A 13 character password: 4 uppercase, 4 lowercase, 3 digits and
        2 symbols, in a hash-determined order.
    """
    digest = _hex_digest(_seed(service, username, master_password))
    chars = _shuffle(_pick_characters(digest), digest)
    return "".join(chars)[:MAX_LENGTH]
