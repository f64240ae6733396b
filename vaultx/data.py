from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Optional
from datetime import datetime, timezone
from collections.abc import Iterator

from pydantic import BaseModel, Field, field_validator

from .exceptions import SessionLocked

if TYPE_CHECKING:
    from .vault.crypto import SessionKey


class Credential(BaseModel):
    """A stored login."""

    service: str = Field(min_length=1)
    username: str = ""
    password: str
    notes: Optional[str] = None
    category: Optional[str] = None

    @field_validator("service")
    @classmethod
    def validate_service(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("service cannot be blank")
        return v


class UserProfile(BaseModel):
    phone: str = ""


class VaultData(BaseModel):
    """Plaintext vault contents. Only ever lives inside an unlocked Session."""

    user: UserProfile = Field(default_factory=UserProfile)
    passwords: list[Credential] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict; optional credential fields are omitted when unset."""
        return self.model_dump(exclude_none=True)


class Session:
    """Unlocked view of the vault.

    Owns the plaintext VaultData and the SessionKey. ``close()`` wipes the
    key and drops the data; after that every accessor raises SessionLocked
    instead of returning stale data.
    """

    def __init__(self, data: VaultData, key: SessionKey) -> None:
        self._data: Optional[VaultData] = data
        self._key: Optional[SessionKey] = key
        self._id_ = uuid.uuid4().hex
        self.__created__ = datetime.now(timezone.utc)
        self._created = int(self.__created__.timestamp())

    def __repr__(self) -> str:
        if not self.active:
            return f'<VaultX-Session [{self._id_}] locked>'
        return (
            f'<VaultX-Session [{self._id_}, created:{self._created}] '
            f'credentials={len(self._data.passwords)}>'
        )

    # --- Properties ---

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def logon_time(self) -> datetime:
        return self.__created__

    @property
    def created(self) -> int:
        return self._created

    @property
    def active(self) -> bool:
        return self._data is not None and self._key is not None

    @property
    def data(self) -> VaultData:
        """A copy of the vault contents; edit through the session manager."""
        return self._require_data().model_copy(deep=True)

    @property
    def key(self) -> SessionKey:
        if self._key is None:
            raise SessionLocked()
        return self._key

    @property
    def user(self) -> UserProfile:
        return self._require_data().user.model_copy()

    @property
    def empty(self) -> bool:
        return not self._require_data().passwords

    def credentials(self) -> list[Credential]:
        return [c.model_copy() for c in self._require_data().passwords]

    def find(self, query: str) -> list[tuple[int, Credential]]:
        """Case-insensitive search over service and username.

        Returns:
            ``(index, credential)`` pairs; the index is what the session
            manager's update/delete calls expect.
        """
        needle = query.strip().lower()
        return [
            (idx, cred.model_copy())
            for idx, cred in enumerate(self._require_data().passwords)
            if needle in cred.service.lower() or needle in cred.username.lower()
        ]

    # --- Lifecycle ---

    def _require_data(self) -> VaultData:
        if self._data is None:
            raise SessionLocked()
        return self._data

    def _replace(self, data: VaultData, key: Optional[SessionKey] = None) -> None:
        """Install new contents after they were persisted."""
        self._require_data()
        self._data = data
        if key is not None and key is not self._key:
            self._key.wipe()
            self._key = key

    def close(self) -> None:
        """Wipe the key and drop the plaintext. Safe to call twice."""
        if self._key is not None:
            self._key.wipe()
        self._key = None
        self._data = None

    # --- Magic Methods ---

    def __bool__(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._require_data().passwords)

    def __iter__(self) -> Iterator[Credential]:
        return iter(self.credentials())
