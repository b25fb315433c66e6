"""
Receipt ownership — a receipt belongs to exactly one user or one temp session.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

USER = "user"
SESSION = "session"


@dataclass(frozen=True)
class UserOwner:
    user_id: str

    @property
    def kind(self) -> str:
        return USER

    @property
    def owner_id(self) -> str:
        return self.user_id

    @property
    def storage_scope(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class SessionOwner:
    session_id: str

    @property
    def kind(self) -> str:
        return SESSION

    @property
    def owner_id(self) -> str:
        return self.session_id

    @property
    def storage_scope(self) -> str:
        return f"session/{self.session_id}"


Owner = Union[UserOwner, SessionOwner]


def owner_from_columns(owner_type: str, owner_id: str) -> Owner:
    if owner_type == USER:
        return UserOwner(owner_id)
    if owner_type == SESSION:
        return SessionOwner(owner_id)
    raise ValueError(f"Unknown owner type: {owner_type!r}")
