"""
auth/models.py -- Domain dataclasses for credential records.

Pattern: Data class (pure data container, near-zero logic). The store maps
rows onto these types; the lifecycle manager and service do the work.

Token slots: each bearer token kind (email verification, password reset,
magic link) is a single tagged value, Absent or Pending. A token and its
timestamp can therefore never be set or cleared independently of each other.

Records are frozen. A state transition goes through auth/store.py and the
caller receives a freshly loaded User -- nothing is mutated in place.

Layer rule: no imports from core/ or any other auth module.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TokenKind(str, Enum):
    VERIFICATION = "verification"
    RESET = "reset"
    MAGIC_LINK = "magic_link"


@dataclass(frozen=True)
class Absent:
    """No token is outstanding for this kind."""


ABSENT = Absent()


@dataclass(frozen=True)
class Pending:
    """An issued, not yet consumed bearer token.

    expires_at is only set for magic links, where it is always
    issued_at + the configured TTL. Verification and reset tokens do not
    expire on their own; they stay valid until consumed or re-issued.
    """

    token: str
    issued_at: datetime
    expires_at: datetime | None = None

    def is_live(self, now: datetime) -> bool:
        """True while the token may still be honoured (expiry is inclusive)."""
        return self.expires_at is None or now <= self.expires_at


TokenSlot = Absent | Pending


@dataclass(frozen=True)
class User:
    """A registered account: identity, password hash, and token state.

    pid is the only identifier handed to the outside world (session tokens,
    API responses). id is the internal row key and is None before insert.

    password_hash is always a bcrypt hash produced by auth.tokens.hash_password.
    email_verified_at set = verified. Once set it is never cleared.
    """

    email: str
    name: str
    password_hash: str
    pid: str = ""
    id: int | None = None
    email_verified_at: datetime | None = None
    verification: TokenSlot = ABSENT
    reset: TokenSlot = ABSENT
    magic_link: TokenSlot = ABSENT
    created_at: datetime | None = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None

    def slot(self, kind: TokenKind) -> TokenSlot:
        """Return the token slot for the given kind."""
        if kind is TokenKind.VERIFICATION:
            return self.verification
        if kind is TokenKind.RESET:
            return self.reset
        return self.magic_link


@dataclass(frozen=True)
class LoginResult:
    """Successful authentication: the session JWT plus the public profile."""

    token: str
    pid: str
    name: str
    email: str
    is_verified: bool

    @classmethod
    def for_user(cls, user: User, token: str) -> LoginResult:
        return cls(
            token=token,
            pid=user.pid,
            name=user.name,
            email=user.email,
            is_verified=user.is_verified,
        )
