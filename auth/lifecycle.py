"""
auth/lifecycle.py -- Issue and consume single-use bearer tokens.

Every token kind follows the same state machine:

    Absent --issue--> Pending(token, issued_at[, expires_at]) --consume--> Absent

  issue    Generates a fresh token and overwrites the slot. Re-issuing while
           Pending is allowed; it is how "resend" works. The old token dies.
  consume  The presented token must equal the stored one exactly. Magic links
           additionally require now <= expires_at. On success the slot is
           cleared (and the kind-specific side effect applied) in a single
           compare-and-clear UPDATE. On failure nothing is written and the
           caller gets None.

None is the only failure signal. Wrong, already-used, and expired tokens are
indistinguishable to the caller.

The already-verified guard is NOT enforced here. issue_verification() will
happily mint a token for a verified user; AuthService.send_verification()
is the layer that refuses.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import ABSENT, Pending, TokenKind, User
from auth.store import UserStore
from auth.tokens import generate_token, hash_password
from core.config import Settings, get_settings

logger = logging.getLogger("credkeep.auth.lifecycle")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenLifecycle:
    """Token state transitions for verification, reset, and magic-link tokens."""

    def __init__(self, store: UserStore, settings: Settings | None = None, clock: Clock | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or utcnow

    @property
    def magic_link_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.magic_link_ttl_minutes)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_verification(self, user: User) -> User:
        return self._issue(user, TokenKind.VERIFICATION, self.settings.verification_token_length)

    def issue_reset(self, user: User) -> User:
        return self._issue(user, TokenKind.RESET, self.settings.reset_token_length)

    def issue_magic_link(self, user: User) -> User:
        return self._issue(user, TokenKind.MAGIC_LINK, self.settings.magic_link_length, ttl=self.magic_link_ttl)

    def clear_magic_link(self, user: User) -> User:
        """Drop an outstanding magic link without using it."""
        self.store.set_token(user.id, TokenKind.MAGIC_LINK, ABSENT)
        return self.reload(user)

    def _issue(self, user: User, kind: TokenKind, length: int, ttl: timedelta | None = None) -> User:
        now = self.clock()
        slot = Pending(
            token=generate_token(length),
            issued_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        if not self.store.set_token(user.id, kind, slot):
            raise LookupError(f"user {user.pid} vanished while issuing a {kind.value} token")
        logger.info("Issued %s token for %s", kind.value, user.email)
        return self.reload(user)

    # ------------------------------------------------------------------
    # Consume
    # ------------------------------------------------------------------

    def consume_verification(self, token: str) -> User | None:
        """Mark the holder of `token` verified. Returns the updated user or None."""
        user = self._holder(TokenKind.VERIFICATION, token)
        if user is None:
            return None
        if not self.store.mark_verified(user.id, token, self.clock()):
            return None
        logger.info("Email verified for %s", user.email)
        return self.reload(user)

    def consume_reset(self, token: str, new_password: str) -> User | None:
        """Replace the holder's password and clear the reset token in one write.

        The new password is hashed before any write, so a HashFailure leaves
        the record untouched. A database fault inside the UPDATE rolls back
        and propagates; the reset token stays usable.
        """
        user = self._holder(TokenKind.RESET, token)
        if user is None:
            return None
        password_hash = hash_password(new_password, rounds=self.settings.bcrypt_rounds)
        if not self.store.reset_password(user.id, token, password_hash):
            # Someone consumed or replaced the token between read and write.
            return None
        logger.info("Password reset for %s", user.email)
        return self.reload(user)

    def consume_magic_link(self, token: str) -> User | None:
        """Consume a live magic link. Expired links are reported exactly like wrong ones."""
        user = self._holder(TokenKind.MAGIC_LINK, token)
        if user is None:
            return None
        if not user.magic_link.is_live(self.clock()):
            logger.debug("Rejected expired magic link for %s", user.email)
            return None
        if not self.store.consume_token(user.id, TokenKind.MAGIC_LINK, token):
            return None
        logger.info("Magic link consumed for %s", user.email)
        return self.reload(user)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _holder(self, kind: TokenKind, token: str) -> User | None:
        """Return the user whose pending `kind` token equals `token`, else None."""
        if not token:
            return None
        user = self.store.get_by_token(kind, token)
        if user is None:
            return None
        slot = user.slot(kind)
        if not isinstance(slot, Pending):
            return None
        if not hmac.compare_digest(slot.token.encode("utf-8"), token.encode("utf-8")):
            return None
        return user

    def reload(self, user: User) -> User:
        fresh = self.store.get_by_id(user.id)
        if fresh is None:
            raise LookupError(f"user {user.pid} vanished during a token transition")
        return fresh
