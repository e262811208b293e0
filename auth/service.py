"""
auth/service.py -- Registration, lookup, and the account flows built on them.

AuthService is what a request handler calls. It owns:
  - validation of caller input (auth/schemas.py)
  - password hashing on the way in
  - the already-verified guard around verification mail
  - deciding when mail goes out, and what it carries
  - turning lifecycle None results into typed errors

Account enumeration:
  login() raises the same InvalidCredentialsError for an unknown email and a
  wrong password, and burns one bcrypt check in both branches so timing
  matches. forgot_password(), resend_verification(), and request_magic_link()
  return None whether or not the email exists.

Mail is fire-and-forget. A Mailer that raises is logged; the issued token is
kept and the flow still succeeds.
"""

from __future__ import annotations

import logging

from auth.errors import AlreadyVerifiedError, InvalidCredentialsError, InvalidTokenError
from auth.lifecycle import Clock, TokenLifecycle
from auth.mailer import LoggingMailer, Mailer, MailKind
from auth.models import LoginResult, Pending, TokenSlot, User
from auth.schemas import PasswordParams, RegisterParams
from auth.store import UserStore
from auth.tokens import (
    burn_password_check,
    create_access_token,
    decode_access_token,
    generate_pid,
    hash_password,
    verify_password,
)
from core.config import Settings, get_settings

logger = logging.getLogger("credkeep.auth.service")


class AuthService:
    def __init__(
        self,
        store: UserStore,
        mailer: Mailer | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.mailer = mailer or LoggingMailer()
        self.settings = settings or get_settings()
        self.tokens = TokenLifecycle(store, settings=self.settings, clock=clock)
        # Build the dummy hash for this cost before the first login needs it.
        burn_password_check("", rounds=self.settings.bcrypt_rounds)

    # ------------------------------------------------------------------
    # Registration / lookup
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str) -> User:
        """Create an account, then send the welcome mail with its verification token.

        Raises pydantic.ValidationError for bad input, DuplicateEmailError if
        the email is taken, HashFailure if bcrypt fails. No row is written in
        any of those cases.
        """
        params = RegisterParams(email=email, password=password, name=name)
        user = self.store.create_user(
            User(
                pid=generate_pid(),
                email=params.email,
                name=params.name,
                password_hash=hash_password(params.password, rounds=self.settings.bcrypt_rounds),
            )
        )
        logger.info("Registered user %s", user.pid)
        user = self.tokens.issue_verification(user)
        self._deliver(user, MailKind.WELCOME, user.verification)
        return user

    def find_by_email(self, email: str) -> User | None:
        user = self.store.get_by_email(email)
        if user is None:
            logger.debug("No user for email lookup")
        return user

    def find_by_pid(self, pid: str) -> User | None:
        user = self.store.get_by_pid(pid)
        if user is None:
            logger.debug("No user for pid %s", pid)
        return user

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate with email and password and mint a session token.

        Always runs bcrypt whether or not the user exists:
        - Unknown email: bcrypt runs against the dummy hash (same cost)
        - Wrong password: bcrypt runs against the real hash (same cost)

        Unverified accounts may log in; LoginResult.is_verified reports it.
        """
        user = self.store.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt
            burn_password_check(password, rounds=self.settings.bcrypt_rounds)
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        return self._session_for(user)

    def current_user(self, session_token: str) -> User | None:
        """Resolve a session JWT to its user. None for any invalid or orphaned token."""
        pid = decode_access_token(session_token, self.settings.secret_key)
        if pid is None:
            return None
        return self.store.get_by_pid(pid)

    def _session_for(self, user: User) -> LoginResult:
        token = create_access_token(
            user.pid,
            secret=self.settings.secret_key,
            expire_seconds=self.settings.token_expire_seconds,
        )
        return LoginResult.for_user(user, token)

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def send_verification(self, user: User) -> User:
        """Issue a fresh verification token and mail it.

        Raises AlreadyVerifiedError for a verified account -- no token is
        minted and no mail is sent.
        """
        if user.is_verified:
            raise AlreadyVerifiedError()
        user = self.tokens.issue_verification(user)
        self._deliver(user, MailKind.VERIFICATION, user.verification)
        return user

    def resend_verification(self, email: str) -> None:
        """Resend the verification mail. Silent for unknown or already-verified emails."""
        user = self.store.get_by_email(email)
        if user is None:
            logger.debug("Verification resend requested for unknown email")
            return
        try:
            self.send_verification(user)
        except AlreadyVerifiedError:
            logger.info("Verification resend skipped; %s is already verified", user.pid)

    def verify_email(self, token: str) -> User:
        user = self.tokens.consume_verification(token)
        if user is None:
            raise InvalidTokenError()
        return user

    # ------------------------------------------------------------------
    # Password reset / change
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> None:
        """Issue a reset token and mail it. Silent for unknown emails."""
        user = self.store.get_by_email(email)
        if user is None:
            logger.debug("Password reset requested for unknown email")
            return
        user = self.tokens.issue_reset(user)
        self._deliver(user, MailKind.FORGOT_PASSWORD, user.reset)

    def reset_password(self, token: str, new_password: str) -> User:
        params = PasswordParams(password=new_password)
        user = self.tokens.consume_reset(token, params.password)
        if user is None:
            raise InvalidTokenError()
        return user

    def change_password(self, pid: str, current_password: str, new_password: str) -> User:
        """Replace the password of an authenticated user after re-checking the current one."""
        params = PasswordParams(password=new_password)
        user = self.store.get_by_pid(pid)
        if user is None:
            burn_password_check(current_password, rounds=self.settings.bcrypt_rounds)
            raise InvalidCredentialsError()
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError()
        password_hash = hash_password(params.password, rounds=self.settings.bcrypt_rounds)
        if not self.store.update_password(user.id, password_hash):
            # Deleted between the read and the write.
            raise InvalidCredentialsError()
        logger.info("Password changed for %s", user.pid)
        return self.tokens.reload(user)

    # ------------------------------------------------------------------
    # Magic link
    # ------------------------------------------------------------------

    def request_magic_link(self, email: str) -> None:
        """Issue a magic-link token and mail it. Silent for unknown emails."""
        user = self.store.get_by_email(email)
        if user is None:
            logger.debug("Magic link requested for unknown email")
            return
        user = self.tokens.issue_magic_link(user)
        self._deliver(user, MailKind.MAGIC_LINK, user.magic_link)

    def login_with_magic_link(self, token: str) -> LoginResult:
        user = self.tokens.consume_magic_link(token)
        if user is None:
            raise InvalidTokenError()
        return self._session_for(user)

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    def _deliver(self, user: User, kind: MailKind, slot: TokenSlot) -> None:
        if not isinstance(slot, Pending):
            return
        try:
            self.mailer.send(user.email, kind, slot.token)
        except Exception:
            # Delivery failure does not undo token issuance.
            logger.exception("Mail delivery failed: kind=%s user=%s", kind.value, user.pid)
