"""
auth/errors.py -- Typed failure outcomes for the auth core.

Every error carries a stable machine-readable code plus a human message, the
same {"code", "message"} shape the transport layer puts in error bodies.

Outcomes that are NOT exceptions:
  not_found           -- lookups return None. A miss is a normal result.
  persistence_failure -- sqlalchemy.exc.SQLAlchemyError propagates unchanged
                         from auth/store.py. The core adds no retry policy.

HashFailure is the only fatal error: an operation that cannot hash a password
must abort instead of writing a usable-but-insecure record.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth outcomes surfaced as exceptions."""

    code: str = "auth_error"
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class DuplicateEmailError(AuthError):
    code = "duplicate_email"
    message = "An account with this email already exists."


class InvalidTokenError(AuthError):
    """Wrong, consumed, or expired bearer token.

    Expired and wrong tokens share this one type so a caller cannot learn
    which tokens once existed.
    """

    code = "invalid_token"
    message = "The token is invalid or has expired."


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password. Deliberately indistinguishable."""

    code = "invalid_credentials"
    message = "Invalid email or password."


class AlreadyVerifiedError(AuthError):
    code = "already_verified"
    message = "This email address is already verified."


class HashFailure(AuthError):
    code = "hash_failure"
    message = "Password hashing failed."
