"""
auth/schemas.py -- Pydantic v2 input models for the auth flows.

These validate caller-supplied values before anything is hashed or written.
They are separate from the dataclasses in auth/models.py, which own the stored
shape. A failed validation raises pydantic.ValidationError.
"""

from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, StringConstraints

from auth.tokens import BCRYPT_MAX_BYTES

# Deliberately loose: one @, no whitespace, a dot in the domain. Deliverability
# is proven by the verification mail, not by a regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _within_bcrypt_limit(value: str) -> str:
    """bcrypt rejects input longer than 72 bytes; refuse it up front."""
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
    return value


Password = Annotated[str, Field(min_length=1), AfterValidator(_within_bcrypt_limit)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255, pattern=EMAIL_PATTERN)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=255)]


class RegisterParams(BaseModel):
    """Input for AuthService.register().

    Email and name are whitespace-stripped; the password is taken verbatim.
    Email case is preserved as given -- lookups are case-exact, so the
    spelling used at registration is the spelling used at login.
    """

    email: Email
    password: Password
    name: Name


class PasswordParams(BaseModel):
    """Input for password reset and password change."""

    password: Password
