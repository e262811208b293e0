"""
auth/tokens.py -- Password hashing, bearer token generation, and session JWTs.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The hash string embeds
       its own salt and cost factor, so verification needs no side-channel
       state. Cost comes from Settings.bcrypt_rounds. Any bcrypt failure while
       hashing is fatal and surfaces as HashFailure -- never a usable record.
       _dummy_hash() enables timing equalization in the login path at the
       caller's cost, so response time does not reveal whether an email exists.

  Bearer tokens: secrets.choice over [A-Za-z0-9]. A 32-char token carries
       ~190 bits of entropy. Tokens are capabilities compared for exact
       equality; they are not hashed at rest.

  JWT: python-jose with HS256. Tokens carry the user's pid and an expiry.
       Verification returns None on any failure -- callers treat that as
       unauthenticated. Rotating SECRET_KEY invalidates every issued token.

Layer rule: import from core/ is allowed -- core/ is the kernel and has no
reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt
from jose import JWTError, jwt

from auth.errors import HashFailure
from core.config import get_settings

logger = logging.getLogger("credkeep.auth")

_ALGORITHM = "HS256"

_TOKEN_ALPHABET = string.ascii_letters + string.digits

# bcrypt refuses input past this many bytes.
BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises HashFailure if bcrypt cannot produce a hash (oversized input,
    entropy source failure). Inputs are length-checked by auth/schemas.py
    before they get here, so in practice this only fires on library faults.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    try:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")
    except Exception as exc:
        logger.error("bcrypt hashing failed: %s", type(exc).__name__)
        raise HashFailure() from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A mismatch is a normal False. A malformed hash is also False, never an
    exception, so a corrupt row cannot crash the login path.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hashes, one per bcrypt cost.
# A dummy hash must share the cost of the real hashes it stands in for.
@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    return hash_password("credkeep_timing_dummy", rounds=rounds)


# Built at module load for the configured cost so the first login attempt is
# not measurably slower than subsequent ones.
_dummy_hash(get_settings().bcrypt_rounds)


def burn_password_check(plain: str, rounds: int | None = None) -> None:
    """Spend one bcrypt verification at the given cost and discard the result.

    Callers run this when the email does not exist, passing the same cost
    they hash real passwords with.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    verify_password(plain, _dummy_hash(cost))


# ---------------------------------------------------------------------------
# Bearer tokens and public identifiers
# ---------------------------------------------------------------------------


def generate_token(length: int) -> str:
    """Return a random alphanumeric token of exactly `length` characters."""
    if length <= 0:
        raise ValueError("Token length must be positive.")
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def generate_pid() -> str:
    """Return a new public identifier (UUID4, canonical string form)."""
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    pid: str,
    secret: str | None = None,
    expire_seconds: int = 0,
    now: datetime | None = None,
) -> str:
    """Encode a signed session JWT bound to a user's pid.

    Args:
        pid:            Public identifier of the user. Never the row id.
        secret:         Signing key. Defaults to Settings.secret_key.
        expire_seconds: Session duration. If 0 (default), uses
                        Settings.token_expire_seconds.
        now:            Issue time. Defaults to the current UTC time.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    issued = now or datetime.now(timezone.utc)
    payload = {
        "pid": pid,
        "iat": issued,
        "exp": issued + timedelta(seconds=duration),
    }
    return jwt.encode(payload, secret or settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret: str | None = None) -> str | None:
    """Verify a session JWT and return its pid, or None on any failure.

    Bad signature, malformed structure, expired exp, and a missing pid claim
    all collapse to None.
    """
    try:
        payload = jwt.decode(token, secret or get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    pid = payload.get("pid")
    if not isinstance(pid, str) or not pid:
        return None
    return pid
