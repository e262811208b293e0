"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hash / verify round trip and mismatch behaviour
  - HashFailure on a bcrypt fault
  - random token length and charset
  - session JWT round trip, wrong secret, expiry, malformed input
"""

from __future__ import annotations

import string
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth import tokens
from auth.errors import HashFailure
from auth.tokens import (
    create_access_token,
    decode_access_token,
    generate_pid,
    generate_token,
    hash_password,
    verify_password,
)

TEST_SECRET = "tokens-test-secret-key-long-enough-for-hs256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


class TestPasswordHashing:
    def test_hash_then_verify_succeeds(self) -> None:
        hashed = hash_password("correct horse", rounds=4)
        assert verify_password("correct horse", hashed) is True

    def test_different_password_fails(self) -> None:
        hashed = hash_password("correct horse", rounds=4)
        assert verify_password("battery staple", hashed) is False

    def test_hash_is_not_plaintext_and_is_salted(self) -> None:
        """Two hashes of the same password differ (embedded salt) and both verify."""
        first = hash_password("same-password", rounds=4)
        second = hash_password("same-password", rounds=4)
        assert "same-password" not in first
        assert first != second
        assert verify_password("same-password", first)
        assert verify_password("same-password", second)

    def test_hash_embeds_cost_factor(self) -> None:
        assert hash_password("pw", rounds=5).startswith("$2b$05$")

    def test_malformed_hash_returns_false(self) -> None:
        """A corrupt stored hash is a mismatch, never an exception."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_bcrypt_fault_raises_hash_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(*args, **kwargs):
            raise ValueError("entropy source unavailable")

        monkeypatch.setattr(tokens.bcrypt, "hashpw", broken)
        with pytest.raises(HashFailure) as exc_info:
            hash_password("pw", rounds=4)
        assert exc_info.value.code == "hash_failure"


# ---------------------------------------------------------------------------
# Random tokens
# ---------------------------------------------------------------------------


class TestGenerateToken:
    @pytest.mark.parametrize("length", [16, 32, 64])
    def test_exact_length(self, length: int) -> None:
        assert len(generate_token(length)) == length

    def test_alphanumeric_charset(self) -> None:
        allowed = set(string.ascii_letters + string.digits)
        assert set(generate_token(500)) <= allowed

    def test_no_collisions_in_practice(self) -> None:
        assert len({generate_token(32) for _ in range(1000)}) == 1000

    def test_rejects_non_positive_length(self) -> None:
        with pytest.raises(ValueError):
            generate_token(0)

    def test_pid_is_uuid4(self) -> None:
        assert uuid.UUID(generate_pid()).version == 4


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


class TestSessionToken:
    def test_round_trip_returns_pid(self) -> None:
        pid = generate_pid()
        token = create_access_token(pid, secret=TEST_SECRET, expire_seconds=60)
        assert decode_access_token(token, TEST_SECRET) == pid

    def test_token_carries_pid_and_expiry_claims(self) -> None:
        token = create_access_token("abc", secret=TEST_SECRET, expire_seconds=60)
        claims = jwt.get_unverified_claims(token)
        assert claims["pid"] == "abc"
        assert claims["exp"] - claims["iat"] == 60

    def test_different_secret_is_rejected(self) -> None:
        """Rotating the secret invalidates every previously issued token."""
        token = create_access_token("abc", secret=TEST_SECRET, expire_seconds=60)
        assert decode_access_token(token, "another-secret-that-is-also-quite-long") is None

    def test_expired_token_is_rejected(self) -> None:
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = create_access_token("abc", secret=TEST_SECRET, expire_seconds=60, now=issued)
        assert decode_access_token(token, TEST_SECRET) is None

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
    def test_malformed_token_is_rejected(self, garbage: str) -> None:
        assert decode_access_token(garbage, TEST_SECRET) is None

    def test_token_without_pid_is_rejected(self) -> None:
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = jwt.encode({"sub": "someone", "exp": exp}, TEST_SECRET, algorithm="HS256")
        assert decode_access_token(token, TEST_SECRET) is None

    def test_default_ttl_comes_from_settings(self) -> None:
        token = create_access_token("abc")
        claims = jwt.get_unverified_claims(token)
        assert claims["exp"] - claims["iat"] == tokens.get_settings().token_expire_seconds
