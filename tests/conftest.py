"""
tests/conftest.py -- Shared test fixtures for credkeep.

This module provides:
  - settings:  explicit Settings with a fixed signing key and cheap bcrypt cost
  - store:     UserStore on a private in-memory SQLite database
  - clock:     FakeClock, a settable "now" for expiry tests
  - mailer:    RecordingMailer, captures every send() for assertions
  - service:   AuthService wired to all of the above
  - make_user: registers a user through the service and returns it

The DEBUG and BCRYPT_ROUNDS env vars must be set before any auth module import:
auth/tokens.py computes its timing-equalization hash at import time through
get_settings(), which raises without a SECRET_KEY unless DEBUG is on.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from auth.mailer import MailKind
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose current time tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class SentMail:
    recipient: str
    kind: MailKind
    token: str


@dataclass
class RecordingMailer:
    sent: list[SentMail] = field(default_factory=list)

    def send(self, recipient: str, kind: MailKind, token: str) -> None:
        self.sent.append(SentMail(recipient, kind, token))

    def to(self, recipient: str) -> list[SentMail]:
        return [m for m in self.sent if m.recipient == recipient]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        secret_key=TEST_SECRET,
        bcrypt_rounds=4,
        magic_link_ttl_minutes=5,
        token_expire_seconds=3600,
    )


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """In-memory UserStore. Each test gets a fresh, empty database."""
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def service(store: UserStore, mailer: RecordingMailer, settings: Settings, clock: FakeClock) -> AuthService:
    return AuthService(store, mailer=mailer, settings=settings, clock=clock)


@pytest.fixture
def make_user(service: AuthService):
    """Factory: register a user with sensible defaults and return the stored record."""
    counter = {"n": 0}

    def _make(email: str | None = None, password: str = "12341234", name: str = "Test User") -> User:
        counter["n"] += 1
        return service.register(email or f"user{counter['n']}@example.com", password, name)

    return _make
