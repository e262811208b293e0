"""
auth/store.py -- SQLAlchemy Core persistence layer for credential records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _slot_from_row are the mappers.
The lifecycle manager and service never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Token consumption is compare-and-clear: the UPDATE carries
  WHERE <token column> = :presented, so of two concurrent consumers of the
  same token exactly one sees rowcount == 1. Single-use holds without any
  in-process locking.

  Password reset writes the new hash and clears the reset slot in ONE
  statement inside one transaction. Either both land or neither does.

Errors:
  Duplicate email on insert -> DuplicateEmailError. Every other database
  failure propagates as sqlalchemy.exc.SQLAlchemyError, unchanged.

Timestamps are stored as ISO 8601 UTC strings with microsecond precision.

Layer rule: imports from auth/ (models, errors), core/ (config), and third-party libs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmailError
from auth.models import ABSENT, Pending, TokenKind, TokenSlot, User
from core.config import get_settings

logger = logging.getLogger("credkeep.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pid", String(36), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("email_verified_at", String(32)),
    Column("email_verification_token", String(128), unique=True),
    Column("email_verification_sent_at", String(32)),
    Column("reset_token", String(128), unique=True),
    Column("reset_sent_at", String(32)),
    Column("magic_link_token", String(128), unique=True),
    Column("magic_link_sent_at", String(32)),
    Column("magic_link_expiration", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    # UNIQUE on the token columns is safe in SQLite: NULLs are distinct.
)

# token column, issued-at column, expiry column (magic link only)
_SLOT_COLUMNS: dict[TokenKind, tuple[str, str, str | None]] = {
    TokenKind.VERIFICATION: ("email_verification_token", "email_verification_sent_at", None),
    TokenKind.RESET: ("reset_token", "reset_sent_at", None),
    TokenKind.MAGIC_LINK: ("magic_link_token", "magic_link_sent_at", "magic_link_expiration"),
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


def _slot_values(kind: TokenKind, slot: TokenSlot) -> dict:
    """Column values that write `slot` for `kind`. Absent clears every column."""
    token_col, issued_col, expiry_col = _SLOT_COLUMNS[kind]
    if isinstance(slot, Pending):
        values = {token_col: slot.token, issued_col: _to_iso(slot.issued_at)}
        if expiry_col is not None:
            values[expiry_col] = _to_iso(slot.expires_at)
    else:
        values = {token_col: None, issued_col: None}
        if expiry_col is not None:
            values[expiry_col] = None
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        user = store.create_user(User(email="a@example.com", name="Ann", pid=generate_pid(),
                                      password_hash=hash_password("secret")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Insert a new user with every token slot absent and return the stored record.

        Raises DuplicateEmailError if the email is already registered. The
        existing record is not touched. A pid collision (never expected with
        UUID4) propagates as a raw IntegrityError.
        """
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        pid=user.pid,
                        email=user.email,
                        name=user.name,
                        password_hash=user.password_hash,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            if self._email_taken(user.email):
                raise DuplicateEmailError() from exc
            raise
        return self.get_by_id(user_id)

    def _email_taken(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).first()
        return row is not None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._get_one(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        return self._get_one(_users.c.email == email)

    def get_by_pid(self, pid: str) -> User | None:
        """Look up a user by public identifier. Returns None if not found."""
        return self._get_one(_users.c.pid == pid)

    def get_by_token(self, kind: TokenKind, token: str) -> User | None:
        """Look up the user holding `token` in the slot for `kind`.

        Expiry is not checked here -- that is the lifecycle manager's job.
        """
        token_col = _SLOT_COLUMNS[kind][0]
        return self._get_one(_users.c[token_col] == token)

    def _get_one(self, clause) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(clause)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Token slots
    # ------------------------------------------------------------------

    def set_token(self, user_id: int, kind: TokenKind, slot: TokenSlot) -> bool:
        """Overwrite the slot for `kind` (issue, re-issue, or explicit clear).

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(**_slot_values(kind, slot), updated_at=_now_iso())
            )
        return result.rowcount > 0

    def consume_token(self, user_id: int, kind: TokenKind, token: str, **changes) -> bool:
        """Clear the slot for `kind` only if it still holds `token`, applying `changes` in the same statement.

        Returns True if this call consumed the token. False means the token
        was already consumed, replaced, or never belonged to this user.
        """
        token_col = _SLOT_COLUMNS[kind][0]
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c[token_col] == token))
                .values(**_slot_values(kind, ABSENT), **changes, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def mark_verified(self, user_id: int, token: str, verified_at: datetime) -> bool:
        """Consume a verification token and stamp email_verified_at.

        COALESCE keeps the first verification time: verification is monotonic.
        """
        return self.consume_token(
            user_id,
            TokenKind.VERIFICATION,
            token,
            email_verified_at=func.coalesce(_users.c.email_verified_at, _to_iso(verified_at)),
        )

    def reset_password(self, user_id: int, token: str, password_hash: str) -> bool:
        """Consume a reset token and replace the password hash atomically."""
        return self.consume_token(user_id, TokenKind.RESET, token, password_hash=password_hash)

    def update_password(self, user_id: int, password_hash: str) -> bool:
        """Replace the password hash. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, updated_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    def truncate(self) -> int:
        """Delete every user record. Returns the number of rows removed.

        Destructive. Callers go through auth.guard.truncate_once() so this
        runs at most once per process.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete())
        logger.warning("Truncated users table (%d rows)", result.rowcount)
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _slot_from_row(row, kind: TokenKind) -> TokenSlot:
    token_col, issued_col, expiry_col = _SLOT_COLUMNS[kind]
    token = getattr(row, token_col)
    if token is None:
        return ABSENT
    return Pending(
        token=token,
        issued_at=_from_iso(getattr(row, issued_col)),
        expires_at=_from_iso(getattr(row, expiry_col)) if expiry_col is not None else None,
    )


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        pid=row.pid,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        email_verified_at=_from_iso(row.email_verified_at),
        verification=_slot_from_row(row, TokenKind.VERIFICATION),
        reset=_slot_from_row(row, TokenKind.RESET),
        magic_link=_slot_from_row(row, TokenKind.MAGIC_LINK),
        created_at=_from_iso(row.created_at),
    )
