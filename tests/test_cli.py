"""
tests/test_cli.py -- Tests for the main.py admin command line.

Runs main() in-process against a file-backed SQLite database in tmp_path.
getpass is patched so register does not block on a terminal prompt.
"""

from __future__ import annotations

import uuid

import pytest

import main
from auth import guard
from auth.store import UserStore


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture(autouse=True)
def fresh_truncate_guard(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(guard, "_truncate_guard", None)


def _answers(monkeypatch: pytest.MonkeyPatch, *values: str) -> None:
    replies = iter(values)
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": next(replies))


def test_register_prints_pid(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "s3cret-pass", "s3cret-pass")
    assert main.main(["--db", db_url, "register", "cli@example.com", "Cli User"]) == 0
    pid = capsys.readouterr().out.strip()
    assert uuid.UUID(pid)

    store = UserStore(db_url)
    try:
        assert store.get_by_pid(pid).email == "cli@example.com"
    finally:
        store.close()


def test_register_rejects_mismatched_passwords(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "one", "two")
    assert main.main(["--db", db_url, "register", "cli@example.com", "Cli User"]) == 1
    assert "do not match" in capsys.readouterr().out


def test_register_duplicate_email(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "pw-one-1", "pw-one-1", "pw-two-2", "pw-two-2")
    assert main.main(["--db", db_url, "register", "dup@example.com", "First"]) == 0
    assert main.main(["--db", db_url, "register", "dup@example.com", "Second"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_register_reports_validation_errors(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "pw", "pw")
    assert main.main(["--db", db_url, "register", "not-an-email", "X"]) == 1
    out = capsys.readouterr().out
    assert "email" in out
    assert "name" in out


def test_truncate_requires_confirmation(db_url: str, capsys) -> None:
    assert main.main(["--db", db_url, "truncate"]) == 1
    assert "--yes" in capsys.readouterr().out


def test_truncate_runs_once(db_url: str, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    _answers(monkeypatch, "pw-one-1", "pw-one-1")
    main.main(["--db", db_url, "register", "gone@example.com", "Gone"])
    assert main.main(["--db", db_url, "truncate", "--yes"]) == 0
    assert main.main(["--db", db_url, "truncate", "--yes"]) == 0
    out = capsys.readouterr().out
    assert "truncated" in out
    assert "skipped" in out

    store = UserStore(db_url)
    try:
        assert store.count_users() == 0
    finally:
        store.close()
