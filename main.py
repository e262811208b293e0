#!/usr/bin/env python3
"""
credkeep -- administrative command line for the credential store.

Usage:
  python main.py register alice@example.com "Alice Liddell"
  python main.py truncate --yes

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Session signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the credential database.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from pydantic import ValidationError

from auth.errors import DuplicateEmailError
from auth.guard import truncate_once
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("credkeep.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _cmd_register(store: UserStore, args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    service = AuthService(store)
    try:
        user = service.register(args.email, password, args.name)
    except DuplicateEmailError as exc:
        print(f"  [!] {exc.message}")
        return 1
    except ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"])
            print(f"  [!] {field}: {err['msg']}")
        return 1
    print(user.pid)
    return 0


def _cmd_truncate(store: UserStore, args: argparse.Namespace) -> int:
    if not args.yes:
        print("  [!] Refusing to delete every user without --yes.")
        return 1
    if truncate_once(store):
        print("  Users table truncated.")
    else:
        print("  Truncate already ran in this process; skipped.")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="credkeep", description="Credential store administration.")
    parser.add_argument("--db", metavar="URL", help="Database URL (defaults to DATABASE_URL).")
    sub = parser.add_subparsers(dest="command", required=True)

    reg = sub.add_parser("register", help="Create a user account (prompts for a password).")
    reg.add_argument("email")
    reg.add_argument("name")
    reg.set_defaults(handler=_cmd_register)

    trunc = sub.add_parser("truncate", help="Delete every user record.")
    trunc.add_argument("--yes", action="store_true", help="Confirm the destructive operation.")
    trunc.set_defaults(handler=_cmd_truncate)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    _configure_logging(settings.log_level)
    store = UserStore(args.db or settings.database_url)
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
