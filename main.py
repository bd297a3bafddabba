#!/usr/bin/env python3
"""
Deal pipeline -- offline identity administration.

Talks to the database directly (no running server needed). Useful for
bootstrapping the first admin and for recovering a locked-out deployment.

Usage:
  python main.py create-user alice alice@example.com --password 's3cret-pass'
  python main.py create-user root root@example.com --admin
  python main.py promote alice
  python main.py set-active alice --inactive
  python main.py reset-password alice
  python main.py list-users

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default: dealpipeline.db next to the code).
                --db-url overrides it for a single run.

When --password is omitted the password is read interactively.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.accounts import IdentityService
from auth.models import Role
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES
from core.errors import PipelineError

_MIN_PASSWORD = 8


def _read_password(given: Optional[str]) -> str:
    if given is not None:
        return given
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Repeat password: "):
        raise PipelineError("Passwords do not match.")
    return first


def _check_password(password: str) -> None:
    if len(password) < _MIN_PASSWORD:
        raise PipelineError(f"Password must be at least {_MIN_PASSWORD} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PipelineError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dealpipeline",
        description="Deal pipeline identity administration.",
    )
    parser.add_argument("--db-url", help="SQLAlchemy database URL (overrides DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an identity")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument("--password", help="Password (prompted if omitted)")
    create.add_argument("--admin", action="store_true", help="Create with the ADMIN role")

    promote = sub.add_parser("promote", help="Grant the ADMIN role")
    promote.add_argument("username")

    set_active = sub.add_parser("set-active", help="Enable or disable an identity")
    set_active.add_argument("username")
    state = set_active.add_mutually_exclusive_group()
    state.add_argument("--active", dest="active", action="store_true", default=True)
    state.add_argument("--inactive", dest="active", action="store_false")

    reset = sub.add_parser("reset-password", help="Set a new password")
    reset.add_argument("username")
    reset.add_argument("--password", help="New password (prompted if omitted)")

    sub.add_parser("list-users", help="List every identity")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    store = UserStore(args.db_url)
    accounts = IdentityService(store)
    try:
        if args.command == "create-user":
            password = _read_password(args.password)
            _check_password(password)
            role = Role.ADMIN if args.admin else Role.USER
            user = accounts.create_user(args.username, args.email, password, role)
            print(f"  Created {user.username} ({user.role.value}, id={user.id})")
        elif args.command == "promote":
            user = accounts.promote(args.username)
            print(f"  {user.username} is now {user.role.value}")
        elif args.command == "set-active":
            user = accounts.set_active(args.username, args.active)
            print(f"  {user.username} is now {'active' if user.is_active else 'inactive'}")
        elif args.command == "reset-password":
            password = _read_password(args.password)
            _check_password(password)
            accounts.reset_password(args.username, password)
            print(f"  Password updated for {args.username}")
        elif args.command == "list-users":
            users = accounts.list_users()
            if not users:
                print("  No users.")
            for u in users:
                flag = "" if u.is_active else "  (inactive)"
                print(f"  {u.id:>4}  {u.username:<24} {u.email:<32} {u.role.value}{flag}")
    except PipelineError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
