#!/usr/bin/env python3
"""
Gatehouse admin CLI -- account chores the HTTP API deliberately does not offer.

Sign-up only ever creates `user` accounts, so the first administrator has to
be created (or promoted) from the server itself.

Usage:
  python main.py create-admin --name "Ada Lovelace" --email ada@example.com
  python main.py promote ada@example.com
  python main.py promote ada@example.com --role user
  python main.py list

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the user database (default sqlite:///gatehouse_auth.db)
  BCRYPT_ROUNDS  bcrypt cost factor for new passwords (default 12)
  SECRET_KEY     required unless DEBUG=true; settings are validated as a whole
                 even though the CLI never signs tokens
"""

import argparse
import getpass
import sys

import pydantic

from auth.errors import ValidationError
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from auth.validation import normalize_email, validate_email, validate_name, validate_password_pair
from core.config import get_settings


def _create_admin(store: UserStore, args: argparse.Namespace, rounds: int) -> int:
    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    try:
        name = validate_name(args.name)
        email = validate_email(args.email)
        validate_password_pair(password, confirm)
        user_id = store.create_user(
            User(name=name, email=email, hashed_password=hash_password(password, rounds), role=Role.admin)
        )
    except ValidationError as e:
        print(f"  [!] {e.message}")
        return 1
    print(f"  Created admin {email} (id {user_id}).")
    return 0


def _promote(store: UserStore, args: argparse.Namespace) -> int:
    email = normalize_email(args.email)
    user = store.get_by_email(email)
    if user is None:
        print(f"  [!] No user with email '{email}'.")
        return 1
    store.set_role(user.id, Role(args.role))
    print(f"  {email} is now '{args.role}'.")
    return 0


def _list(store: UserStore) -> int:
    users = store.list_users()
    if not users:
        print("  No users.")
        return 0
    for u in users:
        print(f"  {u.id:>5}  {u.role.value:<6} {u.email:<40} {u.name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gatehouse", description="Gatehouse account administration.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="Create a new administrator (prompts for password).")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)

    promote = sub.add_parser("promote", help="Change an existing user's role.")
    promote.add_argument("email")
    promote.add_argument("--role", choices=[r.value for r in Role], default=Role.admin.value)

    sub.add_parser("list", help="List all accounts.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except pydantic.ValidationError as e:
        print(f"  [!] Invalid configuration: {e.errors()[0]['msg']}")
        return 1
    store = UserStore(settings.database_url)
    try:
        if args.command == "create-admin":
            return _create_admin(store, args, settings.bcrypt_rounds)
        if args.command == "promote":
            return _promote(store, args)
        return _list(store)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
