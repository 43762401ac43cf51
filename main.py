#!/usr/bin/env python3
"""
RBAC auth service -- administrative CLI.

Talks to the credential store directly; no running API server is needed.

Usage:
  python main.py seed [--admin-password PW]
  python main.py create-user alice alice@example.com --full-name "Alice Liddell"
  python main.py assign-role alice editor
  python main.py check alice users write

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL of the credential store (default sqlite:///rbac_auth.db)
  SECRET_KEY     Required unless DEBUG=true
  BCRYPT_ROUNDS  bcrypt cost for new passwords (default 12)
"""

from __future__ import annotations

import argparse
import getpass
import sys

from auth.accounts import AccountService
from auth.authz import AuthorizationEngine
from auth.errors import AuthError
from auth.passwords import PasswordHasher
from auth.seed import seed_defaults
from auth.store import CredentialStore
from core.config import get_settings


def _cmd_seed(store: CredentialStore, accounts: AccountService, args: argparse.Namespace) -> int:
    settings = get_settings()
    seed_defaults(
        store,
        accounts,
        admin_username=settings.admin_username,
        admin_email=settings.admin_email,
        admin_password=args.admin_password or settings.admin_password,
    )
    print(f"  Seeded {len(store.list_permissions())} permissions and {len(store.list_roles())} roles.")
    return 0


def _cmd_create_user(store: CredentialStore, accounts: AccountService, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 2
    user = accounts.create_user(args.username, args.email, password, full_name=args.full_name)
    for role_name in args.role:
        store.add_role_to_user(user.id, store.get_role_by_name(role_name).id)
    print(f"  Created user {user.username} (id={user.id}).")
    return 0


def _cmd_assign_role(store: CredentialStore, accounts: AccountService, args: argparse.Namespace) -> int:
    user = store.get_user_by_username(args.username)
    role = store.get_role_by_name(args.role)
    store.add_role_to_user(user.id, role.id)
    print(f"  Granted role {role.name} to {user.username}.")
    return 0


def _cmd_check(store: CredentialStore, accounts: AccountService, args: argparse.Namespace) -> int:
    """Print ALLOW/DENY. Exit status 0 when allowed, 1 when denied."""
    user = store.get_user_by_username(args.username)
    allowed = AuthorizationEngine(store).has_permission(user.id, args.resource, args.action)
    print(f"  {'ALLOW' if allowed else 'DENY'} {user.username} {args.resource}:{args.action}")
    return 0 if allowed else 1


_COMMANDS = {
    "seed": _cmd_seed,
    "create-user": _cmd_create_user,
    "assign-role": _cmd_assign_role,
    "check": _cmd_check,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rbac-auth",
        description="Manage users, roles and permissions in the RBAC auth credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed --admin-password 'change-me-now'
  python main.py create-user alice alice@example.com --role viewer
  python main.py check alice users read
        """,
    )
    parser.add_argument("--db", metavar="URL", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Create default permissions, roles and (optionally) the admin user")
    seed.add_argument("--admin-password", default="", help="Create the bootstrap admin with this password")

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument("--full-name", default="")
    create.add_argument("--password", default=None, help="Read from a prompt when omitted")
    create.add_argument("--role", action="append", default=[], metavar="NAME", help="Grant a role (repeatable)")

    assign = sub.add_parser("assign-role", help="Grant a role to a user")
    assign.add_argument("username")
    assign.add_argument("role")

    check = sub.add_parser("check", help="Ask whether a user may perform an action on a resource")
    check.add_argument("username")
    check.add_argument("resource")
    check.add_argument("action")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    store = CredentialStore(args.db or settings.database_url)
    accounts = AccountService(store, PasswordHasher(rounds=settings.bcrypt_rounds))
    try:
        return _COMMANDS[args.command](store, accounts, args)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
