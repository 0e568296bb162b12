#!/usr/bin/env python3
"""
CyberSecure -- account maintenance from the command line.

Usage:
  python main.py create-user --username admin --email admin@example.com \
      --first-name Site --last-name Admin --role admin
  python main.py unlock alice
  python main.py unlock alice@example.com

Passwords are read with getpass (never from argv, so they stay out of shell
history). Uses the same DATABASE_URL / SECRET_KEY settings as the API.

Exit codes: 0 success, 1 operation failed, 2 usage error (argparse).
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import AuthError
from auth.models import AccountStatus, Role
from auth.service import AuthService, Registration
from auth.store import AccountStore
from auth.tokens import get_token_signer
from core.config import get_settings


def _build_service(db_url: Optional[str]) -> AuthService:
    settings = get_settings()
    store = AccountStore(db_url or settings.database_url)
    return AuthService.from_settings(store, get_token_signer(), settings)


def _read_password() -> Optional[str]:
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_create_user(service: AuthService, args: argparse.Namespace) -> int:
    password = _read_password()
    if password is None:
        return 1
    try:
        account = service.create_account(
            Registration(
                username=args.username,
                email=args.email,
                password=password,
                first_name=args.first_name,
                last_name=args.last_name,
                role=Role(args.role),
                department_id=args.department,
                status=AccountStatus(args.status),
            )
        )
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    print(f"  Created {account.user_id} {account.username} <{account.email}> role={account.role.value}")
    return 0


def cmd_unlock(service: AuthService, args: argparse.Namespace) -> int:
    account = service.store.find_by_identifier(args.identifier)
    if account is None:
        print(f"  [!] No account matches '{args.identifier}'.")
        return 1
    service.unlock(account.id)
    print(f"  Unlocked {account.username} (failed attempts reset to 0)")
    return 0


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CyberSecure account maintenance.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", help="Database URL (default: DATABASE_URL setting)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account (prompts for the password)")
    create.add_argument("--username", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.analyst.value)
    create.add_argument("--status", choices=[s.value for s in AccountStatus], default=AccountStatus.active.value)
    create.add_argument("--department", metavar="DEPT_ID", default=None, help="e.g. DEPT001")
    create.set_defaults(func=cmd_create_user)

    unlock = sub.add_parser("unlock", help="Clear the lockout on an account")
    unlock.add_argument("identifier", help="Username or email")
    unlock.set_defaults(func=cmd_unlock)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _parser().parse_args(argv)
    service = _build_service(args.db)
    try:
        return args.func(service, args)
    finally:
        service.store.close()


if __name__ == "__main__":
    sys.exit(main())
