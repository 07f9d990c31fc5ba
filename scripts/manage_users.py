#!/usr/bin/env python3
"""Mini-README: CLI utility to seed and maintain user accounts.

Examples:
    python scripts/manage_users.py create --email ana@example.com --name "Ana Ruiz" --password "..."
    python scripts/manage_users.py reset-password --email admin@change.me --password "..."
    python scripts/manage_users.py deactivate --email ana@example.com
"""

from __future__ import annotations

import argparse
import sys

from sqlalchemy.orm import Session

from timekeeper.accounts import create_user, reset_password, set_active
from timekeeper.database import engine, run_migrations
from timekeeper.errors import TimesheetError
from timekeeper.models import Role


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage timekeeper user accounts.")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create an employee or administrator account.")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True, help="Full name shown on reports.")
    create.add_argument("--password", required=True)
    create.add_argument("--role", choices=[role.value for role in Role], default=Role.EMPLOYEE.value)

    reset = commands.add_parser("reset-password", help="Set a new password for an existing account.")
    reset.add_argument("--email", required=True)
    reset.add_argument("--password", required=True)

    for name in ("activate", "deactivate"):
        toggle = commands.add_parser(name, help=f"{name.capitalize()} an existing account.")
        toggle.add_argument("--email", required=True)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    password = getattr(args, "password", None)
    if password is not None and not password.strip():
        print("[users] ERROR: password must not be blank.")
        return 1

    run_migrations()
    with Session(engine) as db:
        try:
            if args.command == "create":
                user = create_user(
                    db, email=args.email, full_name=args.name, password=password, role=Role(args.role)
                )
                print(f"[users] Created {user.role.value} {user.email} (id={user.id}).")
            elif args.command == "reset-password":
                user = reset_password(db, email=args.email, new_password=password)
                print(f"[users] Password updated for {user.email}.")
            else:
                user = set_active(db, email=args.email, active=args.command == "activate")
                print(f"[users] {user.email} is now {'active' if user.active else 'inactive'}.")
        except TimesheetError as exc:
            print(f"[users] ERROR: {exc}")
            return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
