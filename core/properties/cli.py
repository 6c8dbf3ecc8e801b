#!/usr/bin/env python3
"""
Operator CLI for the property marketplace.

Usage:
    python -m core.properties.cli add-user <email> --role owner
    python -m core.properties.cli users
    python -m core.properties.cli config
    python -m core.properties.cli issue-token <email>
    python -m core.properties.cli list [--as <email>] [--status published]
    python -m core.properties.cli show <property_id> [--as <email>]
    python -m core.properties.cli restore <property_id> --as <admin_email>

Examples:
    # Create an owner account and a token for it
    python -m core.properties.cli add-user alice@example.com --role owner
    TOKEN_SECRET=... python -m core.properties.cli issue-token alice@example.com

    # Everything an admin can see, including soft-deleted rows
    python -m core.properties.cli list --as admin@example.com --include-deleted
"""

import argparse
import json
import sys
from decimal import Decimal
from typing import Optional

from core.errors import PropertyEngineError
from core.identity import Caller, IdentityProvider, Role, UserDirectory
from core.properties.query import PropertyFilter
from core.properties.schema import PropertyStatus
from core.properties.service import build_property_service
from utils.config import Config
from utils.formatting import format_currency, truncate


def resolve_acting_caller(directory: UserDirectory, email: Optional[str]) -> Optional[Caller]:
    """
    Look up the user an operator is acting as.

    Returns:
        Caller for the account, or None for anonymous

    Raises:
        SystemExit: If the account is unknown or cannot authenticate
    """
    if not email:
        return None
    user = directory.get_by_email(email)
    if user is None or not user.can_authenticate:
        print(f"Error: no active user with email {email}", file=sys.stderr)
        sys.exit(1)
    return user.to_caller()


def print_property_table(items) -> None:
    print(f"{'ID':<36}  {'STATUS':<9}  {'PRICE':>12}  {'IMG':>3}  {'FAV':>3}  TITLE")
    for item in items:
        status = item.status.value + ("*" if item.deleted_at else "")
        print(
            f"{item.id:<36}  {status:<9}  {format_currency(item.price):>12}  "
            f"{len(item.images):>3}  {item.favorites_count:>3}  {truncate(item.title, 40)}"
        )


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Operate the property marketplace engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    add_user = subparsers.add_parser("add-user", help="Register an account")
    add_user.add_argument("email", help="Account email")
    add_user.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.USER.value,
        help="Account role (default: user)",
    )

    subparsers.add_parser("users", help="List accounts")
    subparsers.add_parser("config", help="Show effective configuration")

    issue = subparsers.add_parser("issue-token", help="Issue a bearer token")
    issue.add_argument("email", help="Account email")

    list_cmd = subparsers.add_parser("list", help="List properties")
    list_cmd.add_argument("--as", dest="acting_as", help="Act as this account (default: anonymous)")
    list_cmd.add_argument("--status", choices=[s.value for s in PropertyStatus])
    list_cmd.add_argument("--location", help="Case-insensitive location substring")
    list_cmd.add_argument("--min-price", type=Decimal)
    list_cmd.add_argument("--max-price", type=Decimal)
    list_cmd.add_argument("--page", type=int, default=1)
    list_cmd.add_argument("--limit", type=int)
    list_cmd.add_argument("--mine", action="store_true", help="Only the acting account's properties")
    list_cmd.add_argument("--include-deleted", action="store_true", help="Admins only")

    show = subparsers.add_parser("show", help="Show one property as JSON")
    show.add_argument("property_id")
    show.add_argument("--as", dest="acting_as")
    show.add_argument("--include-deleted", action="store_true")

    restore = subparsers.add_parser("restore", help="Undo a soft delete (admin)")
    restore.add_argument("property_id")
    restore.add_argument("--as", dest="acting_as", required=True, help="Admin account email")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config.load()
    config.configure_logging()
    directory = UserDirectory(config.users_path)

    if args.command == "add-user":
        try:
            user = directory.add_user(args.email, Role(args.role))
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except PropertyEngineError as e:
            print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
            sys.exit(1)
        print(f"Created {user.role.value} {user.email} ({user.user_id})")
        return

    if args.command == "config":
        print(json.dumps(config.to_dict(), indent=2))
        return

    if args.command == "users":
        for user in directory.list_all():
            state = "active" if user.can_authenticate else "inactive"
            print(f"{user.user_id}  {user.role.value:<6}  {state:<8}  {user.email}")
        return

    if args.command == "issue-token":
        if not config.token_secret:
            print("Error: TOKEN_SECRET must be set to issue tokens the server accepts", file=sys.stderr)
            sys.exit(1)
        user = directory.get_by_email(args.email)
        if user is None or not user.can_authenticate:
            print(f"Error: no active user with email {args.email}", file=sys.stderr)
            sys.exit(1)
        provider = IdentityProvider(directory, config.token_secret, config.token_ttl_hours)
        print(provider.issue_token(user))
        return

    service = build_property_service(config)
    caller = resolve_acting_caller(directory, args.acting_as)

    try:
        if args.command == "list":
            page = service.list_properties(
                PropertyFilter(
                    status=PropertyStatus(args.status) if args.status else None,
                    min_price=args.min_price,
                    max_price=args.max_price,
                    location=args.location,
                    page=args.page,
                    limit=args.limit,
                    only_mine=args.mine,
                    include_deleted=args.include_deleted,
                ),
                caller,
            )
            print_property_table(page.items)
            info = page.pagination
            print(f"\nPage {info.page}/{info.total_pages} ({info.total} total)")

        elif args.command == "show":
            projection = service.get_property(args.property_id, caller, args.include_deleted)
            print(json.dumps(projection.to_dict(), indent=2))

        elif args.command == "restore":
            projection = service.restore(args.property_id, caller)
            print(f"Restored {projection.id} ({projection.status.value})")

    except PropertyEngineError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
