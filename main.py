#!/usr/bin/env python3
"""
TenantGuard -- operator CLI for the multi-tenant identity core.

Runs the same workflows as the HTTP API, against the same database, without
a server. Intended for first-time setup and break-glass recovery.

Usage:
  python main.py bootstrap-super-admin --email root@example.com
  python main.py reset-super-admin-password --email root@example.com
  python main.py create-tenant --admin-email root@example.com --code ACME --name "Acme Ltd" --email ops@acme.test
  python main.py list-tenants --include-inactive

Secrets and passwords are prompted for (no echo) unless given on the command
line. Passing them as arguments leaves them in shell history.

Environment variables:
  DATABASE_URL          SQLAlchemy URL (default: sqlite:///tenantguard.db)
  ACCESS_TOKEN_SECRET   Required unless DEBUG=true
  REFRESH_TOKEN_SECRET  Required unless DEBUG=true
  BOOTSTRAP_SECRET      Enables bootstrap-super-admin
  RESET_SECRET          Enables reset-super-admin-password
"""

import argparse
import getpass
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

from auth.errors import IdentityError
from auth.models import BootstrapCommand, LoginCommand
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.database import Database
from tenants.models import CreateTenantCommand
from tenants.service import TenantService
from tenants.store import TenantStore

logger = logging.getLogger("tenantguard.cli")


class _Services:
    """The object graph the CLI needs, built once from Settings."""

    def __init__(self, settings: Settings) -> None:
        self.db = Database(settings.database_url)
        self.tenant_store = TenantStore(self.db)
        self.user_store = UserStore(self.db)
        self.tokens = TokenService.from_settings(settings)
        self.auth = AuthenticationService.from_settings(
            settings, self.db, self.user_store, self.tenant_store, self.tokens
        )
        self.tenants = TenantService(self.db, self.tenant_store)

    def close(self) -> None:
        self.db.close()


def _secret(value: Optional[str], prompt: str) -> str:
    return value if value is not None else getpass.getpass(prompt)


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number") from None


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_bootstrap(services: _Services, args: argparse.Namespace) -> int:
    user = services.auth.bootstrap_super_admin(
        BootstrapCommand(
            secret=_secret(args.secret, "Bootstrap secret: "),
            email=args.email,
            display_name=args.display_name,
            password=_secret(args.password, "Super admin password (blank = configured default): ") or None,
        )
    )
    print(f"  Super admin created: id={user.id} email={user.email}")
    print("  Unset BOOTSTRAP_SECRET now that initial setup is done.")
    return 0


def cmd_reset(services: _Services, args: argparse.Namespace) -> int:
    user = services.auth.reset_super_admin_password(
        _secret(args.secret, "Reset secret: "),
        args.email,
        _secret(args.password, "New password: "),
    )
    print(f"  Password reset and lockout cleared for {user.email}.")
    return 0


def cmd_create_tenant(services: _Services, args: argparse.Namespace) -> int:
    login = services.auth.login(
        LoginCommand(email=args.admin_email, password=_secret(args.admin_password, f"Password for {args.admin_email}: "))
    )
    claims = services.tokens.verify_access_token(login.tokens.access_token)
    tenant, ledger = services.tenants.create_tenant(
        claims,
        CreateTenantCommand(
            code=args.code,
            name=args.name,
            email=args.email,
            default_currency=args.currency,
            minimum_balance=args.minimum_balance,
            phone=args.phone,
            country=args.country,
            address=args.address,
        ),
    )
    print(f"  Tenant created: id={tenant.id} code={tenant.code} ledger={ledger.id} ({ledger.currency})")
    return 0


def cmd_list_tenants(services: _Services, args: argparse.Namespace) -> int:
    tenants = services.tenants.list_all(include_inactive=args.include_inactive)
    if not tenants:
        print("  No tenants.")
        return 0
    print(f"  {'ID':>5}  {'CODE':<32}  {'ACTIVE':<6}  NAME")
    for t in tenants:
        print(f"  {t.id:>5}  {t.code:<32}  {'yes' if t.is_active else 'no':<6}  {t.name}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenantguard",
        description="Operator CLI for the TenantGuard identity core.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py bootstrap-super-admin --email root@example.com
  python main.py reset-super-admin-password --email root@example.com
  python main.py create-tenant --admin-email root@example.com --code ACME --name "Acme Ltd" --email ops@acme.test
  python main.py list-tenants
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("bootstrap-super-admin", help="Create the first super admin (needs BOOTSTRAP_SECRET)")
    p.add_argument("--secret", help="Bootstrap secret (prompted if omitted)")
    p.add_argument("--email", help="Super admin email (default: superadmin@example.com)")
    p.add_argument("--display-name", help="Display name (default: Super Administrator)")
    p.add_argument("--password", help="Initial password (prompted if omitted; blank = DEFAULT_PASSWORD)")
    p.set_defaults(handler=cmd_bootstrap)

    p = sub.add_parser("reset-super-admin-password", help="Emergency super admin reset (needs RESET_SECRET)")
    p.add_argument("--secret", help="Reset secret (prompted if omitted)")
    p.add_argument("--email", required=True, help="Email of the super admin to reset")
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(handler=cmd_reset)

    p = sub.add_parser("create-tenant", help="Create a tenant and its ledger (logs in as a super admin)")
    p.add_argument("--admin-email", required=True, help="Super admin email to act as")
    p.add_argument("--admin-password", help="Super admin password (prompted if omitted)")
    p.add_argument("--code", required=True, help="Tenant code: 3-32 of A-Z, 0-9, _")
    p.add_argument("--name", required=True, help="Tenant display name")
    p.add_argument("--email", required=True, help="Tenant contact email")
    p.add_argument("--currency", default="EGP", help="Default ISO currency (default: EGP)")
    p.add_argument("--minimum-balance", type=_decimal, default=Decimal("0"), help="Minimum balance (default: 0)")
    p.add_argument("--phone")
    p.add_argument("--country")
    p.add_argument("--address")
    p.set_defaults(handler=cmd_create_tenant)

    p = sub.add_parser("list-tenants", help="List tenants, newest first")
    p.add_argument("--include-inactive", action="store_true", help="Include deactivated tenants")
    p.set_defaults(handler=cmd_list_tenants)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    services = _Services(get_settings())
    try:
        return args.handler(services, args)
    except IdentityError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        for field, reason in getattr(exc, "errors", {}).items():
            print(f"      {field}: {reason}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
