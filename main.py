#!/usr/bin/env python3
"""
Membership service - user accounts with local and Google sign-in.
"""

import argparse
import getpass
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep membership imports lazy (inside functions) so `--help` works without
# the database/web extras installed.
#


def _require_dsn() -> str:
    from membership.storage.config import build_postgres_dsn, load_db_config

    dsn = build_postgres_dsn(load_db_config())
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
        raise SystemExit(2)
    return dsn


def migrate() -> int:
    from membership.storage.migrate import apply_migrations

    n, versions = apply_migrations(dsn=_require_dsn())
    if n:
        print(f"Applied {n} migration(s): {', '.join(versions)}")
    else:
        print("No pending migrations.")
    return 0


def list_users() -> int:
    from membership.storage.pg_store import PostgresAccountStore

    store = PostgresAccountStore(_require_dsn())
    print(json.dumps([a.to_dict() for a in store.list_all()], indent=2))
    return 0


def create_user(username: str, password: str | None) -> int:
    """Create a local account directly against the configured database."""
    from membership.auth.config import load_auth_config
    from membership.auth.errors import AccountError
    from membership.auth.passwords import PasswordHasher
    from membership.auth.session import SessionManager
    from membership.auth.util import random_token
    from membership.auth.workflow import AccountService
    from membership.storage.pg_store import PostgresAccountStore

    cfg = load_auth_config()
    if password is None:
        password = getpass.getpass("Password: ")

    # Sessions are never issued here; an ephemeral key keeps SESSION_SECRET optional.
    service = AccountService(
        PostgresAccountStore(_require_dsn()),
        PasswordHasher(rounds=cfg.bcrypt_rounds),
        SessionManager(random_token(32), ttl_seconds=cfg.session_ttl_seconds),
    )
    try:
        result = service.signup(username, password)
    except AccountError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    print(json.dumps({"membership_id": result.membership_id, "username": result.username}))
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Membership account service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Apply database migrations (and backfill legacy membership ids)
  python main.py --migrate

  # Run the HTTP server
  python main.py --serve --port 8080

  # Create a local account
  python main.py --create-user alice
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument("--migrate", action="store_true", help="Apply pending database migrations and exit")
    parser.add_argument("--list-users", action="store_true", help="Print all accounts as JSON and exit")
    parser.add_argument("--create-user", metavar="USERNAME", help="Create a local account and exit")
    parser.add_argument("--password", help="Password for --create-user (prompted if omitted)")

    args = parser.parse_args()

    try:
        if args.migrate:
            raise SystemExit(migrate())

        if args.list_users:
            raise SystemExit(list_users())

        if args.create_user:
            raise SystemExit(create_user(args.create_user, args.password))

        if args.serve:
            from membership.api.app import run

            run(host=args.host, port=args.port)
            return

        parser.print_help()

    except SystemExit:
        raise
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
