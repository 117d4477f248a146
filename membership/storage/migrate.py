"""
Schema bootstrap for the `users` table.

SQL files under `migrations/` are applied in filename order, each recorded in
`schema_migrations` with a sha256 of its contents. After the files run,
`backfill_membership_ids` gives every pre-existing account a membership id.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from membership.auth.ids import RandomSource, generate_membership_id
from membership.storage.config import DbConfig, build_postgres_dsn, load_db_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# pg_advisory_lock key held by whichever process is upgrading the users schema.
MIGRATION_LOCK_KEY = 417230955116

# Attempts per legacy row before giving up on a unique membership id.
_BACKFILL_ATTEMPTS = 3


@dataclass(frozen=True)
class Migration:
    version: str  # filename prefix before the first "_", e.g. "001"
    path: Path
    checksum: str
    sql: str


def load_migrations() -> List[Migration]:
    if not MIGRATIONS_DIR.is_dir():
        return []
    out: List[Migration] = []
    for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
        raw = path.read_bytes()
        out.append(
            Migration(
                version=path.name.split("_", 1)[0],
                path=path,
                checksum=hashlib.sha256(raw).hexdigest(),
                sql=raw.decode("utf-8"),
            )
        )
    return out


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def ensure_schema_migrations_table(conn) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version text PRIMARY KEY,
          checksum text NOT NULL,
          applied_at timestamptz NOT NULL DEFAULT now()
        );
        """)


def _applied_checksums(conn) -> Dict[str, str]:
    rows = conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()
    return {str(version): str(checksum) for version, checksum in rows}


def backfill_membership_ids(conn, rng: Optional[RandomSource] = None) -> int:
    """
    Assign membership ids to legacy rows that have none, then make the column NOT NULL.

    Returns: number of rows updated
    """
    from psycopg import errors as pg_errors

    rows = conn.execute("SELECT id FROM users WHERE membership_id IS NULL ORDER BY id;").fetchall()
    updated = 0
    for (user_id,) in rows:
        for attempt in range(1, _BACKFILL_ATTEMPTS + 1):
            try:
                # Savepoint per attempt so a collision does not abort the outer transaction.
                with conn.transaction():
                    conn.execute(
                        "UPDATE users SET membership_id = %s WHERE id = %s;",
                        (generate_membership_id(rng), user_id),
                    )
                updated += 1
                break
            except pg_errors.UniqueViolation:
                if attempt == _BACKFILL_ATTEMPTS:
                    raise
                logger.warning("Membership id collision while backfilling user %s, retrying", user_id)
    conn.execute("ALTER TABLE users ALTER COLUMN membership_id SET NOT NULL;")
    return updated


def apply_migrations(
    *,
    dsn: str,
    migrations: Optional[Iterable[Migration]] = None,
) -> Tuple[int, List[str]]:
    """
    Bring the users schema up to date and backfill missing membership ids.

    A file whose checksum differs from the recorded one was edited after it
    shipped; that raises RuntimeError instead of re-running it.

    Returns: (applied_count, applied_versions)
    """
    pending = list(migrations) if migrations is not None else load_migrations()
    applied_versions: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            ensure_schema_migrations_table(conn)
            recorded = _applied_checksums(conn)

            for m in pending:
                checksum = recorded.get(m.version)
                if checksum == m.checksum:
                    continue
                if checksum is not None:
                    raise RuntimeError(
                        f"Migration {m.version} changed since it was applied: db={checksum[:12]} file={m.checksum[:12]}"
                    )
                # The schema change and its bookkeeping row commit together.
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s (%s)", m.version, m.path.name)
                applied_versions.append(m.version)

            with conn.transaction():
                n = backfill_membership_ids(conn)
            if n:
                logger.info("Backfilled membership ids for %d legacy user(s)", n)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))

    return len(applied_versions), applied_versions


def maybe_auto_migrate(cfg: Optional[DbConfig] = None) -> Tuple[bool, str]:
    """
    Startup hook: migrate only when DB_AUTO_MIGRATE is on and a database is configured.

    Never raises; the second element says what happened.
    """
    cfg = cfg or load_db_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    try:
        n, versions = apply_migrations(dsn=dsn)
    except Exception as e:
        return True, f"Migration failed: {e}"
    if n:
        return True, f"Applied {n} migration(s): {', '.join(versions)}"
    return True, "Schema already up to date"
