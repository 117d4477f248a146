from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_first(*names: str) -> Optional[str]:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class DbConfig:
    db_auto_migrate: bool

    # Postgres connection (either dsn or parts)
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]


def load_db_config() -> DbConfig:
    """
    Load Postgres settings from the environment.

    POSTGRES_* names win; DB_USER / DB_PASSWORD / DB_NAME are accepted for older deployments.
    """
    dsn = _env_first("POSTGRES_DSN")
    host = _env_first("POSTGRES_HOST", "DB_HOST")
    port_raw = _env_first("POSTGRES_PORT", "DB_PORT") or "5432"
    try:
        port = int(port_raw)
    except Exception:
        port = 5432

    return DbConfig(
        db_auto_migrate=_env_bool("DB_AUTO_MIGRATE", False),
        postgres_dsn=dsn,
        postgres_host=host,
        postgres_port=port,
        postgres_db=_env_first("POSTGRES_DB", "DB_NAME"),
        postgres_user=_env_first("POSTGRES_USER", "DB_USER"),
        postgres_password=_env_first("POSTGRES_PASSWORD", "DB_PASSWORD"),
    )


def build_postgres_dsn(cfg: DbConfig) -> Optional[str]:
    if cfg.postgres_dsn:
        return cfg.postgres_dsn
    if not (cfg.postgres_db and cfg.postgres_user):
        return None
    # psycopg's conninfo builder quotes/escapes special characters in passwords.
    from psycopg.conninfo import make_conninfo

    parts = {
        "host": cfg.postgres_host or "localhost",
        "port": cfg.postgres_port,
        "dbname": cfg.postgres_db,
        "user": cfg.postgres_user,
    }
    if cfg.postgres_password:
        parts["password"] = cfg.postgres_password
    return make_conninfo(**parts)
