from __future__ import annotations

import os

import psycopg2

from crm_import.models.config_models import DatabaseConfig

from .store import Store, StoreError

"""Store connection lifecycle.

Connection parameters are resolved in this order:
    1. DATABASE_URL / PGDSN (whole DSN; .env is loaded with override before this)
    2. individual PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the `database` section of config/import.yml as fallback (its `dsn`
       only when no PG* variable is set, otherwise the individual fields)

The CLI opens one Store at run start and closes it in a finally block and in
the SIGINT/SIGTERM handler; nothing else holds a connection.
"""

__all__ = [
    "resolve_dsn",
    "open_store",
]


PG_ENV_VARS = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN")
    if dsn:
        return dsn
    # PG* が 1 つでも設定されていれば設定ファイルの dsn より優先
    if db_cfg.dsn and not any(os.getenv(k) for k in PG_ENV_VARS):
        return db_cfg.dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def open_store(db_cfg: DatabaseConfig) -> Store:
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise StoreError(f"cannot connect: {str(e).strip()}") from e
    # 1 文ごとに確定 (再実行時は自然キー検索で冪等性を担保)
    conn.autocommit = True
    return Store(conn)
