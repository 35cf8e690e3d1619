from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
import psycopg2.extensions

from config.settings import settings


def _pg_dsn() -> Optional[str]:
    host = os.environ.get("PGHOST")
    db = os.environ.get("PGDATABASE")
    user = os.environ.get("PGUSER")
    pwd = os.environ.get("PGPASSWORD")
    port = os.environ.get("PGPORT")
    sslmode = os.environ.get("PGSSLMODE")

    host = host or settings.db_host
    db = db or settings.db_name
    user = user or settings.db_user
    pwd = pwd or settings.db_password
    port = port or str(settings.db_port or 5432)

    if not host:
        return None

    parts = [f"host={host}", f"port={port}"]
    if db:
        parts.append(f"dbname={db}")
    if user:
        parts.append(f"user={user}")
    if pwd:
        parts.append(f"password={pwd}")
    if sslmode:
        parts.append(f"sslmode={sslmode}")
    return " ".join(parts)


def _sqlite_path() -> str:
    return os.environ.get("SQLITE_PATH") or settings.sqlite_path


@contextmanager
def get_conn() -> Iterator[Any]:
    """Yield a PostgreSQL connection when configured, SQLite otherwise.

    Both connections run in autocommit mode so every statement issued by the
    repositories is atomic on its own.
    """

    dsn = _pg_dsn()
    if dsn:
        conn = psycopg2.connect(dsn)
        conn.autocommit = True
    else:
        conn = sqlite3.connect(_sqlite_path(), timeout=30, isolation_level=None)
    try:
        yield conn
    finally:
        conn.close()


def is_sqlite(conn: Any) -> bool:
    return isinstance(conn, sqlite3.Connection)


def execute(conn: Any, query: str, params: tuple = ()) -> Any:
    """Run ``query`` written with ``?`` placeholders on either backend."""

    if isinstance(conn, psycopg2.extensions.connection):
        query = query.replace("?", "%s")
    cur = conn.cursor()
    cur.execute(query, params)
    return cur


def fetch_dicts(cur: Any) -> List[Dict[str, Any]]:
    columns = [col[0] for col in (cur.description or [])]
    rows = [dict(zip(columns, row)) for row in cur.fetchall()]
    cur.close()
    return rows


def fetch_one_dict(cur: Any) -> Optional[Dict[str, Any]]:
    rows = fetch_dicts(cur)
    return rows[0] if rows else None


def run_ddl(pg_ddl: str, sqlite_ddl: str) -> None:
    with get_conn() as conn:
        cur = conn.cursor()
        if is_sqlite(conn):
            cur.executescript(sqlite_ddl)
        else:
            cur.execute(pg_ddl)
        cur.close()


def to_db_timestamp(conn: Any, value: Optional[datetime]) -> Any:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="microseconds") if is_sqlite(conn) else value


def from_db_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_db_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def from_db_json(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list)):
        return value
    return json.loads(value)
