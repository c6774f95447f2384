"""
SQLAlchemy engine and schema helpers for the postal_codes reference table.

The table is populated by the external import pipeline; init_schema exists for
local development and tests.
"""
from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

_TABLE_DDL = (
    """
    CREATE TABLE IF NOT EXISTS postal_codes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        country_code TEXT NOT NULL,
        postal_code TEXT NOT NULL,
        place_name TEXT NOT NULL,
        admin_name1 TEXT,
        admin_code1 TEXT,
        admin_name2 TEXT,
        admin_code2 TEXT,
        admin_name3 TEXT,
        admin_code3 TEXT,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        accuracy INTEGER DEFAULT 6,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_postal_codes_country_postal ON postal_codes(country_code, postal_code)",
    "CREATE INDEX IF NOT EXISTS idx_postal_codes_country_place ON postal_codes(country_code, place_name)",
)

_FTS_DDL = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS postal_codes_fts USING fts5(
        place_name, admin_name1, admin_name2, admin_name3,
        content='postal_codes', content_rowid='id'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS postal_codes_fts_insert AFTER INSERT ON postal_codes BEGIN
        INSERT INTO postal_codes_fts(rowid, place_name, admin_name1, admin_name2, admin_name3)
        VALUES (new.id, new.place_name, new.admin_name1, new.admin_name2, new.admin_name3);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS postal_codes_fts_delete AFTER DELETE ON postal_codes BEGIN
        INSERT INTO postal_codes_fts(postal_codes_fts, rowid, place_name, admin_name1, admin_name2, admin_name3)
        VALUES ('delete', old.id, old.place_name, old.admin_name1, old.admin_name2, old.admin_name3);
    END
    """,
)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def create_db_engine(database_url: str) -> Engine:
    """Engine for the reference table.

    SQLite connections get a py_lower() function: the built-in LOWER() and LIKE
    only fold ASCII, so "Überlingen" would never match "überlingen".
    """
    connect_args = {}
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args=connect_args)

    # check_same_thread=False allows usage from the FastAPI thread pool
    connect_args["check_same_thread"] = False
    engine = create_engine(database_url, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_conn, connection_record):
        dbapi_conn.create_function("py_lower", 1, _unicode_lower, deterministic=True)

    return engine


def init_schema(engine: Engine, *, full_text: bool = True) -> bool:
    """Create tables if they don't exist. Returns whether the FTS index is available."""
    with engine.begin() as conn:
        for ddl in _TABLE_DDL:
            conn.execute(text(ddl))

    if not full_text:
        return False

    try:
        with engine.begin() as conn:
            for ddl in _FTS_DDL:
                conn.execute(text(ddl))
    except OperationalError:
        logger.warning("FTS5 is not available in this SQLite build; full-text search disabled")
        return False
    return True
