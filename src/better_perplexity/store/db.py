"""SQLite database connection and schema management.

Provides get_db_connection() context manager and init_db() for schema creation.
Stores the key/value cache table shared by search, fetch, extract and artifacts.
"""

import sqlite3
from contextlib import contextmanager

@contextmanager
def get_db_connection(db_path: str):
    conn = sqlite3.connect(db_path, timeout=5.0)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db(db_path: str):
    schema = """
    CREATE TABLE IF NOT EXISTS cache_entries (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        expires_at REAL NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at);
    """
    with get_db_connection(db_path) as conn:
        conn.executescript(schema)
        conn.commit()
