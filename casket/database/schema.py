"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1


def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. One row per imported file; original_path is the dedup key
        conn.execute("""
        CREATE TABLE IF NOT EXISTS media_items (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            original_path     TEXT NOT NULL UNIQUE,
            stored_path       TEXT NOT NULL,
            thumbnail_path    TEXT NOT NULL,
            capture_date      TEXT NOT NULL,       -- ISO 8601
            datetime_indexed  TEXT NOT NULL,       -- YYYYMMDDHH for range filters
            date_source       TEXT NOT NULL,
            file_kind         TEXT NOT NULL,
            camera_make       TEXT,
            camera_model      TEXT,
            orientation       INTEGER,
            width             INTEGER,
            height            INTEGER,
            created_at        TEXT NOT NULL
        );
        """)

        # 3. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_items_indexed ON media_items(datetime_indexed);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_media_items_kind ON media_items(file_kind);")

    logging.debug("Database schema initialized.")
