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

        # 2. Root folders registered for scanning
        conn.execute("""
        CREATE TABLE IF NOT EXISTS project_folders (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            folder_path     TEXT UNIQUE NOT NULL,
            date_added      TEXT NOT NULL
        );
        """)

        # 3. One row per tracked image file
        conn.execute("""
        CREATE TABLE IF NOT EXISTS images (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            file_path       TEXT UNIQUE NOT NULL,
            file_name       TEXT NOT NULL,
            file_hash       TEXT NOT NULL DEFAULT '',   -- Full SHA-256, '' if unreadable
            file_size       INTEGER NOT NULL,
            date_modified   REAL NOT NULL,              -- mtime at last sync
            date_imported   TEXT NOT NULL,
            width           INTEGER,
            height          INTEGER,
            status          TEXT NOT NULL DEFAULT 'ok', -- ok/missing/modified/conflict
            user_status     TEXT NOT NULL DEFAULT '',
            rating          INTEGER NOT NULL DEFAULT 0,
            tags            TEXT NOT NULL DEFAULT ''
        );
        """)

        # 4. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_images_hash ON images(file_hash);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_images_status ON images(status);")

    logging.debug("Database schema initialized.")


def get_schema_version(conn: sqlite3.Connection) -> int:
    cur = conn.cursor()
    cur.execute("SELECT MAX(version) FROM schema_version")
    row = cur.fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def migrate_schema(conn: sqlite3.Connection):
    """
    Brings an existing catalog up to CURRENT_SCHEMA_VERSION.
    Version 1 is the first layout, so only the version marker moves.
    """
    init_schema(conn)
    version = get_schema_version(conn)
    if version > CURRENT_SCHEMA_VERSION:
        logging.warning(f"Catalog schema v{version} is newer than supported v{CURRENT_SCHEMA_VERSION}.")
        return
    if version < CURRENT_SCHEMA_VERSION:
        with conn:
            conn.execute("DELETE FROM schema_version")
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))
        logging.info(f"Catalog schema migrated v{version} -> v{CURRENT_SCHEMA_VERSION}.")
