"""
Database Schema Management Module

This module handles database initialization and schema versioning.
For CRUD operations, see core/database.py
"""

import sqlite3

# Import database module to use DB_FILE and get_connection dynamically
# This ensures monkeypatching in tests works correctly
import polytrans.core.database as db

DB_VERSION = 2

TABLES = {
    "app_config": """
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "job_store": """
        CREATE TABLE IF NOT EXISTS job_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            expires_at REAL
        )
    """,
    "assistants": """
        CREATE TABLE IF NOT EXISTS assistants (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            provider TEXT NOT NULL DEFAULT 'openai',
            status TEXT NOT NULL DEFAULT 'active',
            system_prompt TEXT NOT NULL,
            user_message_template TEXT,
            api_parameters TEXT,
            expected_format TEXT NOT NULL DEFAULT 'text',
            expected_output_schema TEXT,
            output_variables TEXT,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        )
    """,
    "workflows": """
        CREATE TABLE IF NOT EXISTS workflows (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            language TEXT,
            enabled INTEGER DEFAULT 1,
            definition TEXT NOT NULL,
            updated_at TIMESTAMP
        )
    """,
    "posts": """
        CREATE TABLE IF NOT EXISTS posts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            language TEXT NOT NULL,
            status TEXT DEFAULT 'draft',
            title TEXT,
            content TEXT,
            excerpt TEXT,
            meta TEXT,
            featured_image TEXT,
            source_post_id INTEGER,
            published_at TIMESTAMP,
            created_at TIMESTAMP,
            updated_at TIMESTAMP,
            FOREIGN KEY (source_post_id) REFERENCES posts (id) ON DELETE SET NULL
        )
    """,
    "post_translations": """
        CREATE TABLE IF NOT EXISTS post_translations (
            post_id INTEGER NOT NULL,
            target_language TEXT NOT NULL,
            status TEXT NOT NULL,
            translated_post_id INTEGER,
            error TEXT,
            updated_at TIMESTAMP,
            PRIMARY KEY (post_id, target_language)
        )
    """,
}

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_job_store_expires ON job_store (expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_workflows_language ON workflows (language)",
    "CREATE INDEX IF NOT EXISTS idx_posts_source ON posts (source_post_id)",
    "CREATE INDEX IF NOT EXISTS idx_posts_language_status ON posts (language, status)",
)


def get_connection():
    """Get a database connection using the database module's DB_FILE."""
    return db.get_connection()


def get_db_version() -> int:
    """Get current database version."""
    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT version FROM db_version LIMIT 1")
            row = cursor.fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(version: int):
    """Set database version."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        cursor.execute("DELETE FROM db_version")
        cursor.execute("INSERT INTO db_version (version) VALUES (?)", (version,))
        conn.commit()


def initialize_database():
    """Creates any missing tables and indexes, then records the schema version."""
    from polytrans.logger import get_logger
    logger = get_logger(__name__)

    db.DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    current_version = get_db_version()

    with get_connection() as conn:
        cursor = conn.cursor()
        for table_name, statement in TABLES.items():
            cursor.execute(statement)
            logger.debug(f"Ensured table {table_name}")
        conn.commit()

    ensure_posts_schema()

    with get_connection() as conn:
        cursor = conn.cursor()
        for statement in INDEXES:
            cursor.execute(statement)
        conn.commit()

    if current_version != DB_VERSION:
        set_db_version(DB_VERSION)
        logger.info(f"Database schema set to version {DB_VERSION} (was {current_version})")


def ensure_posts_schema():
    """Add posts columns introduced after version 1."""
    from polytrans.logger import get_logger
    logger = get_logger(__name__)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("PRAGMA table_info(posts)")
        existing_cols = {row[1] for row in cursor.fetchall()}

        if "published_at" not in existing_cols:
            logger.info("Adding published_at column to posts table")
            cursor.execute("ALTER TABLE posts ADD COLUMN published_at TIMESTAMP")

        conn.commit()
