"""
Database CRUD Operations Module

This module handles all database CRUD operations for:
- App Config (settings and named options)
- Job Store (expiring key-value rows for background jobs)
- Managed Assistants
- Workflows
- Posts and their translation status

For schema management, see core/schema.py
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any

DB_FILE = Path(__file__).parent.parent.parent / "polytrans.db"

ASSISTANT_JSON_FIELDS = ("api_parameters", "expected_output_schema", "output_variables")
POST_JSON_FIELDS = ("meta", "featured_image")


def get_connection():
    """Get a database connection."""
    return sqlite3.connect(DB_FILE)


def _decode_json_fields(row: Dict[str, Any], fields) -> Dict[str, Any]:
    for field_name in fields:
        value = row.get(field_name)
        if isinstance(value, str) and value:
            try:
                row[field_name] = json.loads(value)
            except json.JSONDecodeError:
                row[field_name] = None
    return row


def _encode_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


# ============================================================
# App Config CRUD Operations
# ============================================================

def get_app_config(key: str) -> Optional[str]:
    """Get a configuration value by key."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(key: str, value: str):
    """Set a configuration value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO app_config (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, datetime.now().isoformat()))
        conn.commit()


def delete_app_config(key: str):
    """Delete a configuration value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM app_config WHERE key = ?", (key,))
        conn.commit()


# ============================================================
# Job Store Operations
# ============================================================

def job_store_set(key: str, value: str, expires_at: Optional[float]):
    """Write a job store row, replacing any previous value for the key."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO job_store (key, value, expires_at)
            VALUES (?, ?, ?)
        """, (key, value, expires_at))
        conn.commit()


def job_store_add(key: str, value: str, expires_at: Optional[float], now: float) -> bool:
    """
    Write a job store row only when no live row holds the key.

    Runs in an immediate transaction: writers on other connections wait
    until it commits.
    """
    conn = get_connection()
    conn.isolation_level = None
    try:
        cursor = conn.cursor()
        cursor.execute("BEGIN IMMEDIATE")
        cursor.execute(
            "DELETE FROM job_store WHERE key = ? AND expires_at IS NOT NULL AND expires_at <= ?",
            (key, now),
        )
        cursor.execute("""
            INSERT OR IGNORE INTO job_store (key, value, expires_at)
            VALUES (?, ?, ?)
        """, (key, value, expires_at))
        added = cursor.rowcount == 1
        cursor.execute("COMMIT")
        return added
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def job_store_get(key: str, now: float) -> Optional[str]:
    """Read a job store row; expired rows are treated as absent."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT value FROM job_store
            WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
        """, (key, now))
        row = cursor.fetchone()
        return row[0] if row else None


def job_store_delete(key: str) -> bool:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM job_store WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0


def job_store_purge_expired(now: float) -> int:
    """Delete expired rows and return how many were removed."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM job_store WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (now,),
        )
        conn.commit()
        return cursor.rowcount


# ============================================================
# Managed Assistant CRUD Operations
# ============================================================

def create_assistant(data: Dict[str, Any]) -> int:
    """Create a managed assistant record."""
    now = datetime.now().isoformat()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO assistants (
                name, description, provider, status, system_prompt,
                user_message_template, api_parameters, expected_format,
                expected_output_schema, output_variables, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            data["name"],
            data.get("description", ""),
            data.get("provider", "openai"),
            data.get("status", "active"),
            data["system_prompt"],
            data.get("user_message_template", ""),
            _encode_json(data.get("api_parameters") or {}),
            data.get("expected_format", "text"),
            _encode_json(data.get("expected_output_schema")),
            _encode_json(data.get("output_variables") or []),
            now,
            now,
        ))
        conn.commit()
        return cursor.lastrowid


def get_assistant(assistant_id: int) -> Optional[Dict[str, Any]]:
    """Get a managed assistant by ID."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM assistants WHERE id = ?", (assistant_id,))
        row = cursor.fetchone()
        return _decode_json_fields(dict(row), ASSISTANT_JSON_FIELDS) if row else None


def get_all_assistants(status: str = None) -> List[Dict[str, Any]]:
    """Get all managed assistants, optionally filtered by status."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        if status:
            cursor.execute("SELECT * FROM assistants WHERE status = ? ORDER BY name", (status,))
        else:
            cursor.execute("SELECT * FROM assistants ORDER BY name")
        return [_decode_json_fields(dict(row), ASSISTANT_JSON_FIELDS) for row in cursor.fetchall()]


def update_assistant(assistant_id: int, data: Dict[str, Any]) -> bool:
    """Update the given fields of a managed assistant."""
    columns = (
        "name", "description", "provider", "status", "system_prompt",
        "user_message_template", "api_parameters", "expected_format",
        "expected_output_schema", "output_variables",
    )
    updates = []
    params = []
    for column in columns:
        if column not in data:
            continue
        value = data[column]
        if column in ASSISTANT_JSON_FIELDS:
            value = _encode_json(value)
        updates.append(f"{column} = ?")
        params.append(value)

    if not updates:
        return False

    updates.append("updated_at = ?")
    params.append(datetime.now().isoformat())
    params.append(assistant_id)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE assistants SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        return cursor.rowcount > 0


def delete_assistant(assistant_id: int) -> bool:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM assistants WHERE id = ?", (assistant_id,))
        conn.commit()
        return cursor.rowcount > 0


# ============================================================
# Workflow CRUD Operations
# ============================================================

def save_workflow(workflow_id: str, name: str, language: str, enabled: bool, definition: str):
    """Insert or replace a workflow definition."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO workflows (id, name, language, enabled, definition, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (workflow_id, name, language, 1 if enabled else 0, definition, datetime.now().isoformat()))
        conn.commit()


def get_workflow(workflow_id: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM workflows WHERE id = ?", (workflow_id,))
        row = cursor.fetchone()
        return dict(row) if row else None


def get_all_workflows(language: str = None) -> List[Dict[str, Any]]:
    """Get all workflows, optionally only those for one language."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        if language:
            cursor.execute("SELECT * FROM workflows WHERE language = ? ORDER BY name", (language,))
        else:
            cursor.execute("SELECT * FROM workflows ORDER BY name")
        return [dict(row) for row in cursor.fetchall()]


def delete_workflow(workflow_id: str) -> bool:
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM workflows WHERE id = ?", (workflow_id,))
        conn.commit()
        return cursor.rowcount > 0


# ============================================================
# Post CRUD Operations
# ============================================================

def create_post(language: str, title: str = "", content: str = "", excerpt: str = "",
                meta: Dict[str, Any] = None, featured_image: Dict[str, Any] = None,
                status: str = "draft", source_post_id: int = None, published_at: str = None) -> int:
    """Create a post holding one content bundle."""
    now = datetime.now().isoformat()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO posts (
                language, status, title, content, excerpt, meta,
                featured_image, source_post_id, published_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            language, status, title, content, excerpt,
            _encode_json(meta or {}), _encode_json(featured_image),
            source_post_id, published_at, now, now,
        ))
        conn.commit()
        return cursor.lastrowid


def get_post(post_id: int) -> Optional[Dict[str, Any]]:
    """Get a post by ID."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM posts WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        if not row:
            return None
        post = _decode_json_fields(dict(row), POST_JSON_FIELDS)
        if not isinstance(post.get("meta"), dict):
            post["meta"] = {}
        return post


def update_post(post_id: int, **fields) -> bool:
    """Update post columns (title, content, excerpt, meta, featured_image, status, published_at)."""
    allowed = ("title", "content", "excerpt", "meta", "featured_image", "status", "published_at")
    updates = []
    params = []
    for column in allowed:
        if column not in fields:
            continue
        value = fields[column]
        if column in POST_JSON_FIELDS:
            value = _encode_json(value)
        updates.append(f"{column} = ?")
        params.append(value)

    if not updates:
        return False

    updates.append("updated_at = ?")
    params.append(datetime.now().isoformat())
    params.append(post_id)

    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE posts SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        return cursor.rowcount > 0


def get_recent_posts(language: str = None, limit: int = 20, exclude_post_id: int = None) -> List[Dict[str, Any]]:
    """Published posts, newest first; publish date falls back to creation date."""
    query = "SELECT * FROM posts WHERE status = 'publish'"
    params: List[Any] = []
    if language:
        query += " AND language = ?"
        params.append(language)
    if exclude_post_id:
        query += " AND id != ?"
        params.append(exclude_post_id)
    query += " ORDER BY COALESCE(published_at, created_at) DESC, id DESC LIMIT ?"
    params.append(limit)

    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute(query, params)
        posts = [_decode_json_fields(dict(row), POST_JSON_FIELDS) for row in cursor.fetchall()]
    for post in posts:
        if not isinstance(post.get("meta"), dict):
            post["meta"] = {}
    return posts


def set_translation_status(post_id: int, target_language: str, status: str,
                           translated_post_id: int = None, error: str = None):
    """Record the translation status of a post for one target language."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO post_translations (post_id, target_language, status, translated_post_id, error, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(post_id, target_language) DO UPDATE SET
                status = excluded.status,
                translated_post_id = COALESCE(excluded.translated_post_id, post_translations.translated_post_id),
                error = excluded.error,
                updated_at = excluded.updated_at
        """, (post_id, target_language, status, translated_post_id, error, datetime.now().isoformat()))
        conn.commit()


def get_translation_status(post_id: int, target_language: str) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM post_translations WHERE post_id = ? AND target_language = ?
        """, (post_id, target_language))
        row = cursor.fetchone()
        return dict(row) if row else None
