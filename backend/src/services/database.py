"""SQLite database helpers for the document store schema."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sqlite3
from typing import Iterable

from .config import DEFAULT_DB_PATH

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS folders (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        parent_id TEXT,
        name TEXT NOT NULL,
        path TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (user_id, path)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_folders_user_path ON folders(user_id, path)",
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        folder_id TEXT REFERENCES folders(id) ON DELETE SET NULL,
        original_filename TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size_bytes INTEGER NOT NULL DEFAULT 0,
        document_category TEXT,
        extracted_date TEXT,
        created_at TEXT NOT NULL,
        has_meaningful_text INTEGER NOT NULL DEFAULT 0,
        llm_summary TEXT,
        llm_metadata TEXT,
        thumbnail_path TEXT,
        thumbnail_blurhash TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_user_created ON documents(user_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_documents_user_has_text ON documents(user_id, has_meaningful_text)",
    "CREATE INDEX IF NOT EXISTS idx_documents_user_category ON documents(user_id, document_category)",
    "CREATE INDEX IF NOT EXISTS idx_documents_user_mime ON documents(user_id, mime_type)",
    "CREATE INDEX IF NOT EXISTS idx_documents_size ON documents(user_id, size_bytes)",
    "CREATE INDEX IF NOT EXISTS idx_documents_folder ON documents(folder_id)",
    """
    CREATE TABLE IF NOT EXISTS ocr_results (
        document_id TEXT PRIMARY KEY REFERENCES documents(id) ON DELETE CASCADE,
        confidence_score REAL,
        metadata TEXT
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS document_fts USING fts5(
        document_id UNINDEXED,
        raw_text,
        tokenize='porter unicode61',
        prefix='2 3'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS document_tags (
        document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
        tag TEXT NOT NULL,
        source TEXT NOT NULL DEFAULT 'user',
        created_at TEXT NOT NULL,
        PRIMARY KEY (document_id, tag)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_document_tags_tag ON document_tags(tag)",
)


def to_db_timestamp(value: datetime) -> str:
    """
    Serialize a datetime as a fixed-width UTC ISO string.

    Naive values are taken as UTC. The fixed width keeps lexical order equal to
    chronological order inside SQLite.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class DatabaseService:
    """Manage SQLite connections and schema initialization."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

    def _ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Return a sqlite3 connection with the proper data directory created."""
        self._ensure_directory()
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self, statements: Iterable[str] | None = None) -> Path:
        """Create all schema artifacts required by the document store."""
        conn = self.connect()
        try:
            with conn:  # Transactional apply of DDL
                for statement in statements or DDL_STATEMENTS:
                    conn.execute(statement)
        finally:
            conn.close()
        return self.db_path


def init_database(db_path: str | Path | None = None) -> Path:
    """Convenience wrapper used at application startup."""
    return DatabaseService(db_path).initialize()


__all__ = [
    "DatabaseService",
    "init_database",
    "to_db_timestamp",
    "from_db_timestamp",
    "DEFAULT_DB_PATH",
]
