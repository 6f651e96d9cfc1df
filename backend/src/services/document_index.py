"""SQLite-backed storage of document records, extracted text, and tags."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import sqlite3
import time
from typing import Any, Dict, Iterable, List, Sequence
import uuid

from ..models.document import DocumentRecord, FolderRecord
from .database import DatabaseService, to_db_timestamp

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tag(tag: str | None) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.strip().lower()


class DocumentIndexService:
    """Manage document rows, OCR metadata, the body-text index, and tags."""

    def __init__(self, db_service: DatabaseService | None = None) -> None:
        self.db_service = db_service or DatabaseService()

    def upsert_folder(self, folder: FolderRecord) -> str:
        """Insert a folder (or return the existing id for the same owner/path)."""
        conn = self.db_service.connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT id FROM folders WHERE user_id = ? AND path = ?",
                    (folder.user_id, folder.path),
                ).fetchone()
                if row is not None:
                    return row["id"]
                folder_id = folder.id or str(uuid.uuid4())
                conn.execute(
                    """
                    INSERT INTO folders (id, user_id, parent_id, name, path, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        folder_id,
                        folder.user_id,
                        folder.parent_id,
                        folder.name,
                        folder.path,
                        to_db_timestamp(_utcnow()),
                    ),
                )
            return folder_id
        finally:
            conn.close()

    def index_document(self, record: DocumentRecord) -> str:
        """Insert or replace a document with its text, metadata, and tags."""
        start_time = time.time()
        document_id = record.id or str(uuid.uuid4())
        created_at = record.created_at or _utcnow()
        tags = self._prepare_tags(record.tags)

        conn = self.db_service.connect()
        try:
            with conn:
                self._delete_current_entries(conn, document_id)
                conn.execute(
                    """
                    INSERT INTO documents (
                        id, user_id, folder_id, original_filename, mime_type,
                        size_bytes, document_category, extracted_date, created_at,
                        has_meaningful_text, llm_summary, llm_metadata,
                        thumbnail_path, thumbnail_blurhash
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        document_id,
                        record.user_id,
                        record.folder_id,
                        record.original_filename,
                        record.mime_type,
                        record.size_bytes,
                        record.document_category,
                        to_db_timestamp(record.extracted_date) if record.extracted_date else None,
                        to_db_timestamp(created_at),
                        1 if record.has_meaningful_text else 0,
                        record.llm_summary,
                        json.dumps(record.llm_metadata) if record.llm_metadata is not None else None,
                        record.thumbnail_path,
                        record.thumbnail_blurhash,
                    ),
                )

                conn.execute(
                    "INSERT INTO ocr_results (document_id, metadata) VALUES (?, ?)",
                    (document_id, json.dumps({"companies": list(record.companies)})),
                )

                if record.raw_text:
                    conn.execute(
                        "INSERT INTO document_fts (document_id, raw_text) VALUES (?, ?)",
                        (document_id, record.raw_text),
                    )

                self._insert_tags(conn, document_id, tags)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Document indexed successfully",
                extra={
                    "user_id": record.user_id,
                    "document_id": document_id,
                    "tags_count": len(tags),
                    "has_text": record.has_meaningful_text,
                    "duration_ms": f"{duration_ms:.2f}",
                },
            )
            return document_id
        finally:
            conn.close()

    def delete_document(self, user_id: str, document_id: str) -> bool:
        """Remove a document and everything attached to it. Returns False if absent."""
        conn = self.db_service.connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT 1 FROM documents WHERE id = ? AND user_id = ?",
                    (document_id, user_id),
                ).fetchone()
                if row is None:
                    return False
                self._delete_current_entries(conn, document_id)
            return True
        finally:
            conn.close()

    def set_tags(self, user_id: str, document_id: str, tags: Sequence[str]) -> List[str]:
        """Replace the tag set of a document owned by `user_id`."""
        normalized = self._prepare_tags(tags)
        conn = self.db_service.connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT 1 FROM documents WHERE id = ? AND user_id = ?",
                    (document_id, user_id),
                ).fetchone()
                if row is None:
                    raise FileNotFoundError(f"Document not found: {document_id}")
                conn.execute("DELETE FROM document_tags WHERE document_id = ?", (document_id,))
                self._insert_tags(conn, document_id, normalized)
            return normalized
        finally:
            conn.close()

    def get_tags_for_documents(self, document_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Return tags for many documents in one round trip."""
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        conn = self.db_service.connect()
        try:
            rows = conn.execute(
                f"""
                SELECT document_id, tag
                FROM document_tags
                WHERE document_id IN ({placeholders})
                ORDER BY document_id, tag
                """,
                ids,
            ).fetchall()
        finally:
            conn.close()

        tag_map: Dict[str, List[str]] = {}
        for row in rows:
            tag_map.setdefault(row["document_id"], []).append(row["tag"])
        return tag_map

    def count_documents(self, user_id: str) -> int:
        conn = self.db_service.connect()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM documents WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        return int(row["count"])

    def _insert_tags(self, conn: sqlite3.Connection, document_id: str, tags: List[str]) -> None:
        if not tags:
            return
        now_iso = to_db_timestamp(_utcnow())
        conn.executemany(
            """
            INSERT INTO document_tags (document_id, tag, source, created_at)
            VALUES (?, ?, 'user', ?)
            """,
            [(document_id, tag, now_iso) for tag in tags],
        )

    def _delete_current_entries(self, conn: sqlite3.Connection, document_id: str) -> None:
        """Delete existing rows for a document."""
        conn.execute("DELETE FROM document_tags WHERE document_id = ?", (document_id,))
        conn.execute("DELETE FROM document_fts WHERE document_id = ?", (document_id,))
        conn.execute("DELETE FROM ocr_results WHERE document_id = ?", (document_id,))
        conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))

    def _prepare_tags(self, tags: Any) -> List[str]:
        if not isinstance(tags, (list, tuple)):
            return []
        normalized: List[str] = []
        for tag in tags:
            cleaned = normalize_tag(tag)
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        return normalized


__all__ = ["DocumentIndexService", "normalize_tag"]
