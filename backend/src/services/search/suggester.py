"""Prefix autocomplete over a user's filenames, folders, tags, entities, and categories."""

from __future__ import annotations

import sqlite3
from typing import Callable, Dict, List

from ...models.search import SuggestDimension
from ..database import DatabaseService
from .query_compiler import escape_like

SuggestQuery = Callable[[sqlite3.Connection, str, str, int], List[str]]


def _prefix(value: str) -> str:
    return f"{escape_like(value)}%"


def _suggest_filenames(conn: sqlite3.Connection, user_id: str, prefix: str, limit: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT original_filename AS value
        FROM documents
        WHERE user_id = ? AND original_filename LIKE ? ESCAPE '\\'
        GROUP BY original_filename
        ORDER BY MAX(created_at) DESC
        LIMIT ?
        """,
        (user_id, _prefix(prefix), limit),
    ).fetchall()
    return [row["value"] for row in rows]


def _suggest_folders(conn: sqlite3.Connection, user_id: str, prefix: str, limit: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT DISTINCT path AS value
        FROM folders
        WHERE user_id = ? AND path LIKE ? ESCAPE '\\'
        ORDER BY path ASC
        LIMIT ?
        """,
        (user_id, _prefix(prefix), limit),
    ).fetchall()
    return [row["value"] for row in rows]


def _suggest_tags(conn: sqlite3.Connection, user_id: str, prefix: str, limit: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT DISTINCT t.tag AS value
        FROM document_tags t
        JOIN documents d ON d.id = t.document_id
        WHERE d.user_id = ? AND t.tag LIKE ? ESCAPE '\\'
        ORDER BY t.tag ASC
        LIMIT ?
        """,
        (user_id, _prefix(prefix), limit),
    ).fetchall()
    return [row["value"] for row in rows]


def _suggest_entities(conn: sqlite3.Connection, user_id: str, prefix: str, limit: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT DISTINCT company.value AS value
        FROM ocr_results ocr
        JOIN documents d ON d.id = ocr.document_id
        JOIN json_each(COALESCE(ocr.metadata, '{}'), '$.companies') company
        WHERE d.user_id = ? AND company.value LIKE ? ESCAPE '\\'
        ORDER BY company.value COLLATE NOCASE ASC
        LIMIT ?
        """,
        (user_id, _prefix(prefix), limit),
    ).fetchall()
    return [row["value"] for row in rows]


def _suggest_categories(conn: sqlite3.Connection, user_id: str, prefix: str, limit: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT DISTINCT document_category AS value
        FROM documents
        WHERE user_id = ?
          AND document_category IS NOT NULL
          AND document_category LIKE ? ESCAPE '\\'
        ORDER BY document_category ASC
        LIMIT ?
        """,
        (user_id, _prefix(prefix), limit),
    ).fetchall()
    return [row["value"] for row in rows]


SUGGESTERS: Dict[SuggestDimension, SuggestQuery] = {
    SuggestDimension.FILENAME: _suggest_filenames,
    SuggestDimension.FOLDER: _suggest_folders,
    SuggestDimension.TAG: _suggest_tags,
    SuggestDimension.ENTITY: _suggest_entities,
    SuggestDimension.CATEGORY: _suggest_categories,
}


def suggest(
    db_service: DatabaseService, dimension: str, prefix: str, limit: int, user_id: str
) -> List[str]:
    """Values of `dimension` starting with `prefix` (case-insensitive); unknown dimensions give []."""
    try:
        handler = SUGGESTERS[SuggestDimension(dimension)]
    except ValueError:
        return []
    if limit <= 0:
        return []

    conn = db_service.connect()
    try:
        return handler(conn, user_id, prefix or "", limit)
    finally:
        conn.close()


__all__ = ["SUGGESTERS", "suggest"]
