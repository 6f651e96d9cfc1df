"""Highlighted excerpts for search results."""

from __future__ import annotations

import re
import sqlite3
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..database import DatabaseService
from .query_compiler import prepare_match_query

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"

_MARK_PATTERN = re.compile(re.escape(MARK_OPEN) + r"(.*?)" + re.escape(MARK_CLOSE), re.DOTALL)


def extract_terms(text: Optional[str]) -> List[str]:
    """Distinct non-empty search terms, longest first so overlapping terms highlight whole."""
    terms = {term for term in (text or "").lower().split() if term}
    return sorted(terms, key=lambda term: (-len(term), term))


def _terms_pattern(terms: Iterable[str]) -> Optional[re.Pattern]:
    escaped = [re.escape(term) for term in sorted(set(terms), key=len, reverse=True) if term]
    if not escaped:
        return None
    return re.compile("|".join(escaped), re.IGNORECASE)


def highlight_terms(text: str, terms: Iterable[str]) -> str:
    """Wrap every case-insensitive occurrence of any term in mark tags."""
    pattern = _terms_pattern(terms)
    if pattern is None:
        return text
    return pattern.sub(lambda match: f"{MARK_OPEN}{match.group()}{MARK_CLOSE}", text)


def generate_body_snippets(
    conn: sqlite3.Connection,
    document_ids: List[str],
    full_text: str,
    snippet_tokens: int = 32,
) -> Dict[str, str]:
    """Ranked excerpts from indexed body text for many documents in one query."""
    match_query = prepare_match_query(full_text)
    if not match_query or not document_ids:
        return {}
    placeholders = ", ".join("?" for _ in document_ids)
    rows = conn.execute(
        f"""
        SELECT
            document_id,
            snippet(document_fts, 1, '{MARK_OPEN}', '{MARK_CLOSE}', '...', ?) AS snippet
        FROM document_fts
        WHERE document_fts MATCH ? AND document_id IN ({placeholders})
        """,
        [snippet_tokens, match_query, *document_ids],
    ).fetchall()
    return {
        row["document_id"]: row["snippet"]
        for row in rows
        if row["snippet"] and MARK_OPEN in row["snippet"]
    }


def generate_summary_snippet(
    summary: Optional[str], full_text: Optional[str], max_length: int = 200
) -> Optional[str]:
    """
    Excerpt of the summary around the first term hit.

    The window opens 50 characters before the hit and is trimmed to word
    boundaries with ellipses. Returns None when no term occurs in the summary.
    """
    if not summary:
        return None
    terms = extract_terms(full_text)
    lowered = summary.lower()
    hits = [index for index in (lowered.find(term) for term in terms) if index >= 0]
    if not hits:
        return None

    start = max(0, min(hits) - 50)
    end = min(len(summary), start + max_length)
    excerpt = summary[start:end]

    if start > 0:
        first_space = excerpt.find(" ")
        if 0 <= first_space < 20:
            excerpt = excerpt[first_space + 1 :]
        excerpt = "..." + excerpt
    if end < len(summary):
        last_space = excerpt.rfind(" ")
        if last_space > len(excerpt) - 30:
            excerpt = excerpt[:last_space]
        excerpt = excerpt + "..."

    return highlight_terms(excerpt, terms)


def generate_filename_snippet(
    filename: str, folder_path: Optional[str], full_text: Optional[str]
) -> str:
    """`folder/filename` with literal term matches highlighted."""
    location = f"{folder_path.rstrip('/')}/{filename}" if folder_path else filename
    return highlight_terms(location, extract_terms(full_text))


def generate_snippets(
    db_service: DatabaseService,
    rows: Iterable[Mapping],
    full_text: Optional[str],
    snippet_tokens: int = 32,
    summary_length: int = 200,
) -> Dict[str, Optional[str]]:
    """
    One snippet per result row: body text, then summary, then filename.

    Rows need `document_id`, `filename`, `folder_path`, and `llm_summary`.
    Without free text every snippet is None.
    """
    rows = list(rows)
    if not (full_text or "").strip():
        return {row["document_id"]: None for row in rows}

    document_ids = [row["document_id"] for row in rows]
    body_snippets: Dict[str, str] = {}
    if document_ids:
        conn = db_service.connect()
        try:
            body_snippets = generate_body_snippets(conn, document_ids, full_text, snippet_tokens)
        finally:
            conn.close()

    snippets: Dict[str, Optional[str]] = {}
    for row in rows:
        document_id = row["document_id"]
        snippets[document_id] = (
            body_snippets.get(document_id)
            or generate_summary_snippet(row["llm_summary"], full_text, summary_length)
            or generate_filename_snippet(row["filename"], row["folder_path"], full_text)
        )
    return snippets


def strip_highlights(text: str) -> str:
    return text.replace(MARK_OPEN, "").replace(MARK_CLOSE, "")


def get_highlight_positions(text: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of highlighted spans within the stripped text."""
    positions: List[Tuple[int, int]] = []
    removed = 0
    for match in _MARK_PATTERN.finditer(text):
        start = match.start() - removed
        end = start + len(match.group(1))
        positions.append((start, end))
        removed += len(MARK_OPEN) + len(MARK_CLOSE)
    return positions


__all__ = [
    "MARK_OPEN",
    "MARK_CLOSE",
    "extract_terms",
    "highlight_terms",
    "generate_body_snippets",
    "generate_summary_snippet",
    "generate_filename_snippet",
    "generate_snippets",
    "strip_highlights",
    "get_highlight_positions",
]
