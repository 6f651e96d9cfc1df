"""Facet counts for refining a query, one concurrent query per dimension."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import sqlite3
import time
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ...models.search import FacetDimension, FacetItem, ParsedQuery, RelativeDate
from ..database import DatabaseService, to_db_timestamp
from .query_compiler import BASE_FROM, CompiledQuery, Dimension, compile_query, format_to_mime, mime_to_extension
from .query_parser import resolve_relative_date

logger = logging.getLogger(__name__)

FacetCounter = Callable[[sqlite3.Connection, str, List[Any], ParsedQuery, datetime], List[FacetItem]]

UPLOAD_BUCKETS: Tuple[Tuple[str, Optional[RelativeDate]], ...] = (
    ("This week", RelativeDate.LAST_WEEK),
    ("This month", RelativeDate.LAST_MONTH),
    ("This year", RelativeDate.LAST_YEAR),
    ("Older", None),
)


@dataclass(frozen=True)
class FacetSpec:
    name: str
    excludes: Tuple[Dimension, ...]
    counter: FacetCounter


def _non_zero(items: Sequence[FacetItem]) -> List[FacetItem]:
    return [item for item in items if item.count > 0]


def _grouped(
    conn: sqlite3.Connection,
    value_sql: str,
    where_sql: str,
    params: List[Any],
    limit: Optional[int] = None,
    joins: str = "",
) -> List[sqlite3.Row]:
    limit_sql = f" LIMIT {int(limit)}" if limit else ""
    return conn.execute(
        f"""
        SELECT {value_sql} AS value, COUNT(DISTINCT d.id) AS count
        FROM {BASE_FROM}{joins}
        WHERE {where_sql} AND {value_sql} IS NOT NULL
        GROUP BY {value_sql}
        ORDER BY count DESC, value ASC{limit_sql}
        """,
        params,
    ).fetchall()


def _count_types(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    row = conn.execute(
        f"""
        SELECT
            COALESCE(SUM(CASE WHEN d.has_meaningful_text = 0 THEN 1 ELSE 0 END), 0) AS photo,
            COALESCE(SUM(CASE WHEN d.has_meaningful_text = 1 THEN 1 ELSE 0 END), 0) AS document,
            COALESCE(SUM(CASE WHEN d.document_category = 'transaction_receipt' THEN 1 ELSE 0 END), 0) AS receipt
        FROM {BASE_FROM}
        WHERE {where_sql}
        """,
        params,
    ).fetchone()
    items = [
        FacetItem(name="photo", count=row["photo"], selected="photo" in parsed.types),
        FacetItem(name="document", count=row["document"], selected="document" in parsed.types),
        FacetItem(
            name="receipt",
            count=row["receipt"],
            selected="transaction_receipt" in parsed.types or "receipt" in parsed.types,
        ),
    ]
    return sorted(_non_zero(items), key=lambda item: item.count, reverse=True)


def _count_formats(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    selected_mimes = {format_to_mime(fmt) for fmt in parsed.formats}
    return [
        FacetItem(
            name=mime_to_extension(row["value"]),
            count=row["count"],
            selected=row["value"] in selected_mimes,
        )
        for row in _grouped(conn, "d.mime_type", where_sql, params, limit=10)
    ]


def _count_folders(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    # Paths compare without a trailing slash; caller-supplied folder ids select too.
    selected_paths = {path.rstrip("/") or "/" for path in parsed.folders if path.startswith("/")}
    selected_ids = set(parsed.folder_ids)
    rows = conn.execute(
        f"""
        SELECT f.id AS folder_id, f.path AS value, COUNT(DISTINCT d.id) AS count
        FROM {BASE_FROM}
        WHERE {where_sql} AND f.path IS NOT NULL
        GROUP BY f.id, f.path
        ORDER BY count DESC, value ASC LIMIT 10
        """,
        params,
    ).fetchall()
    return [
        FacetItem(
            name=row["value"],
            count=row["count"],
            selected=row["value"] in selected_paths or row["folder_id"] in selected_ids,
        )
        for row in rows
    ]


def _count_upload_periods(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    week_start = to_db_timestamp(resolve_relative_date(RelativeDate.LAST_WEEK, now)[0])
    month_start = to_db_timestamp(resolve_relative_date(RelativeDate.LAST_MONTH, now)[0])
    year_start = to_db_timestamp(resolve_relative_date(RelativeDate.LAST_YEAR, now)[0])
    row = conn.execute(
        f"""
        SELECT
            COALESCE(SUM(CASE WHEN d.created_at >= ? THEN 1 ELSE 0 END), 0) AS week,
            COALESCE(SUM(CASE WHEN d.created_at < ? AND d.created_at >= ? THEN 1 ELSE 0 END), 0) AS month,
            COALESCE(SUM(CASE WHEN d.created_at < ? AND d.created_at >= ? THEN 1 ELSE 0 END), 0) AS year,
            COALESCE(SUM(CASE WHEN d.created_at < ? THEN 1 ELSE 0 END), 0) AS older
        FROM {BASE_FROM}
        WHERE {where_sql}
        """,
        [week_start, week_start, month_start, month_start, year_start, year_start, *params],
    ).fetchone()

    current = parsed.uploaded_range.relative if parsed.uploaded_range else None
    counts = (row["week"], row["month"], row["year"], row["older"])
    return _non_zero(
        [
            FacetItem(name=label, count=count, selected=relative is not None and relative == current)
            for (label, relative), count in zip(UPLOAD_BUCKETS, counts)
        ]
    )


def _count_tags(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    rows = _grouped(
        conn,
        "t.tag",
        where_sql,
        params,
        limit=20,
        joins=" JOIN document_tags t ON t.document_id = d.id",
    )
    return [
        FacetItem(name=row["value"], count=row["count"], selected=row["value"] in parsed.tags)
        for row in rows
    ]


def _count_has_text(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    row = conn.execute(
        f"""
        SELECT
            COALESCE(SUM(CASE WHEN d.has_meaningful_text = 1 THEN 1 ELSE 0 END), 0) AS with_text,
            COALESCE(SUM(CASE WHEN d.has_meaningful_text = 0 THEN 1 ELSE 0 END), 0) AS without_text
        FROM {BASE_FROM}
        WHERE {where_sql}
        """,
        params,
    ).fetchone()
    without_selected = parsed.has_text is False or parsed.negations.has_text is True
    return _non_zero(
        [
            FacetItem(name="With text", count=row["with_text"], selected=parsed.has_text is True),
            FacetItem(name="Without text", count=row["without_text"], selected=without_selected),
        ]
    )


def _count_categories(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    return [
        FacetItem(name=row["value"], count=row["count"], selected=row["value"] in parsed.categories)
        for row in _grouped(conn, "d.document_category", where_sql, params)
    ]


def _count_entities(conn, where_sql, params, parsed, now) -> List[FacetItem]:
    rows = _grouped(
        conn,
        "company.value",
        where_sql,
        params,
        limit=15,
        joins=(
            " JOIN ocr_results ocr ON ocr.document_id = d.id"
            " JOIN json_each(COALESCE(ocr.metadata, '{}'), '$.companies') company"
        ),
    )
    wanted = {entity.lower() for entity in parsed.entities}
    return [
        FacetItem(name=row["value"], count=row["count"], selected=str(row["value"]).lower() in wanted)
        for row in rows
    ]


FACET_SPECS: Tuple[FacetSpec, ...] = (
    FacetSpec("type", (Dimension.TYPE,), _count_types),
    FacetSpec("format", (Dimension.FORMAT,), _count_formats),
    FacetSpec("folder", (Dimension.FOLDER, Dimension.FOLDER_ID), _count_folders),
    FacetSpec("uploaded", (Dimension.UPLOADED,), _count_upload_periods),
    FacetSpec("tag", (Dimension.TAG,), _count_tags),
    FacetSpec("has_text", (Dimension.HAS_TEXT,), _count_has_text),
    FacetSpec("category", (Dimension.CATEGORY,), _count_categories),
    FacetSpec("entity", (Dimension.ENTITY,), _count_entities),
)


def _run_facet(
    db_service: DatabaseService,
    spec: FacetSpec,
    compiled: CompiledQuery,
    parsed: ParsedQuery,
) -> FacetDimension:
    where_sql, params = compiled.render_where(exclude=spec.excludes)
    conn = db_service.connect()
    try:
        items = spec.counter(conn, where_sql, params, parsed, compiled.resolved_at)
    finally:
        conn.close()
    return FacetDimension(dimension=spec.name, items=items)


async def generate_facets(
    db_service: DatabaseService,
    parsed: ParsedQuery,
    user_id: str,
    compiled: Optional[CompiledQuery] = None,
    now: Optional[datetime] = None,
) -> List[FacetDimension]:
    """
    Count candidate values for every facet dimension.

    Each dimension drops its own positive filter (negations stay) so counts
    show what picking a different value would return.
    """
    start_time = time.time()
    if compiled is None:
        compiled = compile_query(parsed, user_id, now=now or datetime.now(timezone.utc))

    facets = await asyncio.gather(
        *(asyncio.to_thread(_run_facet, db_service, spec, compiled, parsed) for spec in FACET_SPECS)
    )

    logger.debug(
        "Facets generated",
        extra={
            "user_id": user_id,
            "dimensions": len(facets),
            "duration_ms": f"{(time.time() - start_time) * 1000:.2f}",
        },
    )
    return list(facets)


__all__ = ["FACET_SPECS", "FacetSpec", "UPLOAD_BUCKETS", "generate_facets"]
