"""Search orchestration: parse, merge caller filters, validate, compile, execute, assemble."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time as dt_time, timezone
import logging
import time
from typing import Any, Dict, List, Optional

from ...models.search import (
    DateRange,
    FacetDimension,
    ParsedQuery,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from ..config import AppConfig, get_config
from ..database import DatabaseService, from_db_timestamp
from ..document_index import DocumentIndexService
from .facets import generate_facets
from .highlighter import generate_snippets
from .query_compiler import CompileOptions, CompiledQuery, compile_query, mime_to_extension
from .query_parser import InvalidQueryError, parse_query, validate_query
from .suggester import suggest as run_suggest

logger = logging.getLogger(__name__)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, dt_time(), tzinfo=timezone.utc)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, dt_time(23, 59, 59, 999000), tzinfo=timezone.utc)


def merge_caller_filters(parsed: ParsedQuery, request: SearchRequest) -> ParsedQuery:
    """
    Add explicit request filters on top of the parsed query.

    Values are appended, never replacing what the query string set. Date
    bounds narrow the document-date range (intersection with parsed bounds).
    """
    if request.category and request.category not in parsed.categories:
        parsed.categories.append(request.category)
    if request.folder_id and request.folder_id not in parsed.folder_ids:
        parsed.folder_ids.append(request.folder_id)

    if request.date_from is None and request.date_to is None:
        return parsed

    current = parsed.extracted_date_range or DateRange()
    start, end = current.start, current.end
    if request.date_from is not None:
        lower = _day_start(request.date_from)
        start = lower if start is None else max(start, lower)
    if request.date_to is not None:
        upper = _day_end(request.date_to)
        end = upper if end is None else min(end, upper)
    parsed.extracted_date_range = DateRange(start=start, end=end, relative=current.relative)
    return parsed


class SearchService:
    """Run DSL queries against the owner-scoped document store."""

    def __init__(
        self,
        db_service: DatabaseService | None = None,
        index_service: DocumentIndexService | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        self.db_service = db_service or DatabaseService(self.config.database_path)
        self.index_service = index_service or DocumentIndexService(self.db_service)

    def _fetch_rows(self, compiled: CompiledQuery) -> List[Dict[str, Any]]:
        sql, params = compiled.render_results()
        conn = self.db_service.connect()
        try:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def _count(self, compiled: CompiledQuery) -> int:
        sql, params = compiled.render_count()
        conn = self.db_service.connect()
        try:
            row = conn.execute(sql, params).fetchone()
        finally:
            conn.close()
        return int(row["total"])

    def prepare(self, request: SearchRequest) -> ParsedQuery:
        """Parse and merge; raises InvalidQueryError when validation fails."""
        parsed = merge_caller_filters(parse_query(request.q), request)
        errors = validate_query(parsed)
        if errors:
            logger.info("Search query rejected", extra={"query": request.q, "errors": errors})
            raise InvalidQueryError(errors)
        return parsed

    async def search(
        self, request: SearchRequest, user_id: str, now: Optional[datetime] = None
    ) -> SearchResponse:
        start_time = time.time()
        parsed = self.prepare(request)
        compiled = compile_query(
            parsed,
            user_id,
            CompileOptions(
                limit=request.limit,
                offset=request.offset,
                sort_by=request.sort_by,
                sort_order=request.sort_order,
            ),
            now=now,
        )

        tasks = [
            asyncio.to_thread(self._fetch_rows, compiled),
            asyncio.to_thread(self._count, compiled),
        ]
        if request.include_facets:
            tasks.append(generate_facets(self.db_service, parsed, user_id, compiled=compiled))
        outcome = await asyncio.gather(*tasks)
        rows, total = outcome[0], outcome[1]
        facets: Optional[List[FacetDimension]] = outcome[2] if request.include_facets else None

        tag_map, snippets = await asyncio.gather(
            asyncio.to_thread(
                self.index_service.get_tags_for_documents, [row["document_id"] for row in rows]
            ),
            asyncio.to_thread(
                generate_snippets,
                self.db_service,
                rows,
                parsed.full_text,
                self.config.snippet_tokens,
                self.config.summary_snippet_length,
            ),
        )

        results = [self._to_result(row, tag_map, snippets) for row in rows]
        timing_ms = int((time.time() - start_time) * 1000)

        logger.info(
            "Search completed",
            extra={
                "user_id": user_id,
                "total": total,
                "returned": len(results),
                "facets": request.include_facets,
                "duration_ms": timing_ms,
            },
        )
        return SearchResponse(
            total=total,
            results=results,
            facets=facets,
            query=parsed,
            timing_ms=timing_ms,
        )

    async def facets_only(
        self, query: str, user_id: str, now: Optional[datetime] = None
    ) -> List[FacetDimension]:
        return await generate_facets(self.db_service, parse_query(query), user_id, now=now)

    async def suggest(self, dimension: str, prefix: str, limit: int, user_id: str) -> List[str]:
        limit = max(0, min(limit, self.config.suggest_max_limit))
        return await asyncio.to_thread(
            run_suggest, self.db_service, dimension, prefix, limit, user_id
        )

    def _to_result(
        self,
        row: Dict[str, Any],
        tag_map: Dict[str, List[str]],
        snippets: Dict[str, Optional[str]],
    ) -> SearchResult:
        extracted = from_db_timestamp(row["extracted_date"])
        relevance = row["relevance"]
        return SearchResult(
            document_id=row["document_id"],
            filename=row["filename"],
            folder_path=row["folder_path"],
            folder_id=row["folder_id"],
            uploaded_at=from_db_timestamp(row["created_at"]),
            extracted_date=extracted.date() if extracted else None,
            category=row["document_category"],
            mime_type=row["mime_type"],
            format=mime_to_extension(row["mime_type"]),
            snippet=snippets.get(row["document_id"]),
            has_text=bool(row["has_meaningful_text"]),
            thumbnail_url=row["thumbnail_path"],
            blurhash=row["thumbnail_blurhash"],
            size_bytes=row["size_bytes"],
            tags=tag_map.get(row["document_id"], []),
            relevance=float(relevance) if relevance is not None else None,
        )


__all__ = ["SearchService", "InvalidQueryError", "merge_caller_filters"]
