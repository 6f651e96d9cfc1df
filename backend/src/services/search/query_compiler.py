"""Compile a ParsedQuery into owner-scoped SQL predicates shared by results, count, and facets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ...models.search import DateRange, FilterSet, ParsedQuery, SearchScope, SortBy, SortOrder
from ..database import to_db_timestamp
from .query_parser import resolve_date_range

TOKEN_PATTERN = re.compile(r"[^\W_]+(?:\*)?")

BASE_FROM = "documents d LEFT JOIN folders f ON f.id = d.folder_id"

FORMAT_TO_MIME: Dict[str, str] = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
}

_MIME_TO_FORMAT: Dict[str, str] = {"text/plain": "txt"}
for _fmt, _mime in FORMAT_TO_MIME.items():
    _MIME_TO_FORMAT.setdefault(_mime, _fmt)

# Internal type name -> stored document categories
TYPE_TO_CATEGORIES: Dict[str, List[str]] = {
    "photo": ["photo", "other"],
    "document": [
        "stock_overview",
        "stock_split",
        "dividend_statement",
        "transaction_receipt",
        "other",
    ],
    "receipt": ["transaction_receipt"],
    "screenshot": ["screenshot"],
}


class Dimension(str, Enum):
    """Filter dimension a predicate constrains."""

    FULL_TEXT = "full_text"
    TYPE = "type"
    FORMAT = "format"
    CATEGORY = "category"
    FOLDER = "folder"
    FOLDER_ID = "folder_id"
    TAG = "tag"
    ENTITY = "entity"
    HAS_TEXT = "has_text"
    HAS_SUMMARY = "has_summary"
    HAS_THUMBNAIL = "has_thumbnail"
    SIZE = "size"
    UPLOADED = "uploaded"
    EXTRACTED_DATE = "extracted_date"


@dataclass(frozen=True)
class Predicate:
    """One SQL boolean fragment with its positional parameters."""

    dimension: Dimension
    sql: str
    params: Tuple[Any, ...] = ()
    negated: bool = False

    def render(self) -> str:
        if self.negated:
            # NULL comparisons count as "no match" so exclusions keep those rows.
            return f"NOT COALESCE(({self.sql}), 0)"
        return f"({self.sql})"


@dataclass(frozen=True)
class CompileOptions:
    limit: int = 20
    offset: int = 0
    sort_by: SortBy = SortBy.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC


@dataclass(frozen=True)
class CompiledQuery:
    """
    Predicate specification rendered three ways.

    `render_results` adds relevance, sort, and pagination; `render_count`
    counts matching documents; `render_where` gives the bare WHERE clause with
    selected positive dimensions dropped, for facet counting.
    """

    user_id: str
    predicates: Tuple[Predicate, ...]
    order_by: str
    limit: int
    offset: int
    relevance_sql: str = "NULL"
    relevance_join: Optional[str] = None
    relevance_params: Tuple[Any, ...] = ()
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def render_where(self, exclude: Iterable[Dimension] = ()) -> Tuple[str, List[Any]]:
        excluded = set(exclude)
        clauses = ["d.user_id = ?"]
        params: List[Any] = [self.user_id]
        for predicate in self.predicates:
            if not predicate.negated and predicate.dimension in excluded:
                continue
            clauses.append(predicate.render())
            params.extend(predicate.params)
        return " AND ".join(clauses), params

    def render_results(self) -> Tuple[str, List[Any]]:
        where_sql, where_params = self.render_where()
        join_sql = f"\nLEFT JOIN {self.relevance_join} ON r.document_id = d.id" if self.relevance_join else ""
        sql = f"""
            SELECT
                d.id AS document_id,
                d.original_filename AS filename,
                f.path AS folder_path,
                d.folder_id,
                d.created_at,
                d.extracted_date,
                d.document_category,
                d.mime_type,
                d.has_meaningful_text,
                d.thumbnail_path,
                d.thumbnail_blurhash,
                d.size_bytes,
                d.llm_summary,
                {self.relevance_sql} AS relevance
            FROM {BASE_FROM}{join_sql}
            WHERE {where_sql}
            ORDER BY {self.order_by}
            LIMIT ? OFFSET ?
        """
        params = [*self.relevance_params, *where_params, self.limit, self.offset]
        return sql, params

    def render_count(self) -> Tuple[str, List[Any]]:
        where_sql, params = self.render_where()
        sql = f"SELECT COUNT(DISTINCT d.id) AS total FROM {BASE_FROM} WHERE {where_sql}"
        return sql, params


def prepare_match_query(text: Optional[str]) -> Optional[str]:
    """
    Sanitize free text for FTS5 MATCH usage.

    Each alphanumeric run becomes a quoted term (implicit AND); a trailing
    '*' is kept for prefix search. Returns None when nothing searchable is left.
    """
    terms: List[str] = []
    for match in TOKEN_PATTERN.finditer(text or ""):
        token = match.group()
        has_prefix_star = token.endswith("*")
        core = token[:-1] if has_prefix_star else token
        if core:
            terms.append(f'"{core}"{"*" if has_prefix_star else ""}')
    return " ".join(terms) if terms else None


def mime_to_extension(mime_type: Optional[str]) -> str:
    if not mime_type:
        return ""
    mime_type = mime_type.lower()
    if mime_type in _MIME_TO_FORMAT:
        return _MIME_TO_FORMAT[mime_type]
    return mime_type.split("/", 1)[-1]


def format_to_mime(fmt: str) -> str:
    fmt = fmt.lower().lstrip(".")
    return FORMAT_TO_MIME.get(fmt, f"application/{fmt}")


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column: str, value: str) -> Tuple[str, Tuple[Any, ...]]:
    return f"{column} LIKE ? ESCAPE '\\'", (f"%{escape_like(value)}%",)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _unique(values: Iterable[Any]) -> List[Any]:
    return list(dict.fromkeys(values))


def _or(parts: Sequence[Tuple[str, Tuple[Any, ...]]]) -> Tuple[str, Tuple[Any, ...]]:
    sql = " OR ".join(f"({part_sql})" for part_sql, _ in parts)
    params: Tuple[Any, ...] = tuple(p for _, part_params in parts for p in part_params)
    return sql, params


def _full_text_predicate(
    text: str, scope: SearchScope, match_query: Optional[str]
) -> Tuple[str, Tuple[Any, ...]]:
    content = (
        ("d.id IN (SELECT document_id FROM document_fts WHERE document_fts MATCH ?)", (match_query,))
        if match_query
        else ("0", ())
    )
    if scope == SearchScope.FILENAME:
        return _contains("d.original_filename", text)
    if scope == SearchScope.CONTENT:
        return content
    if scope == SearchScope.SUMMARY:
        return _contains("d.llm_summary", text)
    return _or(
        [
            _contains("d.original_filename", text),
            content,
            _contains("d.llm_summary", text),
        ]
    )


def _type_predicate(types: Sequence[str]) -> Tuple[str, Tuple[Any, ...]]:
    wants_photo = "photo" in types
    categories = _unique(
        category
        for name in types
        if name != "photo"
        for category in TYPE_TO_CATEGORIES.get(name, [name])
    )
    if wants_photo and not categories:
        return "d.has_meaningful_text = 0", ()

    category_sql = f"d.document_category IN ({_placeholders(categories)})"
    if wants_photo:
        return f"{category_sql} OR d.has_meaningful_text = 0", tuple(categories)
    return category_sql, tuple(categories)


def _folder_condition(folder: str) -> Tuple[str, Tuple[Any, ...]]:
    if folder.startswith("/"):
        return "f.path = ?", (folder.rstrip("/") or "/",)
    return _contains("f.path", folder)


def _tag_condition(tags: Sequence[str]) -> Tuple[str, Tuple[Any, ...]]:
    return (
        f"d.id IN (SELECT document_id FROM document_tags WHERE tag IN ({_placeholders(tags)}))",
        tuple(tags),
    )


def _entity_condition(entity: str) -> Tuple[str, Tuple[Any, ...]]:
    sources: List[Tuple[str, Tuple[Any, ...]]] = [
        (
            "EXISTS (SELECT 1 FROM ocr_results o, "
            "json_each(COALESCE(o.metadata, '{}'), '$.companies') "
            "WHERE o.document_id = d.id AND LOWER(value) = LOWER(?))",
            (entity,),
        )
    ]
    match_query = prepare_match_query(entity)
    if match_query:
        sources.append(
            ("d.id IN (SELECT document_id FROM document_fts WHERE document_fts MATCH ?)", (match_query,))
        )
    sources.append(
        (
            "EXISTS (SELECT 1 FROM json_each(COALESCE(d.llm_metadata, '{}'), '$.keyEntities') "
            "WHERE LOWER(value) = LOWER(?))",
            (entity,),
        )
    )
    return _or(sources)


def _range_predicate(
    column: str, date_range: Optional[DateRange], now: datetime
) -> Optional[Tuple[str, Tuple[Any, ...]]]:
    if date_range is None or date_range.is_empty():
        return None
    start, end = resolve_date_range(date_range, now)
    clauses: List[str] = []
    params: List[Any] = []
    if start is not None:
        clauses.append(f"{column} >= ?")
        params.append(to_db_timestamp(start))
    if end is not None:
        clauses.append(f"{column} <= ?")
        params.append(to_db_timestamp(end))
    if not clauses:
        return None
    return " AND ".join(clauses), tuple(params)


def compile_filters(filters: FilterSet, negated: bool, now: datetime) -> List[Predicate]:
    """
    Predicates for one half of a query.

    The positive half requires every tag and entity; the negated half
    excludes documents matching any listed value.
    """
    predicates: List[Predicate] = []

    def add(dimension: Dimension, fragment: Optional[Tuple[str, Tuple[Any, ...]]]) -> None:
        if fragment is not None:
            predicates.append(Predicate(dimension, fragment[0], fragment[1], negated))

    if filters.types:
        add(Dimension.TYPE, _type_predicate(filters.types))

    if filters.formats:
        mimes = _unique(format_to_mime(fmt) for fmt in filters.formats)
        add(Dimension.FORMAT, (f"d.mime_type IN ({_placeholders(mimes)})", tuple(mimes)))

    if filters.categories:
        categories = _unique(filters.categories)
        add(
            Dimension.CATEGORY,
            (f"d.document_category IN ({_placeholders(categories)})", tuple(categories)),
        )

    if filters.folders:
        add(Dimension.FOLDER, _or([_folder_condition(folder) for folder in filters.folders]))

    if filters.folder_ids:
        folder_ids = _unique(filters.folder_ids)
        add(Dimension.FOLDER_ID, (f"d.folder_id IN ({_placeholders(folder_ids)})", tuple(folder_ids)))

    if filters.tags:
        if negated:
            add(Dimension.TAG, _tag_condition(_unique(filters.tags)))
        else:
            for tag in _unique(filters.tags):
                add(Dimension.TAG, _tag_condition([tag]))

    if filters.entities:
        if negated:
            add(Dimension.ENTITY, _or([_entity_condition(e) for e in _unique(filters.entities)]))
        else:
            for entity in _unique(filters.entities):
                add(Dimension.ENTITY, _entity_condition(entity))

    if filters.has_text is not None:
        add(Dimension.HAS_TEXT, ("d.has_meaningful_text = ?", (1 if filters.has_text else 0,)))
    if filters.has_summary is not None:
        add(
            Dimension.HAS_SUMMARY,
            ("d.llm_summary IS NOT NULL" if filters.has_summary else "d.llm_summary IS NULL", ()),
        )
    if filters.has_thumbnail is not None:
        add(
            Dimension.HAS_THUMBNAIL,
            ("d.thumbnail_path IS NOT NULL" if filters.has_thumbnail else "d.thumbnail_path IS NULL", ()),
        )

    size_clauses: List[str] = []
    size_params: List[Any] = []
    if filters.size_min is not None:
        size_clauses.append("d.size_bytes >= ?")
        size_params.append(filters.size_min)
    if filters.size_max is not None:
        size_clauses.append("d.size_bytes <= ?")
        size_params.append(filters.size_max)
    if size_clauses:
        add(Dimension.SIZE, (" AND ".join(size_clauses), tuple(size_params)))

    add(Dimension.UPLOADED, _range_predicate("d.created_at", filters.uploaded_range, now))
    add(
        Dimension.EXTRACTED_DATE,
        _range_predicate("d.extracted_date", filters.extracted_date_range, now),
    )
    return predicates


def _order_by(options: CompileOptions, ranked: bool) -> str:
    direction = "ASC" if options.sort_order == SortOrder.ASC else "DESC"
    if options.sort_by == SortBy.RELEVANCE and ranked:
        return f"relevance {direction}, d.created_at DESC, d.id"
    if options.sort_by == SortBy.UPLOADED:
        return f"d.created_at {direction}, d.id"
    if options.sort_by == SortBy.DATE:
        return f"d.extracted_date {direction}, d.created_at {direction}, d.id"
    if options.sort_by == SortBy.FILENAME:
        return f"d.original_filename COLLATE NOCASE {direction}, d.id"
    if options.sort_by == SortBy.SIZE:
        return f"d.size_bytes {direction}, d.id"
    return "d.created_at DESC, d.id"


def compile_query(
    parsed: ParsedQuery,
    user_id: str,
    options: Optional[CompileOptions] = None,
    now: Optional[datetime] = None,
) -> CompiledQuery:
    """Build the predicate specification; performs no I/O."""
    options = options or CompileOptions()
    now = now or datetime.now(timezone.utc)
    predicates: List[Predicate] = []

    text = (parsed.full_text or "").strip()
    relevance_sql = "NULL"
    relevance_join: Optional[str] = None
    relevance_params: Tuple[Any, ...] = ()
    if text:
        match_query = prepare_match_query(text)
        fragment_sql, fragment_params = _full_text_predicate(text, parsed.search_scope, match_query)
        predicates.append(Predicate(Dimension.FULL_TEXT, fragment_sql, fragment_params))

        relevance_sql = "0.0"
        if match_query and parsed.search_scope in (SearchScope.CONTENT, SearchScope.ALL):
            relevance_join = (
                "(SELECT document_id, -bm25(document_fts) AS score "
                "FROM document_fts WHERE document_fts MATCH ?) r"
            )
            relevance_params = (match_query,)
            relevance_sql = "COALESCE(r.score, 0.0)"

    predicates.extend(compile_filters(parsed, negated=False, now=now))
    predicates.extend(compile_filters(parsed.negations, negated=True, now=now))

    return CompiledQuery(
        user_id=user_id,
        predicates=tuple(predicates),
        order_by=_order_by(options, ranked=bool(text)),
        limit=options.limit,
        offset=options.offset,
        relevance_sql=relevance_sql,
        relevance_join=relevance_join,
        relevance_params=relevance_params,
        resolved_at=now,
    )


__all__ = [
    "BASE_FROM",
    "FORMAT_TO_MIME",
    "TYPE_TO_CATEGORIES",
    "Dimension",
    "Predicate",
    "CompileOptions",
    "CompiledQuery",
    "compile_filters",
    "compile_query",
    "prepare_match_query",
    "mime_to_extension",
    "format_to_mime",
    "escape_like",
]
