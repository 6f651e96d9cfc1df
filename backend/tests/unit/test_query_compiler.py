from datetime import datetime, timezone
from typing import Dict, List

import pytest

from backend.src.models.search import SortBy, SortOrder
from backend.src.services.database import DatabaseService
from backend.src.services.search.query_compiler import (
    CompileOptions,
    Dimension,
    compile_query,
    format_to_mime,
    mime_to_extension,
    prepare_match_query,
)
from backend.src.services.search.query_parser import parse_query

BY_NAME = CompileOptions(limit=50, sort_by=SortBy.FILENAME, sort_order=SortOrder.ASC)


def _run(db_service: DatabaseService, query: str, user_id: str = "alice", **kwargs) -> List[str]:
    options = kwargs.pop("options", BY_NAME)
    compiled = compile_query(parse_query(query), user_id, options, **kwargs)
    sql, params = compiled.render_results()
    conn = db_service.connect()
    try:
        return [row["filename"] for row in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def _count(db_service: DatabaseService, query: str, user_id: str = "alice") -> int:
    sql, params = compile_query(parse_query(query), user_id, BY_NAME).render_count()
    conn = db_service.connect()
    try:
        return conn.execute(sql, params).fetchone()["total"]
    finally:
        conn.close()


def test_owner_scope_is_first_predicate() -> None:
    compiled = compile_query(parse_query("beach tag:x"), "alice")

    where_sql, params = compiled.render_where()

    assert where_sql.startswith("d.user_id = ?")
    assert params[0] == "alice"


def test_photo_alone_compiles_to_no_text_predicate() -> None:
    compiled = compile_query(parse_query("type:photo"), "alice")

    (predicate,) = compiled.predicates
    assert predicate.dimension == Dimension.TYPE
    assert predicate.sql == "d.has_meaningful_text = 0"
    assert predicate.params == ()


def test_photo_with_document_compiles_to_or() -> None:
    compiled = compile_query(parse_query("type:photo type:document"), "alice")

    (predicate,) = compiled.predicates
    assert " OR d.has_meaningful_text = 0" in predicate.sql
    assert "stock_overview" in predicate.params
    assert "other" in predicate.params


def test_tags_are_anded_and_negated_tags_excluded_together() -> None:
    positive = compile_query(parse_query("tag:a tag:b"), "alice")
    negative = compile_query(parse_query("-tag:a -tag:b"), "alice")

    assert [p.params for p in positive.predicates] == [("a",), ("b",)]
    (excluded,) = negative.predicates
    assert excluded.negated
    assert excluded.params == ("a", "b")
    assert excluded.render().startswith("NOT COALESCE((")


def test_pagination_only_applies_to_results() -> None:
    compiled = compile_query(parse_query("tag:a"), "alice", CompileOptions(limit=5, offset=10))

    results_sql, results_params = compiled.render_results()
    count_sql, count_params = compiled.render_count()

    assert results_params[-2:] == [5, 10]
    assert "LIMIT" not in count_sql
    assert count_params == ["alice", "a"]


def test_render_where_excludes_only_positive_dimension() -> None:
    compiled = compile_query(parse_query("type:photo -type:screenshot tag:a"), "alice")

    where_sql, params = compiled.render_where(exclude=[Dimension.TYPE])

    assert "has_meaningful_text = 0" not in where_sql
    assert "NOT COALESCE" in where_sql
    assert params == ["alice", "a", "screenshot"]


def test_relevance_join_params_precede_where_params() -> None:
    compiled = compile_query(parse_query("dividend tag:tax"), "alice")

    sql, params = compiled.render_results()

    assert "bm25(document_fts)" in sql
    assert params[0] == '"dividend"'
    assert params[1] == "alice"


def test_prepare_match_query_sanitizes_terms() -> None:
    assert prepare_match_query("O'Brien auth*") == '"O" "Brien" "auth"*'
    assert prepare_match_query("API & docs") == '"API" "docs"'
    assert prepare_match_query("&&& ---") is None


def test_format_and_mime_tables() -> None:
    assert format_to_mime("JPG") == "image/jpeg"
    assert format_to_mime("tif") == "image/tiff"
    assert format_to_mime("docx") == "application/docx"
    assert mime_to_extension("image/jpeg") == "jpg"
    assert mime_to_extension("text/plain") == "txt"
    assert mime_to_extension("application/zip") == "zip"


def test_scenario_vacation_photos_from_2024(db_service, corpus) -> None:
    assert _run(db_service, '"vacation beach" type:photo uploaded:2024 -has:text') == ["beach.jpg"]


def test_scenario_entity_without_screenshots(db_service, corpus) -> None:
    assert _run(db_service, 'entity:"John Smith"') == ["receipt-coffee.png", "screenshot-chat.png"]
    assert _run(db_service, 'entity:"John Smith" -type:screenshot') == ["receipt-coffee.png"]


def test_entity_matches_structured_companies(db_service, corpus) -> None:
    assert _run(db_service, "company:APPLE") == ["apple-statement.pdf"]


def test_type_filters(db_service, corpus) -> None:
    assert _run(db_service, "type:photo") == ["beach.jpg"]
    assert _run(db_service, "type:receipt") == ["receipt-coffee.png"]
    assert _run(db_service, "type:document") == ["apple-statement.pdf", "receipt-coffee.png"]
    assert _run(db_service, "type:photo type:document") == [
        "apple-statement.pdf",
        "beach.jpg",
        "receipt-coffee.png",
    ]


def test_tag_filters(db_service, corpus) -> None:
    assert _run(db_service, "tag:tax tag:important") == ["apple-statement.pdf"]
    assert _run(db_service, "-tag:tax -tag:important") == ["beach.jpg", "screenshot-chat.png"]
    assert _run(db_service, "tag:tax -tag:tax") == []


def test_entity_filters_require_all_and_exclude_any(db_service, corpus) -> None:
    assert _run(db_service, "entity:Apple") == ["apple-statement.pdf"]
    assert _run(db_service, 'entity:"John Smith" entity:Apple') == []
    assert _run(db_service, '-entity:"John Smith" -entity:Apple') == ["beach.jpg"]
    assert _run(db_service, "-entity:Apple") == [
        "beach.jpg",
        "receipt-coffee.png",
        "screenshot-chat.png",
    ]


def test_size_and_format_filters(db_service, corpus) -> None:
    assert _run(db_service, "size:>1MB") == ["beach.jpg"]
    assert _run(db_service, "size:<200KB") == ["receipt-coffee.png"]
    assert _run(db_service, "size:2MB") == ["beach.jpg"]
    assert _run(db_service, "format:png") == ["receipt-coffee.png", "screenshot-chat.png"]
    assert _run(db_service, "-format:png -format:pdf") == ["beach.jpg"]


def test_folder_filters(db_service, corpus) -> None:
    assert _run(db_service, "folder:/vacation/2024") == ["beach.jpg"]
    assert _run(db_service, "folder:/vacation") == []
    assert _run(db_service, "folder:TAX") == ["apple-statement.pdf"]


def test_negated_date_keeps_documents_without_a_date(db_service, corpus) -> None:
    assert _run(db_service, "date:2023") == ["apple-statement.pdf"]
    assert _run(db_service, "-date:2023") == [
        "beach.jpg",
        "receipt-coffee.png",
        "screenshot-chat.png",
    ]


def test_property_filters(db_service, corpus) -> None:
    assert _run(db_service, "has:summary") == ["apple-statement.pdf", "beach.jpg"]
    assert _run(db_service, "-has:thumbnail") == [
        "apple-statement.pdf",
        "receipt-coffee.png",
        "screenshot-chat.png",
    ]
    assert _run(db_service, "has:text -has:summary") == ["receipt-coffee.png", "screenshot-chat.png"]


def test_relative_upload_date_resolves_at_compile_time(db_service, corpus) -> None:
    now = datetime(2024, 7, 3, 12, 0, tzinfo=timezone.utc)

    assert _run(db_service, "uploaded:last-week", now=now) == ["beach.jpg"]
    assert _run(db_service, "uploaded:today", now=now) == []


def test_scoped_full_text(db_service, corpus) -> None:
    assert _run(db_service, "in:filename coffee") == ["receipt-coffee.png"]
    assert _run(db_service, "in:summary holdings") == ["apple-statement.pdf"]
    assert _run(db_service, "in:content vacation") == ["screenshot-chat.png"]
    assert _run(db_service, "vacation") == ["beach.jpg", "screenshot-chat.png"]
    assert _run(db_service, "in:content ???") == []


def test_relevance_sort_and_scores(db_service, corpus) -> None:
    compiled = compile_query(parse_query("dividend"), "alice")
    sql, params = compiled.render_results()
    conn = db_service.connect()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    assert [row["filename"] for row in rows] == ["apple-statement.pdf"]
    assert rows[0]["relevance"] > 0


def test_default_sort_is_recency(db_service, corpus) -> None:
    assert _run(db_service, "has:text", options=CompileOptions()) == [
        "receipt-coffee.png",
        "apple-statement.pdf",
        "screenshot-chat.png",
    ]


@pytest.mark.parametrize(
    ("options", "expected"),
    [
        (
            CompileOptions(sort_by=SortBy.SIZE, sort_order=SortOrder.DESC),
            ["beach.jpg", "apple-statement.pdf", "screenshot-chat.png", "receipt-coffee.png"],
        ),
        (
            CompileOptions(sort_by=SortBy.UPLOADED, sort_order=SortOrder.ASC),
            ["screenshot-chat.png", "apple-statement.pdf", "beach.jpg", "receipt-coffee.png"],
        ),
        (
            CompileOptions(sort_by=SortBy.SIZE, sort_order=SortOrder.ASC, limit=2, offset=1),
            ["screenshot-chat.png", "apple-statement.pdf"],
        ),
    ],
)
def test_sort_options(db_service, corpus, options: CompileOptions, expected: List[str]) -> None:
    assert _run(db_service, "", options=options) == expected


def test_count_ignores_pagination_and_owner_data(db_service, corpus: Dict[str, str]) -> None:
    assert _count(db_service, "tag:tax") == 2
    assert _count(db_service, "tag:tax", user_id="bob") == 1
    assert _count(db_service, "tag:tax", user_id="nobody") == 0
