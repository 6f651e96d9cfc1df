from datetime import date, datetime, timezone

import pytest

from backend.src.models.search import SearchRequest, SortBy, SortOrder
from backend.src.services.config import AppConfig
from backend.src.services.search import InvalidQueryError, SearchService


@pytest.fixture()
def service(db_service, index_service, corpus) -> SearchService:
    config = AppConfig(database_path=db_service.db_path, suggest_max_limit=3)
    return SearchService(db_service=db_service, index_service=index_service, config=config)


def _request(q: str, **kwargs) -> SearchRequest:
    kwargs.setdefault("sort_by", SortBy.FILENAME)
    kwargs.setdefault("sort_order", SortOrder.ASC)
    return SearchRequest(q=q, **kwargs)


@pytest.mark.asyncio
async def test_search_assembles_results_with_tags(service: SearchService, corpus) -> None:
    response = await service.search(_request("tag:tax"), "alice")

    assert response.total == 2
    assert response.facets is None
    assert response.timing_ms >= 0
    apple, receipt = response.results
    assert apple.document_id == corpus["apple"]
    assert apple.filename == "apple-statement.pdf"
    assert apple.folder_path == "/documents/tax"
    assert apple.format == "pdf"
    assert apple.tags == ["important", "tax"]
    assert apple.extracted_date == date(2023, 12, 31)
    assert apple.uploaded_at == datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
    assert apple.snippet is None
    assert apple.relevance is None
    assert apple.has_text is True
    assert receipt.folder_path is None
    assert receipt.tags == ["tax"]


@pytest.mark.asyncio
async def test_search_with_free_text_scores_and_highlights(service: SearchService) -> None:
    response = await service.search(SearchRequest(q="dividend"), "alice")

    assert response.total == 1
    result = response.results[0]
    assert result.relevance is not None and result.relevance > 0
    assert "<mark>dividend</mark>" in result.snippet
    assert response.query.full_text == "dividend"


@pytest.mark.asyncio
async def test_search_paginates_but_counts_everything(service: SearchService) -> None:
    response = await service.search(_request("has:text", limit=1, offset=1), "alice")

    assert response.total == 3
    assert [r.filename for r in response.results] == ["receipt-coffee.png"]


@pytest.mark.asyncio
async def test_search_includes_facets_on_request(service: SearchService) -> None:
    response = await service.search(_request("type:photo", include_facets=True), "alice")

    assert [r.filename for r in response.results] == ["beach.jpg"]
    assert response.results[0].thumbnail_url == "thumbs/beach.webp"
    assert len(response.facets) == 8
    assert response.facets[0].dimension == "type"


@pytest.mark.asyncio
async def test_caller_filters_are_additive(service: SearchService, corpus) -> None:
    response = await service.search(
        _request("tag:tax", folder_id=corpus["tax_folder"], category="stock_overview"), "alice"
    )

    assert [r.filename for r in response.results] == ["apple-statement.pdf"]
    assert response.query.categories == ["stock_overview"]
    assert response.query.folder_ids == [corpus["tax_folder"]]


@pytest.mark.asyncio
async def test_caller_dates_narrow_parsed_range(service: SearchService) -> None:
    response = await service.search(_request("date:2023-2025", date_from=date(2025, 1, 1)), "alice")

    assert [r.filename for r in response.results] == ["receipt-coffee.png"]
    assert response.query.extracted_date_range.start == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_invalid_query_is_rejected(service: SearchService) -> None:
    with pytest.raises(InvalidQueryError) as excinfo:
        await service.search(_request("uploaded:2025-2022"), "alice")

    assert excinfo.value.errors == ["Upload date start cannot be after end date"]


@pytest.mark.asyncio
async def test_contradicting_caller_dates_are_rejected(service: SearchService) -> None:
    with pytest.raises(InvalidQueryError) as excinfo:
        await service.search(_request("date:2023", date_from=date(2024, 1, 1)), "alice")

    assert excinfo.value.errors == ["Document date start cannot be after end date"]


@pytest.mark.asyncio
async def test_empty_result_is_not_an_error(service: SearchService) -> None:
    response = await service.search(_request("nonexistentword"), "alice")

    assert response.total == 0
    assert response.results == []


@pytest.mark.asyncio
async def test_facets_only(service: SearchService) -> None:
    facets = await service.facets_only("tag:tax", "alice")

    tag_facet = next(f for f in facets if f.dimension == "tag")
    assert [(i.name, i.count) for i in tag_facet.items] == [("tax", 2), ("holiday", 1), ("important", 1)]


@pytest.mark.asyncio
async def test_suggest_is_capped_by_config(service: SearchService) -> None:
    suggestions = await service.suggest("filename", "", 10, "alice")

    assert suggestions == ["receipt-coffee.png", "beach.jpg", "apple-statement.pdf"]
    assert await service.suggest("nope", "", 10, "alice") == []
