"""HTTP API routes for document search."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...models.search import (
    ExampleQuery,
    FacetsResponse,
    FilterHelp,
    QuickFilter,
    SearchHelp,
    SearchRequest,
    SearchResponse,
    SortBy,
    SortOrder,
    SuggestRequest,
)
from ...services.search import SearchService
from ..middleware import AuthContext, get_auth_context

router = APIRouter()

QUICK_FILTERS: List[QuickFilter] = [
    QuickFilter(label="Photos", query="type:photo", icon="image"),
    QuickFilter(label="Documents", query="type:document", icon="file-text"),
    QuickFilter(label="Receipts", query="category:transaction_receipt", icon="receipt"),
    QuickFilter(label="Recent", query="uploaded:last-week", icon="clock"),
    QuickFilter(label="Large files", query="size:>10MB", icon="hard-drive"),
    QuickFilter(label="No text", query="-has:text", icon="image"),
    QuickFilter(label="With summary", query="has:summary", icon="file-text"),
    QuickFilter(label="Stock statements", query="category:stock_overview", icon="trending-up"),
]

SEARCH_HELP = SearchHelp(
    filters=[
        FilterHelp(
            name="type",
            syntax="type:<category>",
            examples=["type:photo", "type:document", "type:receipt"],
            description="Filter by file type",
        ),
        FilterHelp(
            name="format",
            syntax="format:<ext>",
            examples=["format:pdf", "format:jpg", "format:png"],
            description="Filter by file format/extension",
        ),
        FilterHelp(
            name="category",
            syntax="category:<name>",
            examples=["category:stock_overview", "category:transaction_receipt"],
            description="Filter by document category",
        ),
        FilterHelp(
            name="uploaded",
            syntax="uploaded:<date>",
            examples=["uploaded:2024", "uploaded:last-week", "uploaded:2024-01..2024-06"],
            description="Filter by upload date",
        ),
        FilterHelp(
            name="date",
            syntax="date:<date>",
            examples=["date:2023", "date:2022-2025"],
            description="Filter by extracted document date",
        ),
        FilterHelp(
            name="folder",
            syntax="folder:<path>",
            examples=["folder:/vacation/2024", "folder:receipts"],
            description="Filter by folder path",
        ),
        FilterHelp(
            name="tag",
            syntax="tag:<name>",
            examples=["tag:important", "tag:tax"],
            description="Filter by tag",
        ),
        FilterHelp(
            name="has",
            syntax="has:<property>",
            examples=["has:text", "has:summary", "-has:thumbnail"],
            description="Filter by document properties",
        ),
        FilterHelp(
            name="size",
            syntax="size:<comparison>",
            examples=["size:>1MB", "size:<100KB", "size:10MB"],
            description="Filter by file size",
        ),
        FilterHelp(
            name="entity",
            syntax="entity:<name>",
            examples=["entity:Apple", 'company:"John Smith"'],
            description="Filter by extracted entities (companies, people)",
        ),
        FilterHelp(
            name="in",
            syntax="in:<scope>",
            examples=["in:filename vacation", "in:content Apple", "in:summary tax"],
            description="Limit text search to specific fields",
        ),
    ],
    examples=[
        ExampleQuery(query="vacation beach", description='Search for "vacation beach" in all fields'),
        ExampleQuery(
            query="type:photo folder:vacation uploaded:2024",
            description="Photos in vacation folder from 2024",
        ),
        ExampleQuery(
            query="category:stock_overview company:Apple date:2022-2025",
            description="Apple stock statements from 2022-2025",
        ),
        ExampleQuery(query="format:pdf folder:/documents/tax", description="PDFs in tax folder"),
        ExampleQuery(query="size:>5MB -has:thumbnail", description="Large files without thumbnails"),
        ExampleQuery(
            query='"dividend payment" category:dividend_statement',
            description='Dividend statements containing "dividend payment"',
        ),
    ],
)


def get_search_service() -> SearchService:
    return SearchService()


@router.get("/api/search", response_model=SearchResponse)
async def search_documents(
    auth: AuthContext = Depends(get_auth_context),
    service: SearchService = Depends(get_search_service),
    q: str = Query(..., min_length=1, max_length=512),
    category: Optional[str] = None,
    folder_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: SortBy = SortBy.RELEVANCE,
    sort_order: SortOrder = SortOrder.DESC,
    include_facets: bool = False,
):
    """
    Search documents with the query language.

    Example: `GET /api/search?q=type:photo folder:vacation uploaded:2024`
    """
    request = SearchRequest(
        q=q,
        category=category,
        folder_id=folder_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
        include_facets=include_facets,
    )
    return await service.search(request, auth.user_id)


@router.get("/api/search/facets", response_model=FacetsResponse)
async def search_facets(
    auth: AuthContext = Depends(get_auth_context),
    service: SearchService = Depends(get_search_service),
    q: str = Query("", max_length=512),
):
    """Facet counts for the current query, without results."""
    facets = await service.facets_only(q, auth.user_id)
    return FacetsResponse(facets=facets)


@router.get("/api/search/suggest", response_model=list[str])
async def search_suggest(
    auth: AuthContext = Depends(get_auth_context),
    service: SearchService = Depends(get_search_service),
    type: str = Query(..., min_length=1),
    q: str = Query("", max_length=256),
    limit: int = Query(10, ge=1, le=50),
):
    """Autocomplete, e.g. `?type=folder&q=/photos` or `?type=tag&q=imp`."""
    request = SuggestRequest(type=type, q=q, limit=limit)
    return await service.suggest(request.type, request.q, request.limit, auth.user_id)


@router.get("/api/search/quick-filters", response_model=list[QuickFilter])
async def quick_filters(auth: AuthContext = Depends(get_auth_context)):
    """Predefined query shortcuts."""
    return QUICK_FILTERS


@router.get("/api/search/help", response_model=SearchHelp)
async def search_help():
    """Query syntax reference."""
    return SEARCH_HELP


__all__ = ["router", "get_search_service", "QUICK_FILTERS", "SEARCH_HELP"]
