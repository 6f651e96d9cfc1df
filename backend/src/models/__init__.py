"""Pydantic models for data validation and serialization."""

from .auth import JWTPayload
from .document import DocumentRecord, FolderRecord
from .search import (
    DateRange,
    FacetDimension,
    FacetItem,
    FacetsResponse,
    FilterSet,
    ParsedQuery,
    QuickFilter,
    RelativeDate,
    SearchHelp,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchScope,
    SortBy,
    SortOrder,
    SuggestDimension,
    SuggestRequest,
)

__all__ = [
    "JWTPayload",
    "DocumentRecord",
    "FolderRecord",
    "DateRange",
    "FilterSet",
    "ParsedQuery",
    "FacetItem",
    "FacetDimension",
    "FacetsResponse",
    "QuickFilter",
    "RelativeDate",
    "SearchHelp",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchScope",
    "SortBy",
    "SortOrder",
    "SuggestDimension",
    "SuggestRequest",
]
