"""Search request/response models and the parsed query structure."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SearchScope(str, Enum):
    """Fields targeted by the free-text portion of a query."""

    FILENAME = "filename"
    CONTENT = "content"
    SUMMARY = "summary"
    ALL = "all"


class RelativeDate(str, Enum):
    """Date keywords resolved against the current instant at compile time."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_WEEK = "last-week"
    LAST_MONTH = "last-month"
    LAST_YEAR = "last-year"


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    UPLOADED = "uploaded"
    DATE = "date"
    FILENAME = "filename"
    SIZE = "size"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SuggestDimension(str, Enum):
    """Dimensions supported by prefix autocomplete."""

    FILENAME = "filename"
    FOLDER = "folder"
    TAG = "tag"
    ENTITY = "entity"
    CATEGORY = "category"


class DateRange(BaseModel):
    """
    Inclusive date window.

    `relative` is kept unresolved until the query is compiled so a parsed
    query can be re-run against a fresh "now". Explicit bounds narrow the
    relative window when both are present.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    relative: Optional[RelativeDate] = None

    def is_empty(self) -> bool:
        return self.start is None and self.end is None and self.relative is None


class FilterSet(BaseModel):
    """Every structured filter dimension of a query."""

    types: List[str] = Field(default_factory=list)
    formats: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    folders: List[str] = Field(default_factory=list)
    folder_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    uploaded_range: Optional[DateRange] = None
    extracted_date_range: Optional[DateRange] = None
    has_text: Optional[bool] = None
    has_summary: Optional[bool] = None
    has_thumbnail: Optional[bool] = None
    size_min: Optional[int] = Field(None, description="Inclusive lower bound in bytes")
    size_max: Optional[int] = Field(None, description="Inclusive upper bound in bytes")

    def is_empty(self) -> bool:
        return self == type(self)()


class ParsedQuery(FilterSet):
    """
    Structured form of a query string.

    The top-level filters are the positive half; `negations` holds the same
    shape for `-key:value` tokens. A value present in both halves is legal and
    simply yields two independent predicates.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "full_text": "vacation beach",
                "search_scope": "all",
                "types": ["photo"],
                "uploaded_range": {
                    "start": "2024-01-01T00:00:00Z",
                    "end": "2024-12-31T23:59:59.999000Z",
                },
                "negations": {"has_text": True},
            }
        }
    )

    full_text: Optional[str] = None
    search_scope: SearchScope = SearchScope.ALL
    negations: FilterSet = Field(default_factory=FilterSet)


class FacetItem(BaseModel):
    """One candidate value of a facet dimension with its count."""

    name: str
    count: int = Field(..., ge=0)
    selected: bool = False


class FacetDimension(BaseModel):
    """Counts for every candidate value of one filter dimension."""

    dimension: str
    items: List[FacetItem] = Field(default_factory=list)


class SearchResult(BaseModel):
    """Per-document projection returned by a search."""

    document_id: str
    filename: str
    folder_path: Optional[str] = None
    folder_id: Optional[str] = None
    uploaded_at: datetime
    extracted_date: Optional[date] = None
    category: Optional[str] = None
    mime_type: str
    format: str
    snippet: Optional[str] = Field(None, description="Highlighted excerpt, null without free text")
    has_text: bool
    thumbnail_url: Optional[str] = None
    blurhash: Optional[str] = None
    size_bytes: int = Field(..., ge=0)
    tags: List[str] = Field(default_factory=list)
    relevance: Optional[float] = Field(None, description="Text-match score, null without free text")


class SearchResponse(BaseModel):
    """Full search payload."""

    total: int = Field(..., ge=0)
    results: List[SearchResult] = Field(default_factory=list)
    facets: Optional[List[FacetDimension]] = None
    query: ParsedQuery
    timing_ms: int = Field(..., ge=0)


class SearchRequest(BaseModel):
    """Search parameters supplied by the caller alongside the query string."""

    q: str = Field(..., min_length=1, max_length=512)
    category: Optional[str] = None
    folder_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)
    sort_by: SortBy = SortBy.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC
    include_facets: bool = False


class SuggestRequest(BaseModel):
    """Autocomplete parameters; `type` stays a plain string so unknown values yield []."""

    type: str = Field(..., min_length=1)
    q: str = Field("", max_length=256)
    limit: int = Field(10, ge=1, le=50)


class FacetsResponse(BaseModel):
    facets: List[FacetDimension]


class QuickFilter(BaseModel):
    """Predefined query shortcut."""

    label: str
    query: str
    icon: Optional[str] = None


class FilterHelp(BaseModel):
    name: str
    syntax: str
    examples: List[str]
    description: str


class ExampleQuery(BaseModel):
    query: str
    description: str


class SearchHelp(BaseModel):
    """Query syntax reference."""

    filters: List[FilterHelp]
    examples: List[ExampleQuery]


__all__ = [
    "SearchScope",
    "RelativeDate",
    "SortBy",
    "SortOrder",
    "SuggestDimension",
    "DateRange",
    "FilterSet",
    "ParsedQuery",
    "FacetItem",
    "FacetDimension",
    "SearchResult",
    "SearchResponse",
    "SearchRequest",
    "SuggestRequest",
    "FacetsResponse",
    "QuickFilter",
    "FilterHelp",
    "ExampleQuery",
    "SearchHelp",
]
