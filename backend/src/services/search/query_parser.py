"""
Semantic parser for the search query language.

Supported syntax:
- Free text: beach sunset, "beach sunset"
- Scoped text: in:filename vacation, in:content Apple
- Filters: type:photo, format:pdf, category:transaction_receipt
- Dates: uploaded:2024, uploaded:last-week, date:2022-2025, date:2024-01..2024-06
- Folder: folder:/vacation/2024, folder:receipts
- Properties: has:text, has:summary, -has:thumbnail
- Size: size:>1MB, size:<100KB, size:10MB
- Entities: entity:Apple, company:"John Smith"
- Tags: tag:important
- Negation: any filter prefixed with '-'
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
import re
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from ...models.search import DateRange, FilterSet, ParsedQuery, RelativeDate, SearchScope
from .tokenizer import Token, TokenKind, tokenize


class FilterKey(str, Enum):
    """Closed set of filter keys understood by the parser."""

    IN = "in"
    TYPE = "type"
    FORMAT = "format"
    CATEGORY = "category"
    UPLOADED = "uploaded"
    DATE = "date"
    FOLDER = "folder"
    HAS = "has"
    SIZE = "size"
    TAG = "tag"
    ENTITY = "entity"
    COMPANY = "company"

    @classmethod
    def lookup(cls, key: Optional[str]) -> Optional["FilterKey"]:
        try:
            return cls(key)
        except ValueError:
            return None


class InvalidQueryError(ValueError):
    """Raised when a parsed query contradicts itself."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid query: {', '.join(self.errors)}")


SIZE_UNITS: Dict[str, int] = {
    "b": 1,
    "kb": 1024,
    "mb": 1024 * 1024,
    "gb": 1024 * 1024 * 1024,
}

_DOCUMENT_CATEGORIES = [
    "document",
    "stock_overview",
    "stock_split",
    "dividend_statement",
    "transaction_receipt",
]

# What users type -> internal type names
TYPE_ALIASES: Dict[str, List[str]] = {
    "photo": ["photo"],
    "photos": ["photo"],
    "image": ["photo"],
    "images": ["photo"],
    "document": _DOCUMENT_CATEGORIES,
    "documents": _DOCUMENT_CATEGORIES,
    "doc": _DOCUMENT_CATEGORIES,
    "receipt": ["transaction_receipt"],
    "receipts": ["transaction_receipt"],
    "screenshot": ["screenshot"],
    "screenshots": ["screenshot"],
}

HAS_PROPERTIES = {"text": "has_text", "summary": "has_summary", "thumbnail": "has_thumbnail"}

_SIZE_PATTERN = re.compile(r"^([<>])?(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?$", re.IGNORECASE)


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _year_range(match: re.Match) -> DateRange:
    start_year, end_year = int(match.group(1)), int(match.group(2))
    return DateRange(start=_utc(start_year, 1, 1), end=_end_of_day(date(end_year, 12, 31)))


def _month_range(match: re.Match) -> DateRange:
    start_year, start_month, end_year, end_month = (int(g) for g in match.groups())
    return DateRange(
        start=_utc(start_year, start_month, 1),
        end=_end_of_day(_last_day_of_month(end_year, end_month)),
    )


def _single_year(match: re.Match) -> DateRange:
    year = int(match.group(1))
    return DateRange(start=_utc(year, 1, 1), end=_end_of_day(date(year, 12, 31)))


def _single_date(match: re.Match) -> DateRange:
    day = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    return DateRange(start=_utc(day.year, day.month, day.day), end=_end_of_day(day))


# Tried in order; the first matching pattern wins.
DATE_GRAMMAR: Tuple[Tuple[Pattern[str], Callable[[re.Match], DateRange]], ...] = (
    (re.compile(r"^(\d{4})-(\d{4})$"), _year_range),
    (re.compile(r"^(\d{4})-(\d{2})\.\.(\d{4})-(\d{2})$"), _month_range),
    (re.compile(r"^(\d{4})$"), _single_year),
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), _single_date),
)


def parse_date_value(value: str) -> DateRange:
    """Parse a date expression; anything unrecognised yields an empty range."""
    cleaned = value.strip().lower()
    try:
        return DateRange(relative=RelativeDate(cleaned))
    except ValueError:
        pass

    for pattern, handler in DATE_GRAMMAR:
        match = pattern.match(cleaned)
        if match:
            try:
                return handler(match)
            except ValueError:
                # Calendar-invalid values such as 2024-13-40
                return DateRange()
    return DateRange()


def parse_size(value: str) -> Tuple[Optional[int], Optional[int]]:
    """
    Parse a size expression into (min_bytes, max_bytes).

    '>N' sets only a minimum, '<N' only a maximum, and a bare N means
    "about N" (a +/-10% band).
    """
    match = _SIZE_PATTERN.match(value.strip())
    if not match:
        return None, None

    operator, number, unit = match.groups()
    size = float(number) * SIZE_UNITS[(unit or "b").lower()]

    if operator == ">":
        return round(size), None
    if operator == "<":
        return None, round(size)
    return round(size * 0.9), round(size * 1.1)


def resolve_relative_date(
    relative: RelativeDate, now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """Resolve a relative keyword to a concrete UTC window ending at or before `now`."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = datetime.combine(now.astimezone(timezone.utc).date(), time(), tzinfo=timezone.utc)
    one_day = timedelta(days=1)
    one_ms = timedelta(milliseconds=1)

    if relative == RelativeDate.TODAY:
        return today, today + one_day - one_ms
    if relative == RelativeDate.YESTERDAY:
        return today - one_day, today - one_ms
    if relative == RelativeDate.LAST_WEEK:
        return today - timedelta(days=7), now
    if relative == RelativeDate.LAST_MONTH:
        return today - timedelta(days=30), now
    if relative == RelativeDate.LAST_YEAR:
        return today - timedelta(days=365), now
    raise ValueError(f"Unknown relative date: {relative}")


def resolve_date_range(
    date_range: DateRange, now: Optional[datetime] = None
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Concrete (start, end) for a range; explicit bounds narrow a relative window."""
    start, end = date_range.start, date_range.end
    if date_range.relative is None:
        return start, end

    window_start, window_end = resolve_relative_date(date_range.relative, now)
    if start is None or start < window_start:
        start = window_start
    if end is None or end > window_end:
        end = window_end
    return start, end


def _append_unique(values: List[str], *items: str) -> None:
    for item in items:
        if item not in values:
            values.append(item)


def _handle_scope(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    try:
        query.search_scope = SearchScope(token.value.lower())
    except ValueError:
        pass


def _handle_type(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    name = token.value.lower()
    _append_unique(target.types, *TYPE_ALIASES.get(name, [name]))


def _handle_format(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    _append_unique(target.formats, token.value.lower().lstrip("."))


def _handle_category(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    _append_unique(target.categories, token.value.lower())


def _handle_uploaded(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    target.uploaded_range = parse_date_value(token.value)


def _handle_date(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    target.extracted_date_range = parse_date_value(token.value)


def _handle_folder(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    _append_unique(target.folders, token.value)


def _handle_has(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    # The negated half stores True too; the compiler turns it into NOT(...).
    field_name = HAS_PROPERTIES.get(token.value.lower())
    if field_name:
        setattr(target, field_name, True)


def _handle_size(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    size_min, size_max = parse_size(token.value)
    if size_min is not None:
        target.size_min = size_min
    if size_max is not None:
        target.size_max = size_max


def _handle_tag(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    _append_unique(target.tags, token.value.strip().lower())


def _handle_entity(query: ParsedQuery, target: FilterSet, token: Token) -> None:
    _append_unique(target.entities, token.value.strip())


FilterHandler = Callable[[ParsedQuery, FilterSet, Token], None]

FILTER_HANDLERS: Dict[FilterKey, FilterHandler] = {
    FilterKey.IN: _handle_scope,
    FilterKey.TYPE: _handle_type,
    FilterKey.FORMAT: _handle_format,
    FilterKey.CATEGORY: _handle_category,
    FilterKey.UPLOADED: _handle_uploaded,
    FilterKey.DATE: _handle_date,
    FilterKey.FOLDER: _handle_folder,
    FilterKey.HAS: _handle_has,
    FilterKey.SIZE: _handle_size,
    FilterKey.TAG: _handle_tag,
    FilterKey.ENTITY: _handle_entity,
    FilterKey.COMPANY: _handle_entity,
}

_unhandled = set(FilterKey) - set(FILTER_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Filter keys without a handler: {sorted(k.value for k in _unhandled)}")


def parse_tokens(tokens: Sequence[Token]) -> ParsedQuery:
    """Build a ParsedQuery from tokens; unknown filter keys fall back to free text."""
    parsed = ParsedQuery()
    text_parts: List[str] = []

    for token in tokens:
        if token.kind in (TokenKind.TEXT, TokenKind.QUOTED):
            if token.value:
                text_parts.append(token.value)
            continue

        filter_key = FilterKey.lookup(token.key)
        if filter_key is None:
            text_parts.append(f"{token.key}:{token.value}")
            continue
        if not token.value.strip():
            continue

        target = parsed.negations if token.negated else parsed
        FILTER_HANDLERS[filter_key](parsed, target, token)

    if text_parts:
        parsed.full_text = " ".join(text_parts)
    return parsed


def parse_query(query: str) -> ParsedQuery:
    """Parse a raw query string."""
    return parse_tokens(tokenize((query or "").strip()))


def _check_range(date_range: Optional[DateRange], label: str, errors: List[str]) -> None:
    if date_range and date_range.start and date_range.end and date_range.start > date_range.end:
        errors.append(f"{label} start cannot be after end date")


def validate_query(parsed: ParsedQuery) -> List[str]:
    """Return human-readable problems with a parsed query (empty when valid)."""
    errors: List[str] = []
    _check_range(parsed.uploaded_range, "Upload date", errors)
    _check_range(parsed.extracted_date_range, "Document date", errors)

    if parsed.size_min is not None and parsed.size_min < 0:
        errors.append("Size cannot be negative")
    if parsed.size_max is not None and parsed.size_max < 0:
        errors.append("Size cannot be negative")
    return errors


def _quote(value: str) -> str:
    return f'"{value}"' if any(ch.isspace() for ch in value) else value


def _stringify_text(text: str) -> str:
    """Quote free text that would not re-parse to the same string."""
    if '"' in text:
        return text
    words = text.split()
    if text != " ".join(words) or any(":" in word or word.startswith("-") for word in words):
        return f'"{text}"'
    return text


def _format_date_range(date_range: DateRange) -> Optional[str]:
    """Render a range in the narrowest grammar form that reproduces it exactly."""
    if date_range.relative is not None:
        return date_range.relative.value
    start, end = date_range.start, date_range.end
    if start is None or end is None:
        return None
    start = start.astimezone(timezone.utc)
    end = end.astimezone(timezone.utc)
    if start.time() != time() or end.time() != time(23, 59, 59, 999000):
        return None

    start_day, end_day = start.date(), end.date()
    if start_day == end_day:
        return start_day.isoformat()
    if start_day.month == 1 and start_day.day == 1 and end_day.month == 12 and end_day.day == 31:
        if start_day.year == end_day.year:
            return str(start_day.year)
        return f"{start_day.year}-{end_day.year}"
    if start_day.day == 1 and end_day == _last_day_of_month(end_day.year, end_day.month):
        return f"{start_day:%Y-%m}..{end_day:%Y-%m}"
    return None


def _stringify_filters(filters: FilterSet, prefix: str) -> List[str]:
    parts: List[str] = []
    parts.extend(f"{prefix}type:{_quote(value)}" for value in filters.types)
    parts.extend(f"{prefix}format:{_quote(value)}" for value in filters.formats)
    parts.extend(f"{prefix}category:{_quote(value)}" for value in filters.categories)
    parts.extend(f"{prefix}folder:{_quote(value)}" for value in filters.folders)
    parts.extend(f"{prefix}tag:{_quote(value)}" for value in filters.tags)
    parts.extend(f"{prefix}entity:{_quote(value)}" for value in filters.entities)

    for key, date_range in (
        ("uploaded", filters.uploaded_range),
        ("date", filters.extracted_date_range),
    ):
        rendered = _format_date_range(date_range) if date_range else None
        if rendered:
            parts.append(f"{prefix}{key}:{rendered}")

    for prop, field_name in HAS_PROPERTIES.items():
        value = getattr(filters, field_name)
        if value is True:
            parts.append(f"{prefix}has:{prop}")
        elif value is False:
            # A False flag is the negation of the property.
            parts.append(f"{'' if prefix else '-'}has:{prop}")

    if filters.size_min is not None:
        parts.append(f"{prefix}size:>{filters.size_min}")
    if filters.size_max is not None:
        parts.append(f"{prefix}size:<{filters.size_max}")
    return parts


def stringify_query(parsed: ParsedQuery) -> str:
    """Render a parsed query back into query-language text."""
    parts: List[str] = []
    if parsed.full_text:
        parts.append(_stringify_text(parsed.full_text))
    if parsed.search_scope != SearchScope.ALL:
        parts.append(f"in:{parsed.search_scope.value}")
    parts.extend(_stringify_filters(parsed, ""))
    parts.extend(_stringify_filters(parsed.negations, "-"))
    return " ".join(parts)


__all__ = [
    "FilterKey",
    "InvalidQueryError",
    "TYPE_ALIASES",
    "SIZE_UNITS",
    "DATE_GRAMMAR",
    "parse_date_value",
    "parse_size",
    "parse_tokens",
    "parse_query",
    "resolve_relative_date",
    "resolve_date_range",
    "validate_query",
    "stringify_query",
]
