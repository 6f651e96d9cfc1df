"""Query language core: tokenizer, parser, compiler, facets, highlighter, suggester."""

from .facets import generate_facets
from .highlighter import (
    generate_filename_snippet,
    generate_snippets,
    generate_summary_snippet,
    get_highlight_positions,
    strip_highlights,
)
from .query_compiler import CompileOptions, CompiledQuery, Dimension, Predicate, compile_query
from .query_parser import (
    FilterKey,
    InvalidQueryError,
    parse_query,
    resolve_relative_date,
    stringify_query,
    validate_query,
)
from .service import SearchService
from .suggester import suggest
from .tokenizer import Token, TokenKind, tokenize

__all__ = [
    "Token",
    "TokenKind",
    "tokenize",
    "FilterKey",
    "InvalidQueryError",
    "parse_query",
    "validate_query",
    "stringify_query",
    "resolve_relative_date",
    "CompileOptions",
    "CompiledQuery",
    "Dimension",
    "Predicate",
    "compile_query",
    "generate_facets",
    "generate_snippets",
    "generate_summary_snippet",
    "generate_filename_snippet",
    "strip_highlights",
    "get_highlight_positions",
    "suggest",
    "SearchService",
]
