"""Split a raw query string into text, quoted, and key:value tokens."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


class TokenKind(str, Enum):
    TEXT = "text"
    QUOTED = "quoted"
    FILTER = "filter"


@dataclass(frozen=True)
class Token:
    """One query token. `key` is set (lower-cased) only for filters."""

    kind: TokenKind
    value: str
    key: Optional[str] = None
    negated: bool = False


def _read_quoted(query: str, index: int) -> Tuple[str, int]:
    """Consume a "..." span starting at `index`; an unclosed quote runs to the end."""
    closing = query.find('"', index + 1)
    if closing == -1:
        return query[index + 1 :], len(query)
    return query[index + 1 : closing], closing + 1


def tokenize(query: str) -> List[Token]:
    """
    Tokenize a query left to right.

    - whitespace separates tokens
    - a leading '-' negates the token that follows
    - "..." is one quoted token, embedded whitespace included
    - word with ':' after position 0 is a filter; its value may be quoted
      (entity:"John Smith")

    Never raises: malformed input degrades to text tokens.
    """
    tokens: List[Token] = []
    i = 0
    length = len(query)

    while i < length:
        while i < length and query[i].isspace():
            i += 1
        if i >= length:
            break

        negated = query[i] == "-"
        if negated:
            i += 1
            if i >= length or query[i].isspace():
                # A bare '-' negates nothing.
                continue

        if query[i] == '"':
            value, i = _read_quoted(query, i)
            tokens.append(Token(TokenKind.QUOTED, value, negated=negated))
            continue

        start = i
        while i < length and not query[i].isspace():
            i += 1
        word = query[start:i]

        colon = word.find(":")
        if colon > 0:
            key = word[:colon].lower()
            value = word[colon + 1 :]
            if value.startswith('"'):
                value, i = _read_quoted(query, start + colon + 1)
            tokens.append(Token(TokenKind.FILTER, value, key=key, negated=negated))
        else:
            tokens.append(Token(TokenKind.TEXT, word, negated=negated))

    return tokens


__all__ = ["Token", "TokenKind", "tokenize"]
