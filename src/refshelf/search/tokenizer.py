"""Split a free-form query into field-scoped, phrase and plain tokens."""

from __future__ import annotations

from refshelf.search.types import SearchToken

SEARCH_FIELDS = frozenset(
    {
        "author",
        "title",
        "year",
        "doi",
        "pmid",
        "pmcid",
        "isbn",
        "url",
        "keyword",
        "tag",
        "id",
        "uuid",
    }
)

QUOTE = '"'


def tokenize(query: str) -> list[SearchToken]:
    """Tokenize ``query`` in order of appearance.

    ``field:value`` is only a scope when ``field`` is a known search field;
    any other ``prefix:value`` stays a plain token with the colon kept.
    """
    tokens: list[SearchToken] = []
    index = 0
    while index < len(query):
        if query[index].isspace():
            index += 1
            continue
        token, index = _next_token(query, index)
        if token is not None:
            tokens.append(token)
    return tokens


def _next_token(query: str, start: int) -> tuple[SearchToken | None, int]:
    scoped = _field_token(query, start)
    if scoped is not None:
        return scoped
    if query[start] == QUOTE:
        return _quoted_token(query, start)
    value, end = _read_word(query, start)
    return SearchToken(raw=value, value=value), end


def _field_token(query: str, start: int) -> tuple[SearchToken | None, int] | None:
    colon = query.find(":", start)
    if colon == -1:
        return None
    name = query[start:colon]
    if any(ch.isspace() for ch in name) or name not in SEARCH_FIELDS:
        return None

    value_start = colon + 1
    if value_start >= len(query) or query[value_start].isspace():
        return None, value_start

    if query[value_start] == QUOTE:
        phrase, end = _read_phrase(query, value_start)
        if phrase is None:
            # unclosed or empty quote: not a scope
            return None
        return SearchToken(raw=query[start:end], value=phrase, field=name, is_phrase=True), end

    value, end = _read_word(query, value_start)
    return SearchToken(raw=query[start:end], value=value, field=name), end


def _quoted_token(query: str, start: int) -> tuple[SearchToken | None, int]:
    phrase, end = _read_phrase(query, start)
    if phrase is not None:
        return SearchToken(raw=query[start:end], value=phrase, is_phrase=True), end
    if end > start:
        return None, end
    value, end = _read_word(query, start, stop_at_quote=False)
    return SearchToken(raw=value, value=value), end


def _read_phrase(query: str, start: int) -> tuple[str | None, int]:
    """Read ``"..."`` at ``start``.

    Returns ``(None, start)`` when the quote is never closed and
    ``(None, end)`` for a blank phrase.
    """
    close = query.find(QUOTE, start + 1)
    if close == -1:
        return None, start
    phrase = query[start + 1 : close]
    if not phrase.strip():
        return None, close + 1
    return phrase, close + 1


def _read_word(query: str, start: int, *, stop_at_quote: bool = True) -> tuple[str, int]:
    end = start
    while end < len(query) and not query[end].isspace():
        if stop_at_quote and query[end] == QUOTE:
            break
        end += 1
    return query[start:end], end
