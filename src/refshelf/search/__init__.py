"""Query tokenizing, field matching and ranking over a reference collection."""

from .matcher import FIELD_STRATEGIES, FieldStrategy, match_all, match_reference, match_token
from .normalizer import normalize_preserving_case, normalize_text
from .sorter import (
    SORT_ALIASES,
    Page,
    paginate,
    resolve_sort_field,
    sort_references,
    sort_results,
)
from .tokenizer import SEARCH_FIELDS, tokenize
from .types import FieldMatch, MatchStrength, SearchResult, SearchToken, TokenMatch

__all__ = [
    "FIELD_STRATEGIES",
    "FieldStrategy",
    "match_all",
    "match_reference",
    "match_token",
    "normalize_preserving_case",
    "normalize_text",
    "SORT_ALIASES",
    "Page",
    "paginate",
    "resolve_sort_field",
    "sort_references",
    "sort_results",
    "SEARCH_FIELDS",
    "tokenize",
    "FieldMatch",
    "MatchStrength",
    "SearchResult",
    "SearchToken",
    "TokenMatch",
]
