"""Value types shared by the tokenizer, matcher and sorter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from refshelf.models import Reference

MatchStrength = Literal["exact", "partial"]


@dataclass(frozen=True, slots=True)
class SearchToken:
    raw: str
    value: str
    field: str | None = None
    is_phrase: bool = False


@dataclass(frozen=True, slots=True)
class FieldMatch:
    field: str
    strength: MatchStrength
    value: str


@dataclass(slots=True)
class TokenMatch:
    token: SearchToken
    matches: list[FieldMatch] = field(default_factory=list)

    @property
    def best_strength(self) -> MatchStrength:
        if any(match.strength == "exact" for match in self.matches):
            return "exact"
        return "partial"


@dataclass(slots=True)
class SearchResult:
    reference: Reference
    token_matches: list[TokenMatch]
    overall_strength: MatchStrength
    score: int
