"""CSL-JSON data models used throughout refshelf."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CslName(BaseModel):
    """A single contributor: personal (family/given) or institutional (literal)."""

    model_config = ConfigDict(extra="allow")

    family: str | None = None
    given: str | None = None
    literal: str | None = None

    @property
    def display_name(self) -> str:
        if self.literal:
            return self.literal
        return " ".join(part for part in (self.given, self.family) if part)


class CslDate(BaseModel):
    """Partial date expressed as CSL ``date-parts``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    date_parts: list[list[int]] = Field(default_factory=list, alias="date-parts")
    raw: str | None = None
    literal: str | None = None

    @property
    def year(self) -> int | None:
        if self.date_parts and self.date_parts[0]:
            return self.date_parts[0][0]
        return None


class Attachment(BaseModel):
    filename: str
    role: str
    label: str | None = None


class Attachments(BaseModel):
    directory: str
    files: list[Attachment] = Field(default_factory=list)


class CheckSummary(BaseModel):
    checked_at: str
    status: str
    findings: list[str] = Field(default_factory=list)


class ReferenceMeta(BaseModel):
    """System-managed metadata stored under the CSL ``custom`` key."""

    model_config = ConfigDict(extra="allow")

    uuid: str | None = None
    created_at: str | None = None
    timestamp: str | None = None
    tags: list[str] | None = None
    additional_urls: list[str] | None = None
    attachments: Attachments | None = None
    check: CheckSummary | None = None


class Reference(BaseModel):
    """One bibliographic record in CSL-JSON form.

    Unknown CSL variables are preserved as extra attributes so that a
    load/save cycle never drops data.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    type: str = "article"
    title: str | None = None
    author: list[CslName] | None = None
    editor: list[CslName] | None = None
    issued: CslDate | None = None
    accessed: CslDate | None = None
    container_title: str | None = Field(default=None, alias="container-title")
    publisher: str | None = None
    volume: str | None = None
    issue: str | None = None
    page: str | None = None
    DOI: str | None = None
    PMID: str | None = None
    PMCID: str | None = None
    ISBN: str | None = None
    URL: str | None = None
    abstract: str | None = None
    keyword: list[str] | None = None
    note: str | None = None
    language: str | None = None
    custom: ReferenceMeta = Field(default_factory=ReferenceMeta)

    @field_validator("keyword", mode="before")
    @classmethod
    def _split_keywords(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(";") if part.strip()]
        return value

    @field_validator("volume", "issue", "page", "PMID", "ISBN", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("container_title", "title", mode="before")
    @classmethod
    def _first_of_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @property
    def uuid(self) -> str | None:
        return self.custom.uuid

    @property
    def year(self) -> int | None:
        return self.issued.year if self.issued else None

    @property
    def first_author(self) -> CslName | None:
        return self.author[0] if self.author else None

    def to_csl(self) -> dict[str, Any]:
        """Serialize back to a CSL-JSON mapping."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_csl(cls, payload: dict[str, Any]) -> "Reference":
        return cls.model_validate(payload)
