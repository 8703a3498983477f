"""Core data models shared by the import pipeline and the library backend."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_YEAR = "Unknown Year"
UNKNOWN_JOURNAL = "Unknown Journal"


class WireModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ImportSource(WireModel):
    """Provenance of a normalized record."""

    method: str
    source_id: str
    import_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)


class Publication(WireModel):
    """Canonical, source-agnostic publication record."""

    id: str
    title: str = UNKNOWN_TITLE
    authors: list[str] = Field(default_factory=lambda: [UNKNOWN_AUTHOR])
    year: int | str = UNKNOWN_YEAR
    journal: str = UNKNOWN_JOURNAL
    type: str = "article"
    abstract: str = ""
    keywords: list[str] = Field(default_factory=list)
    doi: str = ""
    url: str = ""
    volume: str = ""
    issue: str = ""
    pages: str = ""
    isbn: str = ""
    source: str = ""
    pubmed_id: str = ""
    import_source: ImportSource | None = None

    @property
    def author_line(self) -> str:
        if len(self.authors) <= 3:
            return ", ".join(self.authors)
        return f"{', '.join(self.authors[:3])} et al."

    @property
    def dedupe_key(self) -> tuple[str, str]:
        source_id = self.pubmed_id or (self.import_source.source_id if self.import_source else "")
        return (self.source.lower(), source_id or self.id)


class SearchCriteria(BaseModel):
    """Structured search inputs; every non-empty field becomes one AND clause."""

    keywords: str = ""
    author: str = ""
    year: str = ""
    journal: str = ""
    title: str = ""

    def is_empty(self) -> bool:
        return not any(value.strip() for value in self.model_dump().values())


class SearchPage(BaseModel):
    """One page of normalized provider results."""

    publications: list[Publication] = Field(default_factory=list)
    total_count: int = 0


class LibraryFolder(WireModel):
    """A node of the publication library tree."""

    id: str
    name: str
    parent: str | None = None
    expanded: bool = False


class LibrarySnapshot(WireModel):
    """Everything `GET /library` returns."""

    folders: list[LibraryFolder] = Field(default_factory=list)
    folder_publications: dict[str, list[str]] = Field(default_factory=dict)
