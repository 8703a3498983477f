"""Result filtering, selection and preview state for a search session."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

import structlog

from pubimport.errors import SummaryUnavailableError
from pubimport.models import LibraryFolder, Publication
from .summarizer import Summarizer, SummaryResult, summarize_one

logger = structlog.get_logger(__name__)

DEFAULT_ROWS_PER_PAGE = 25


@dataclass(slots=True)
class ResultFilter:
    """Free-text and per-field filters applied to the loaded results."""

    text: str = ""
    year: str = ""
    journal: str = ""
    author: str = ""

    def is_active(self) -> bool:
        return any((self.text.strip(), self.year, self.journal, self.author))

    def matches(self, pub: Publication) -> bool:
        terms = self.text.lower().split()
        if terms:
            haystack = " ".join(
                [pub.title, *pub.authors, pub.journal, pub.abstract, str(pub.year), pub.doi, " ".join(pub.keywords)]
            ).lower()
            if not all(term in haystack for term in terms):
                return False
        if self.year and str(pub.year) != self.year:
            return False
        if self.journal and self.journal.lower() not in pub.journal.lower():
            return False
        if self.author:
            needle = self.author.lower()
            if not any(needle in name.lower() for name in pub.authors):
                return False
        return True


@dataclass(slots=True)
class FilterOptions:
    years: list[str]
    journals: list[str]
    authors: list[str]


def filter_options(results: Iterable[Publication]) -> FilterOptions:
    """Distinct values for the filter dropdowns."""
    items = list(results)
    return FilterOptions(
        years=sorted({str(pub.year) for pub in items}, reverse=True),
        journals=sorted({pub.journal for pub in items}),
        authors=sorted({name for pub in items for name in pub.authors}),
    )


class ResultsView:
    """Filtered, paginated window over search results plus the selection set.

    Selection changes only ever touch the rows currently visible, and every
    selected id stays present in `results`.
    """

    def __init__(self, results: Sequence[Publication] = (), *, rows_per_page: int = DEFAULT_ROWS_PER_PAGE) -> None:
        if rows_per_page < 1:
            raise ValueError("rows_per_page must be positive")
        self.rows_per_page = rows_per_page
        self._results: list[Publication] = list(results)
        self._filter = ResultFilter()
        self._page = 0
        self._selected: set[str] = set()

    @property
    def results(self) -> list[Publication]:
        return list(self._results)

    @property
    def filter(self) -> ResultFilter:
        return self._filter

    @filter.setter
    def filter(self, value: ResultFilter) -> None:
        self._filter = value
        self._page = 0

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_count(self) -> int:
        total = len(self.filtered)
        return max(1, -(-total // self.rows_per_page))

    def set_page(self, page: int) -> None:
        self._page = min(max(page, 0), self.page_count - 1)

    @property
    def filtered(self) -> list[Publication]:
        if not self._filter.is_active():
            return list(self._results)
        return [pub for pub in self._results if self._filter.matches(pub)]

    @property
    def visible(self) -> list[Publication]:
        start = self._page * self.rows_per_page
        return self.filtered[start : start + self.rows_per_page]

    def replace(self, results: Sequence[Publication]) -> None:
        """A new search replaced the results; the selection goes with them."""
        self._results = list(results)
        self._selected.clear()
        self._page = 0

    def extend(self, results: Sequence[Publication]) -> None:
        """Load-more appended a page; keep what the user already picked."""
        self._results.extend(results)

    def sync(self, results: Sequence[Publication]) -> None:
        """Adopt the session's result list, replacing or extending as appropriate."""
        current = [pub.id for pub in self._results]
        incoming = [pub.id for pub in results]
        if current and incoming[: len(current)] == current:
            self.extend(results[len(current) :])
        else:
            self.replace(results)

    def toggle(self, publication_id: str) -> bool:
        if publication_id not in {pub.id for pub in self.visible}:
            logger.debug("selection.toggle_ignored", publication_id=publication_id)
            return False
        if publication_id in self._selected:
            self._selected.discard(publication_id)
        else:
            self._selected.add(publication_id)
        return True

    def select_all(self) -> None:
        self._selected.update(pub.id for pub in self.visible)

    def clear(self) -> None:
        self._selected.difference_update(pub.id for pub in self.visible)

    def is_selected(self, publication_id: str) -> bool:
        return publication_id in self._selected

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def selected(self) -> list[Publication]:
        return [pub for pub in self._results if pub.id in self._selected]

    @property
    def all_selected(self) -> bool:
        visible = self.visible
        return bool(visible) and all(pub.id in self._selected for pub in visible)

    @property
    def some_selected(self) -> bool:
        visible = self.visible
        hits = sum(1 for pub in visible if pub.id in self._selected)
        return 0 < hits < len(visible)


@dataclass(slots=True)
class Preview:
    """State of a single or bulk preview before import."""

    publications: list[Publication]
    summary: SummaryResult | None = None
    summary_notice: str | None = None
    folder: LibraryFolder | None = None
    summary_requested: bool = False
    bulk: bool = False

    @property
    def publication(self) -> Publication:
        return self.publications[0]

    @property
    def folder_id(self) -> str | None:
        return self.folder.id if self.folder else None

    @property
    def keywords(self) -> list[str]:
        if self.summary and self.summary.keywords:
            return self.summary.keywords
        return self.publication.keywords if not self.bulk else []


class PreviewManager:
    """Opens previews and requests AI summaries without letting them block."""

    def __init__(self, summarizer: Summarizer | None = None) -> None:
        self._summarizer = summarizer

    async def preview_one(self, publication: Publication, *, folder: LibraryFolder | None = None) -> Preview:
        preview = Preview(publications=[publication], folder=folder)
        if not (publication.abstract or publication.title):
            return preview
        if self._summarizer is None:
            preview.summary_notice = "AI summary is not available."
            return preview
        preview.summary_requested = True
        try:
            preview.summary = await summarize_one(self._summarizer, publication)
        except SummaryUnavailableError as exc:
            logger.info("preview.summary_unavailable", publication_id=publication.id, error=str(exc))
            preview.summary_notice = str(exc)
        return preview

    def preview_many(self, publications: Sequence[Publication], *, folder: LibraryFolder | None = None) -> Preview:
        if not publications:
            raise ValueError("Select at least one publication to preview")
        return Preview(publications=list(publications), folder=folder, bulk=True)

    async def promote(self, preview: Preview, publication: Publication) -> Preview:
        """Open the detailed preview for one entry of a bulk preview."""
        if publication.id not in {pub.id for pub in preview.publications}:
            raise ValueError(f"{publication.id} is not part of this preview")
        return await self.preview_one(publication, folder=preview.folder)

    @staticmethod
    def bind_folder(preview: Preview, folder: LibraryFolder) -> Preview:
        return replace(preview, folder=folder)

    @staticmethod
    def unbind_folder(preview: Preview) -> Preview:
        return replace(preview, folder=None)
