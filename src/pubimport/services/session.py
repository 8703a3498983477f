"""Paginated search session over a bibliographic source."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from pubimport.errors import (
    EmptyQueryError,
    NoResultsError,
    ProviderUnavailableError,
    PubImportError,
)
from pubimport.models import Publication, SearchCriteria
from pubimport.services.pubmed import SearchSource

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100

# (criteria field, PubMed field tag); order is part of the query contract.
QUERY_FIELDS: tuple[tuple[str, str | None], ...] = (
    ("keywords", None),
    ("author", "Author"),
    ("year", "Publication Date"),
    ("journal", "Journal"),
    ("title", "Title"),
)


class SessionState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    HAS_RESULTS = "has_results"
    LOADING_MORE = "loading_more"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Notice:
    """Transient user-facing message (snackbar equivalent)."""

    level: str  # success | info | warning | error
    message: str


def build_query(criteria: SearchCriteria) -> str:
    """Join the non-empty criteria fields into one AND query."""
    parts: list[str] = []
    for field_name, tag in QUERY_FIELDS:
        value = getattr(criteria, field_name).strip()
        if not value:
            continue
        parts.append(value if tag is None else f"{value}[{tag}]")
    return " AND ".join(parts)


def describe_search_error(exc: PubImportError) -> str:
    if isinstance(exc, NoResultsError):
        return "No publications found for this search term. Try different keywords."
    if isinstance(exc, ProviderUnavailableError):
        if exc.is_network_error:
            return "Network error. Please check your internet connection."
        return "PubMed service is temporarily unavailable. Please try again later."
    if isinstance(exc, EmptyQueryError):
        return "Please enter at least one search field"
    return f"Search failed: {exc}"


class SearchSession:
    """Owns query, accumulated results and total count for one search surface."""

    def __init__(self, source: SearchSource, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._source = source
        self.page_size = page_size
        self.state = SessionState.IDLE
        self.query = ""
        self.results: list[Publication] = []
        self.total_count = 0
        self.offset = 0
        self.notice: Notice | None = None
        self.results_open = False
        self._generation = 0
        self._loading_more = False

    @property
    def has_more(self) -> bool:
        return len(self.results) < self.total_count

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    async def start_search(self, criteria: SearchCriteria) -> bool:
        """Replace the session with a fresh search; returns False when the criteria are empty."""
        query = build_query(criteria)
        if not query:
            self.notice = Notice("warning", "Please enter at least one search field")
            return False

        self._generation += 1
        generation = self._generation
        self._loading_more = False
        self.query = query
        self.results = []
        self.total_count = 0
        self.offset = 0
        self.results_open = False
        self.state = SessionState.SEARCHING

        try:
            page = await self._source.search(query, self.page_size, 0)
        except NoResultsError as exc:
            if self._is_stale(generation):
                return True
            self.state = SessionState.IDLE
            self.notice = Notice("info", describe_search_error(exc))
            return True
        except PubImportError as exc:
            if self._is_stale(generation):
                return True
            logger.warning("session.search_failed", query=query, error=str(exc))
            self.state = SessionState.ERROR
            self.notice = Notice("error", describe_search_error(exc))
            return True

        if self._is_stale(generation):
            logger.debug("session.stale_page_dropped", query=query)
            return True
        self.results = list(page.publications)
        self.offset = len(self.results)
        self.total_count = max(page.total_count, self.offset)
        self.state = SessionState.HAS_RESULTS
        self.results_open = True
        self.notice = Notice(
            "success",
            f"Loaded {len(self.results)} of {self.total_count} publication(s) from {self._source.name}",
        )
        return True

    async def load_more(self) -> bool:
        """Fetch and append the next page; returns False when the call was ignored."""
        if self._loading_more or self.state is not SessionState.HAS_RESULTS or not self.has_more:
            return False

        generation = self._generation
        start = self.offset
        self._loading_more = True
        self.state = SessionState.LOADING_MORE
        try:
            page = await self._source.search(self.query, self.page_size, start)
        except NoResultsError:
            if self._is_stale(generation):
                return False
            self.total_count = len(self.results)
            self.state = SessionState.HAS_RESULTS
            self.notice = Notice("info", "No more publications available for this search.")
            return False
        except PubImportError as exc:
            if self._is_stale(generation):
                return False
            logger.warning("session.load_more_failed", query=self.query, offset=start, error=str(exc))
            self.state = SessionState.HAS_RESULTS
            self.notice = Notice("error", describe_search_error(exc))
            return False
        finally:
            if generation == self._generation:
                self._loading_more = False

        if self._is_stale(generation):
            return False
        self.results.extend(page.publications)
        self.offset = len(self.results)
        self.total_count = max(page.total_count, self.offset)
        self.state = SessionState.HAS_RESULTS
        self.notice = Notice(
            "success",
            f"Loaded {len(self.results)} of {self.total_count} publication(s) from {self._source.name}",
        )
        return True

    def close(self) -> None:
        """The owning surface went away; late responses are dropped.

        Accumulated results survive, so the surface can be reopened and paged
        further without a new search.
        """
        self._generation += 1
        self._loading_more = False
        self.results_open = False
        if self.state in (SessionState.SEARCHING, SessionState.LOADING_MORE):
            self.state = SessionState.HAS_RESULTS if self.results else SessionState.IDLE

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation
