"""PubMed eUtils adapter: esearch + esummary, normalized into canonical publications."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

import httpx
import structlog

from pubimport.errors import (
    EmptyQueryError,
    InvalidIdFormatError,
    NoResultsError,
    NotFoundError,
    ProviderUnavailableError,
)
from pubimport.models import (
    UNKNOWN_AUTHOR,
    UNKNOWN_JOURNAL,
    UNKNOWN_TITLE,
    UNKNOWN_YEAR,
    ImportSource,
    Publication,
    SearchPage,
)
from pubimport.settings import Settings
from pubimport.utils import doi_from_article_ids, extract_year, is_pmid

logger = structlog.get_logger(__name__)

MAX_AUTHORS = 20
SOURCE_NAME = "PubMed"
ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"

InputKind = Literal["id", "query"]


class SearchSource(Protocol):
    """Anything that can serve paginated, normalized search results."""

    name: str

    async def search(self, query: str, max_results: int = 50, start_index: int = 0) -> SearchPage:
        ...


@dataclass(slots=True)
class LookupResult:
    kind: Literal["single", "multiple"]
    publications: list[Publication] = field(default_factory=list)
    total_count: int = 0


class PubMedSource:
    """Searches PubMed and turns eSummary payloads into `Publication` records."""

    name = SOURCE_NAME

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings
        self._base_url = settings.pubmed_base_url.rstrip("/")

    async def search(self, query: str, max_results: int = 50, start_index: int = 0) -> SearchPage:
        term = (query or "").strip()
        if not term:
            raise EmptyQueryError("Search term is required")
        logger.info("pubmed.search", term=term, retmax=max_results, retstart=start_index)
        pmids, total = await self._esearch(term, max_results, start_index)
        if not pmids:
            logger.info("pubmed.no_results", term=term, retstart=start_index)
            raise NoResultsError("No publications found for this search term")
        summaries = await self._esummary(pmids)
        publications = [normalize_record(pmid, summaries.get(pmid)) for pmid in pmids]
        return SearchPage(publications=publications, total_count=max(total, len(publications)))

    async def fetch_by_id(self, pmid: str) -> Publication:
        clean = str(pmid or "").strip()
        if not clean:
            raise InvalidIdFormatError("PMID is required")
        if not is_pmid(clean):
            raise InvalidIdFormatError("Invalid PMID format. PMID should be a number.")
        summaries = await self._esummary([clean])
        entry = summaries.get(clean)
        if not isinstance(entry, dict) or entry.get("error"):
            raise NotFoundError(f"Publication not found for PMID {clean}")
        return normalize_record(clean, entry)

    async def lookup(self, value: str, max_results: int = 50) -> LookupResult:
        """Route a single input box to a direct PMID lookup or a search."""
        if not str(value or "").strip():
            raise EmptyQueryError("PubMed ID or search term is required")
        if classify_input(value) == "id":
            publication = await self.fetch_by_id(value)
            return LookupResult(kind="single", publications=[publication], total_count=1)
        page = await self.search(value, max_results=max_results)
        return LookupResult(kind="multiple", publications=page.publications, total_count=page.total_count)

    async def _esearch(self, term: str, max_results: int, start_index: int) -> tuple[list[str], int]:
        params = {
            "db": "pubmed",
            "term": term,
            "retmode": "json",
            "retmax": max_results,
            "retstart": start_index,
        }
        payload = await self._get_json("esearch", params)
        result = payload.get("esearchresult") or {}
        ids = [str(pmid) for pmid in result.get("idlist") or []]
        try:
            total = int(result.get("count") or 0)
        except (TypeError, ValueError):
            total = 0
        return ids, total

    async def _esummary(self, pmids: list[str]) -> dict[str, Any]:
        params = {"db": "pubmed", "id": ",".join(pmids), "retmode": "json"}
        payload = await self._get_json("esummary", params)
        result = payload.get("result")
        return result if isinstance(result, dict) else {}

    async def _get_json(self, stage: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{stage}.fcgi"
        try:
            response = await self._client.get(url, params=params, timeout=self._settings.request_timeout)
        except httpx.HTTPError as exc:
            logger.warning("pubmed.http_error", stage=stage, error=str(exc))
            raise ProviderUnavailableError(stage, None, str(exc)) from exc
        if response.is_error:
            logger.warning("pubmed.http_error", stage=stage, status=response.status_code)
            raise ProviderUnavailableError(stage, response.status_code, response.reason_phrase or response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError(stage, response.status_code, "invalid JSON payload") from exc
        return payload if isinstance(payload, dict) else {}


def classify_input(value: str) -> InputKind:
    """Numeric input is a PMID; anything else is a search query."""
    return "id" if is_pmid(value) else "query"


def normalize_record(pmid: str, raw: Any, now: datetime | None = None) -> Publication:
    """Build a canonical publication from one eSummary entry.

    Total over its input: missing or malformed fields fall back to sentinels,
    so nothing here raises for a bad upstream record.
    """
    data = raw if isinstance(raw, dict) else {}
    pmid = str(pmid).strip()
    imported_at = now or datetime.now(timezone.utc)
    url = ARTICLE_URL.format(pmid=pmid)
    year = extract_year(data.get("pubdate"))
    return Publication(
        id=f"pubmed_{pmid}_{time.time_ns()}",
        title=_text(data.get("title")) or UNKNOWN_TITLE,
        authors=_authors(data.get("authors")),
        year=year if year is not None else UNKNOWN_YEAR,
        journal=_text(data.get("fulljournalname")) or _text(data.get("source")) or UNKNOWN_JOURNAL,
        type="article",
        abstract=_text(data.get("abstract")),
        keywords=[_text(item) for item in _as_list(data.get("keywords")) if _text(item)],
        doi=doi_from_article_ids(data.get("articleids")),
        url=url,
        volume=_text(data.get("volume")),
        issue=_text(data.get("issue")),
        pages=_text(data.get("pages")),
        source=SOURCE_NAME,
        pubmed_id=pmid,
        import_source=ImportSource(
            method="pubmed",
            source_id=pmid,
            import_date=imported_at,
            metadata={"originalSource": SOURCE_NAME, "ncbiUrl": url},
        ),
    )


def _authors(value: Any) -> list[str]:
    names: list[str] = []
    for author in _as_list(value):
        name = _text(author.get("name")) if isinstance(author, dict) else _text(author)
        if name:
            names.append(name)
    return names[:MAX_AUTHORS] or [UNKNOWN_AUTHOR]


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()
