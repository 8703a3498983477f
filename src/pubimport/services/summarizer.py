"""Client for the AI summarization collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

import httpx
import structlog

from pubimport.errors import SummaryUnavailableError
from pubimport.models import Publication
from pubimport.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SummaryResult:
    id: str
    success: bool
    summary: str | None = None
    keywords: list[str] = field(default_factory=list)
    error: str | None = None


class Summarizer(Protocol):
    async def summarize(self, publications: Iterable[Publication]) -> list[SummaryResult]:
        ...


class RemoteSummarizer:
    """POSTs `{publications: [{id, title, abstract}]}` to the summarize endpoint."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def summarize(self, publications: Iterable[Publication]) -> list[SummaryResult]:
        url = self._settings.summarize_url
        if not url:
            raise SummaryUnavailableError("AI summarization is not configured")
        body = {
            "publications": [
                {"id": pub.id, "title": pub.title, "abstract": pub.abstract}
                for pub in publications
            ]
        }
        try:
            response = await self._client.post(url, json=body, timeout=self._settings.request_timeout)
        except httpx.HTTPError as exc:
            logger.warning("summarizer.http_error", error=str(exc))
            raise SummaryUnavailableError(f"Failed to generate AI summary: {exc}") from exc
        if response.is_error:
            detail = _error_text(response)
            logger.warning("summarizer.rejected", status=response.status_code, detail=detail)
            raise SummaryUnavailableError(
                detail or "Failed to generate AI summary",
                status_code=response.status_code,
                detail=detail,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SummaryUnavailableError("AI summary response was not JSON") from exc
        results = payload.get("results") if isinstance(payload, dict) else None
        return [_parse_result(item) for item in results or [] if isinstance(item, dict)]


async def summarize_one(summarizer: Summarizer, publication: Publication) -> SummaryResult:
    """Summarize a single record, raising when the collaborator reports no summary."""
    results = await summarizer.summarize([publication])
    if not results:
        raise SummaryUnavailableError("Failed to generate summary")
    result = results[0]
    if not result.success:
        raise SummaryUnavailableError(result.error or "Failed to generate summary")
    return result


def _parse_result(item: dict) -> SummaryResult:
    keywords = item.get("keywords")
    return SummaryResult(
        id=str(item.get("id") or ""),
        success=bool(item.get("success")),
        summary=item.get("summary"),
        keywords=[str(k) for k in keywords] if isinstance(keywords, list) else [],
        error=item.get("error"),
    )


def _error_text(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.text
