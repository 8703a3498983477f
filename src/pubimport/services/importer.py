"""Sequential import of selected publications, with optional library filing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Sequence

import structlog

from pubimport.errors import LibraryFilingError, PersistenceError, PubImportError
from pubimport.models import Publication
from .collaborators import LibraryBackend, PublicationStore

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(slots=True)
class ImportOutcome:
    """What happened to one publication during an import run."""

    publication: Publication
    persisted: Publication | None = None
    error: PersistenceError | None = None
    folder_id: str | None = None
    filed: bool = False
    filing_error: LibraryFilingError | None = None
    skipped: bool = False

    @property
    def imported(self) -> bool:
        return self.persisted is not None

    @property
    def partial(self) -> bool:
        """Persisted, but filing into the requested folder failed."""
        return self.imported and self.filing_error is not None


@dataclass(slots=True)
class ImportSummary:
    total: int = 0
    success_count: int = 0
    fail_count: int = 0
    skipped_count: int = 0
    filed_count: int = 0
    filing_fail_count: int = 0
    folder_id: str | None = None
    outcomes: list[ImportOutcome] = field(default_factory=list)

    @property
    def imported(self) -> list[Publication]:
        return [outcome.persisted for outcome in self.outcomes if outcome.persisted is not None]

    @property
    def unfiled_ids(self) -> list[str]:
        """Server ids that were persisted but could not be filed."""
        return [outcome.persisted.id for outcome in self.outcomes if outcome.partial and outcome.persisted]

    @property
    def level(self) -> str:
        if self.success_count == 0 and self.total:
            return "info" if self.skipped_count == self.total else "error"
        if self.fail_count or self.filing_fail_count:
            return "warning"
        return "success"

    @property
    def message(self) -> str:
        if self.total and self.success_count == 0:
            if self.skipped_count == self.total:
                return f"All {self.total} publication{_plural(self.total)} were already imported"
            return f"Failed to import all {self.total} publication{_plural(self.total)}"
        noun = f"{self.success_count} publication{_plural(self.success_count)}"
        failed = f", {self.fail_count} failed" if self.fail_count else ""
        skipped = f", {self.skipped_count} skipped as duplicates" if self.skipped_count else ""
        if self.folder_id is None:
            return f"Successfully imported {noun}{failed}{skipped}"
        if self.filing_fail_count:
            return (
                f"{noun} imported{failed}{skipped}, but {self.filing_fail_count} "
                f"failed to add to library"
            )
        return f"Successfully imported {noun} and added to library{failed}{skipped}"


class ImportOrchestrator:
    """Persists publications one at a time and files them into a folder on request.

    Imports are not idempotent: the same source record imported twice yields
    two persisted copies unless `dedupe` is enabled, which skips records whose
    source id this orchestrator has already imported.
    """

    def __init__(
        self,
        store: PublicationStore,
        library: LibraryBackend | None = None,
        *,
        dedupe: bool = False,
    ) -> None:
        self._store = store
        self._library = library
        self._dedupe = dedupe
        self._imported_keys: set[tuple[str, str]] = set()

    async def import_one(self, publication: Publication, folder_id: str | None = None) -> ImportOutcome:
        """Persist one record; raises `PersistenceError` if the persist step fails."""
        outcome = ImportOutcome(publication=publication, folder_id=folder_id)
        if self._dedupe and publication.dedupe_key in self._imported_keys:
            logger.info("import.skipped_duplicate", key=publication.dedupe_key)
            outcome.skipped = True
            return outcome

        try:
            persisted = await self._store.create(publication)
        except PersistenceError:
            raise
        except PubImportError as exc:
            raise PersistenceError(str(exc) or "Failed to import publication") from exc
        outcome.persisted = persisted
        self._imported_keys.add(publication.dedupe_key)
        logger.info("import.persisted", source_id=publication.pubmed_id, publication_id=persisted.id)

        if folder_id:
            await self._file(outcome, persisted, folder_id)
        return outcome

    async def iter_import(
        self, publications: Sequence[Publication], folder_id: str | None = None
    ) -> AsyncIterator[ImportOutcome]:
        """Yield one outcome per publication, strictly in order, never aborting the batch."""
        for publication in publications:
            try:
                outcome = await self.import_one(publication, folder_id)
            except PersistenceError as exc:
                logger.warning("import.failed", title=publication.title, error=str(exc))
                outcome = ImportOutcome(publication=publication, error=exc, folder_id=folder_id)
            yield outcome

    async def import_many(
        self,
        publications: Sequence[Publication],
        folder_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ImportSummary:
        summary = ImportSummary(total=len(publications), folder_id=folder_id or None)
        async for outcome in self.iter_import(publications, folder_id):
            summary.outcomes.append(outcome)
            if outcome.skipped:
                summary.skipped_count += 1
            elif outcome.imported:
                summary.success_count += 1
            else:
                summary.fail_count += 1
            if outcome.filed:
                summary.filed_count += 1
            if outcome.filing_error is not None:
                summary.filing_fail_count += 1
            if on_progress:
                on_progress(len(summary.outcomes), summary.total)
        logger.info(
            "import.batch_complete",
            success=summary.success_count,
            failed=summary.fail_count,
            filing_failed=summary.filing_fail_count,
        )
        return summary

    async def _file(self, outcome: ImportOutcome, persisted: Publication, folder_id: str) -> None:
        if self._library is None:
            outcome.filing_error = LibraryFilingError("No library service configured")
            return
        try:
            await self._library.add_publication(folder_id, persisted.id)
        except PubImportError as exc:
            logger.warning(
                "import.filing_failed",
                folder_id=folder_id,
                publication_id=persisted.id,
                error=str(exc),
            )
            if not isinstance(exc, LibraryFilingError):
                filing_error = LibraryFilingError(str(exc) or "Failed to add to library")
                filing_error.__cause__ = exc
                exc = filing_error
            outcome.filing_error = exc
            return
        outcome.filed = True


def describe_outcome(outcome: ImportOutcome) -> tuple[str, str]:
    """Notice `(level, message)` for a single-record import."""
    title = outcome.publication.title
    if outcome.skipped:
        return "info", f'"{title}" was already imported'
    if outcome.error is not None:
        return "error", f"Import failed: {outcome.error}"
    if outcome.filing_error is not None:
        return "warning", f"Publication imported but failed to add to library: {outcome.filing_error}"
    if outcome.filed:
        return "success", f'Successfully imported "{title}" and added to library'
    return "success", f'Successfully imported "{title}"'


def _plural(count: int) -> str:
    return "" if count == 1 else "s"
