"""One import surface: search session, results view, preview and import, one modal at a time."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import structlog

from pubimport.errors import PersistenceError
from pubimport.models import LibraryFolder, Publication, SearchCriteria
from .importer import ImportOrchestrator, ImportOutcome, ImportSummary, describe_outcome
from .selection import Preview, PreviewManager, ResultsView
from .session import Notice, SearchSession

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class NoModal:
    pass


@dataclass(slots=True, frozen=True)
class ResultsModal:
    pass


@dataclass(slots=True, frozen=True)
class PreviewModal:
    preview: Preview


Modal = Union[NoModal, ResultsModal, PreviewModal]


class ImportWorkspace:
    """Coordinates the search → select → preview → import flow for one surface."""

    def __init__(
        self,
        session: SearchSession,
        previews: PreviewManager,
        orchestrator: ImportOrchestrator,
        *,
        rows_per_page: int = 25,
    ) -> None:
        self.session = session
        self.view = ResultsView(rows_per_page=rows_per_page)
        self._previews = previews
        self._orchestrator = orchestrator
        self.modal: Modal = NoModal()
        self.importing = False
        self.notices: list[Notice] = []

    async def search(self, criteria: SearchCriteria) -> None:
        started = await self.session.start_search(criteria)
        self._drain_session_notice()
        if not started:
            return
        self.view.replace(self.session.results)
        self.modal = ResultsModal() if self.session.results_open else NoModal()

    async def load_more(self) -> bool:
        loaded = await self.session.load_more()
        if loaded:
            self.view.sync(self.session.results)
        self._drain_session_notice()
        return loaded

    async def preview(self, publication: Publication) -> Preview:
        preview = await self._previews.preview_one(publication)
        self.modal = PreviewModal(preview)
        return preview

    def preview_selected(self) -> Preview:
        preview = self._previews.preview_many(self.view.selected)
        self.modal = PreviewModal(preview)
        return preview

    async def promote(self, publication: Publication) -> Preview:
        current = self._current_preview()
        preview = await self._previews.promote(current, publication)
        self.modal = PreviewModal(preview)
        return preview

    def bind_folder(self, folder: LibraryFolder | None) -> Preview:
        current = self._current_preview()
        if folder is None:
            preview = self._previews.unbind_folder(current)
        else:
            preview = self._previews.bind_folder(current, folder)
        self.modal = PreviewModal(preview)
        return preview

    async def import_preview(self) -> ImportSummary | ImportOutcome:
        """Import whatever the open preview shows into its bound folder, if any."""
        preview = self._current_preview()
        if preview.bulk:
            return await self.import_many(preview.publications, preview.folder_id)
        return await self.import_one(preview.publication, preview.folder_id)

    async def import_one(self, publication: Publication, folder_id: str | None = None) -> ImportOutcome:
        self.importing = True
        try:
            outcome = await self._orchestrator.import_one(publication, folder_id)
        except PersistenceError as exc:
            outcome = ImportOutcome(publication=publication, error=exc, folder_id=folder_id)
        finally:
            self.importing = False
        level, message = describe_outcome(outcome)
        self.notices.append(Notice(level, message))
        if outcome.imported:
            self.close()
        return outcome

    async def import_many(self, publications: Sequence[Publication], folder_id: str | None = None) -> ImportSummary:
        self.importing = True
        try:
            summary = await self._orchestrator.import_many(publications, folder_id)
        finally:
            self.importing = False
        self.notices.append(Notice(summary.level, summary.message))
        self.close()
        return summary

    async def import_selected(self, folder_id: str | None = None) -> ImportSummary:
        return await self.import_many(self.view.selected, folder_id)

    def back_to_results(self) -> None:
        self.modal = ResultsModal() if self.session.results else NoModal()

    def close(self) -> None:
        self.modal = NoModal()

    def _current_preview(self) -> Preview:
        if not isinstance(self.modal, PreviewModal):
            raise RuntimeError("No preview is open")
        return self.modal.preview

    def _drain_session_notice(self) -> None:
        if self.session.notice is not None:
            self.notices.append(self.session.notice)
            self.session.notice = None
