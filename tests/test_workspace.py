from __future__ import annotations

import pytest

from pubimport.errors import PersistenceError
from pubimport.models import LibraryFolder, Publication, SearchCriteria, SearchPage
from pubimport.services import (
    ImportOrchestrator,
    ImportWorkspace,
    NoModal,
    PreviewManager,
    PreviewModal,
    ResultsModal,
    SearchSession,
)


class StaticSource:
    name = "PubMed"

    def __init__(self, count: int) -> None:
        self.pubs = [Publication(id=f"r{i}", title=f"Result {i}", source="PubMed", pubmed_id=str(i)) for i in range(count)]

    async def search(self, query: str, max_results: int = 50, start_index: int = 0) -> SearchPage:
        return SearchPage(publications=self.pubs[start_index : start_index + max_results], total_count=len(self.pubs))


class Store:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.created: list[str] = []

    async def create(self, publication: Publication) -> Publication:
        if self.fail:
            raise PersistenceError("Failed to import publication")
        self.created.append(publication.id)
        return publication.model_copy(update={"id": f"db-{publication.id}"})


class Library:
    def __init__(self) -> None:
        self.filed: list[tuple[str, str]] = []

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        self.filed.append((folder_id, publication_id))


def _workspace(count: int = 30, store: Store | None = None, library: Library | None = None) -> ImportWorkspace:
    return ImportWorkspace(
        SearchSession(StaticSource(count), page_size=20),
        PreviewManager(),
        ImportOrchestrator(store or Store(), library),
        rows_per_page=10,
    )


@pytest.mark.asyncio
async def test_search_opens_results_modal() -> None:
    workspace = _workspace()
    await workspace.search(SearchCriteria(keywords="x"))
    assert isinstance(workspace.modal, ResultsModal)
    assert len(workspace.view.results) == 20
    assert workspace.notices[-1].level == "success"


@pytest.mark.asyncio
async def test_load_more_keeps_selection_and_new_search_clears_it() -> None:
    workspace = _workspace()
    await workspace.search(SearchCriteria(keywords="x"))
    workspace.view.toggle("r1")
    assert await workspace.load_more()
    assert len(workspace.view.results) == 30
    assert workspace.view.selected_ids == {"r1"}
    await workspace.search(SearchCriteria(keywords="y"))
    assert workspace.view.selected_ids == frozenset()


@pytest.mark.asyncio
async def test_only_one_modal_at_a_time() -> None:
    workspace = _workspace()
    await workspace.search(SearchCriteria(keywords="x"))
    preview = await workspace.preview(workspace.view.visible[0])
    assert isinstance(workspace.modal, PreviewModal)
    assert workspace.modal.preview is preview
    workspace.back_to_results()
    assert isinstance(workspace.modal, ResultsModal)
    workspace.close()
    assert isinstance(workspace.modal, NoModal)
    with pytest.raises(RuntimeError):
        workspace.bind_folder(None)


@pytest.mark.asyncio
async def test_bulk_preview_promote_and_import_into_folder() -> None:
    library = Library()
    workspace = _workspace(library=library)
    await workspace.search(SearchCriteria(keywords="x"))
    workspace.view.toggle("r0")
    workspace.view.toggle("r2")
    workspace.preview_selected()
    workspace.bind_folder(LibraryFolder(id="f1", name="Inbox"))

    detailed = await workspace.promote(workspace.view.selected[1])
    assert detailed.folder_id == "f1"
    assert detailed.publication.id == "r2"

    outcome = await workspace.import_preview()
    assert outcome.filed
    assert library.filed == [("f1", "db-r2")]
    assert isinstance(workspace.modal, NoModal)
    assert workspace.notices[-1].message == 'Successfully imported "Result 2" and added to library'


@pytest.mark.asyncio
async def test_failed_single_import_keeps_preview_open() -> None:
    workspace = _workspace(store=Store(fail=True))
    await workspace.search(SearchCriteria(keywords="x"))
    await workspace.preview(workspace.view.visible[0])
    outcome = await workspace.import_preview()
    assert not outcome.imported
    assert isinstance(workspace.modal, PreviewModal)
    assert workspace.notices[-1].level == "error"
    assert not workspace.importing


@pytest.mark.asyncio
async def test_import_selected_reports_summary() -> None:
    store = Store()
    workspace = _workspace(store=store)
    await workspace.search(SearchCriteria(keywords="x"))
    workspace.view.select_all()
    summary = await workspace.import_selected()
    assert summary.success_count == 10
    assert store.created == [f"r{i}" for i in range(10)]
    assert workspace.notices[-1].message == "Successfully imported 10 publications"


@pytest.mark.asyncio
async def test_blank_search_keeps_selection_and_modal() -> None:
    workspace = _workspace()
    await workspace.search(SearchCriteria(keywords="x"))
    workspace.view.toggle("r1")
    workspace.close()

    await workspace.search(SearchCriteria(keywords="   "))

    assert workspace.view.selected_ids == {"r1"}
    assert len(workspace.view.results) == 20
    assert isinstance(workspace.modal, NoModal)
    assert workspace.notices[-1].level == "warning"
