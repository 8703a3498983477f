from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from pubimport.errors import LibraryFilingError, LibraryRequestError
from pubimport.models import Publication, SearchCriteria
from pubimport.services import (
    FolderTree,
    ImportOrchestrator,
    ImportWorkspace,
    PreviewManager,
    PubMedSource,
    RestLibraryBackend,
    RestPublicationStore,
    SearchSession,
)
from pubimport.settings import Settings
from pubimport.web.app import create_app


def _client(tmp_path) -> TestClient:
    return TestClient(create_app(Settings(data_dir=tmp_path)))


def _create_folder(client: TestClient, name: str, parent_id: str | None = None) -> dict:
    response = client.post("/api/library", json={"action": "createFolder", "name": name, "parentId": parent_id})
    assert response.status_code == 200
    return response.json()["folder"]


def test_library_starts_empty(tmp_path) -> None:
    response = _client(tmp_path).get("/api/library")
    assert response.status_code == 200
    assert response.json() == {"success": True, "folders": [], "folderPublications": {}}


def test_create_folder_validation(tmp_path) -> None:
    client = _client(tmp_path)
    blank = client.post("/api/library", json={"action": "createFolder", "name": "  "})
    assert blank.status_code == 400
    assert blank.json() == {"success": False, "error": "Folder name is required"}

    missing_parent = client.post("/api/library", json={"action": "createFolder", "name": "x", "parentId": "nope"})
    assert missing_parent.status_code == 404

    invalid = client.post("/api/library", json={"action": "explode"})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Invalid action"


def test_move_into_descendant_is_rejected(tmp_path) -> None:
    client = _client(tmp_path)
    parent = _create_folder(client, "Parent")
    child = _create_folder(client, "Child", parent["id"])

    response = client.put("/api/library", json={"action": "move", "folderId": parent["id"], "parentId": child["id"]})
    assert response.status_code == 400

    toggled = client.put("/api/library", json={"action": "toggleExpanded", "folderId": parent["id"]})
    assert toggled.json()["folder"]["expanded"] is True

    missing = client.put("/api/library", json={"action": "rename", "folderId": "nope", "name": "x"})
    assert missing.status_code == 404
    no_id = client.put("/api/library", json={"action": "rename", "name": "x"})
    assert no_id.status_code == 400


def test_publications_roundtrip_and_filing(tmp_path) -> None:
    client = _client(tmp_path)
    pub = Publication(id="pubmed_1_1", title="Stored", source="PubMed", pubmed_id="1")
    created = client.post("/api/publications", json={"publication": pub.to_wire()})
    assert created.status_code == 200
    stored = created.json()["publication"]
    assert stored["id"] != "pubmed_1_1"
    assert stored["pubmedId"] == "1"

    folder = _create_folder(client, "Inbox")
    filed = client.post(
        "/api/library", json={"action": "addPublication", "folderId": folder["id"], "publicationId": stored["id"]}
    )
    assert filed.json() == {"success": True}
    unknown = client.post(
        "/api/library", json={"action": "addPublication", "folderId": folder["id"], "publicationId": "nope"}
    )
    assert unknown.status_code == 404

    library = client.get("/api/library").json()
    assert library["folderPublications"][folder["id"]] == [stored["id"]]

    deleted = client.delete("/api/library", params={"folderId": folder["id"]})
    assert deleted.json()["success"] is True
    assert client.get("/api/library").json()["folders"] == []
    assert client.delete("/api/library").status_code == 400


ESEARCH = {"esearchresult": {"count": "2", "idlist": ["111", "222"]}}
ESUMMARY = {
    "result": {
        "uids": ["111", "222"],
        "111": {"uid": "111", "title": "Diabetes A", "authors": [{"name": "Smith J"}], "pubdate": "2021"},
        "222": {"uid": "222", "title": "Diabetes B", "authors": [], "pubdate": "2022 Mar"},
    }
}


def _pubmed_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("esearch.fcgi"):
        return httpx.Response(200, json=ESEARCH)
    return httpx.Response(200, json=ESUMMARY)


@pytest.mark.asyncio
async def test_search_select_import_into_folder_end_to_end(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path, api_base_url="http://test/api")
    app = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as api, httpx.AsyncClient(
        transport=httpx.MockTransport(_pubmed_handler)
    ) as pubmed_client:
        library = RestLibraryBackend(api, settings)
        tree = FolderTree(library)
        await tree.load()
        folder = await tree.create_folder("Diabetes")

        workspace = ImportWorkspace(
            SearchSession(PubMedSource(pubmed_client, settings), page_size=100),
            PreviewManager(),
            ImportOrchestrator(RestPublicationStore(api, settings), library),
        )
        await workspace.search(SearchCriteria(title="diabetes"))
        assert workspace.notices[-1].message == "Loaded 2 of 2 publication(s) from PubMed"

        workspace.view.select_all()
        workspace.preview_selected()
        workspace.bind_folder(folder)
        summary = await workspace.import_preview()

        assert summary.success_count == 2
        assert summary.filed_count == 2
        assert workspace.notices[-1].message == "Successfully imported 2 publications and added to library"

        await tree.load()
        filed = tree.publications_in(folder.id)
        assert filed == {pub.id for pub in summary.imported}

        stored = (await api.get("/api/publications")).json()["publications"]
        assert {pub["title"] for pub in stored} == {"Diabetes A", "Diabetes B"}


@pytest.mark.asyncio
async def test_rest_clients_surface_server_errors(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path, api_base_url="http://test/api")
    app = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as api:
        library = RestLibraryBackend(api, settings)
        with pytest.raises(LibraryRequestError) as excinfo:
            await library.create_folder("   ", None)
        assert excinfo.value.status_code == 400
        assert excinfo.value.detail == "Folder name is required"

        folder = await library.create_folder("Inbox", None)
        with pytest.raises(LibraryFilingError) as filing:
            await library.add_publication(folder.id, "missing")
        assert filing.value.status_code == 404


@pytest.mark.asyncio
async def test_expanded_flags_match_server_after_creates_and_toggles(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path, api_base_url="http://test/api")
    app = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as api:
        library = RestLibraryBackend(api, settings)
        tree = FolderTree(library)
        await tree.load()

        parent = await tree.create_folder("Parent")
        tree.toggle_expanded(parent.id)
        child = await tree.create_folder("Child", parent.id)
        tree.toggle_expanded(child.id)
        grandchild = await tree.create_folder("Grandchild", child.id)
        await tree.flush()

        fresh = FolderTree(library)
        await fresh.load()
        for folder_id in (parent.id, child.id, grandchild.id):
            assert fresh.get(folder_id).expanded == tree.get(folder_id).expanded
        assert tree.get(child.id).expanded is True
        assert tree.get(grandchild.id).expanded is False
