"""JSON API serving the publications and library collaborator contract."""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse

from pubimport.errors import (
    EmptyNameError,
    FolderCycleError,
    FolderNotFoundError,
    NotFoundError,
    PubImportError,
)
from pubimport.models import Publication, WireModel
from pubimport.services.storage import LocalLibrary
from pubimport.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

ERROR_STATUS: dict[type[PubImportError], int] = {
    EmptyNameError: status.HTTP_400_BAD_REQUEST,
    FolderCycleError: status.HTTP_400_BAD_REQUEST,
    FolderNotFoundError: status.HTTP_404_NOT_FOUND,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}


class LibraryAction(WireModel):
    """Body of `POST /library` and `PUT /library`."""

    action: str = ""
    name: Optional[str] = None
    folder_id: Optional[str] = None
    parent_id: Optional[str] = None
    publication_id: Optional[str] = None
    source_folder_id: Optional[str] = None
    target_folder_id: Optional[str] = None


class PublicationBody(WireModel):
    publication: dict[str, Any]


def _fail(message: str, code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=code)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Factory used by uvicorn and the tests."""
    settings = settings or get_settings()
    app = FastAPI(title="pubimport library API")
    router = APIRouter(prefix="/api")
    storage = LocalLibrary(settings)

    @app.exception_handler(PubImportError)
    async def handle_domain_error(request: Request, exc: PubImportError) -> JSONResponse:
        code = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        logger.info("api.rejected", path=request.url.path, status=code, error=str(exc))
        return _fail(str(exc), code)

    @router.post("/publications")
    async def create_publication(body: PublicationBody) -> dict[str, Any]:
        data = dict(body.publication)
        data.setdefault("id", "pending")
        publication = Publication.model_validate(data)
        stored = await storage.save_publication(publication)
        return {"success": True, "publication": stored.to_wire()}

    @router.get("/publications")
    async def list_publications() -> dict[str, Any]:
        publications = await storage.list_publications()
        return {"success": True, "publications": [pub.to_wire() for pub in publications]}

    @router.get("/publications/{publication_id}")
    async def get_publication(publication_id: str) -> dict[str, Any]:
        publication = await storage.get_publication(publication_id)
        return {"success": True, "publication": publication.to_wire()}

    @router.get("/library")
    async def get_library() -> dict[str, Any]:
        snapshot = await storage.snapshot()
        return {"success": True, **snapshot.to_wire()}

    @router.post("/library", response_model=None)
    async def post_library(body: LibraryAction) -> dict[str, Any] | JSONResponse:
        if body.action == "createFolder":
            folder = await storage.create_folder(body.name or "", body.parent_id)
            return {"success": True, "folder": folder.to_wire()}
        if body.action == "addPublication":
            if not body.folder_id or not body.publication_id:
                return _fail("Folder ID and publication ID are required", status.HTTP_400_BAD_REQUEST)
            await storage.add_publication(body.folder_id, body.publication_id)
            return {"success": True}
        if body.action == "removePublication":
            if not body.folder_id or not body.publication_id:
                return _fail("Folder ID and publication ID are required", status.HTTP_400_BAD_REQUEST)
            await storage.remove_publication(body.folder_id, body.publication_id)
            return {"success": True}
        if body.action == "movePublication":
            if not body.source_folder_id or not body.target_folder_id or not body.publication_id:
                return _fail(
                    "Source folder, target folder, and publication ID are required",
                    status.HTTP_400_BAD_REQUEST,
                )
            await storage.move_publication(body.publication_id, body.source_folder_id, body.target_folder_id)
            return {"success": True}
        return _fail("Invalid action", status.HTTP_400_BAD_REQUEST)

    @router.put("/library", response_model=None)
    async def put_library(body: LibraryAction) -> dict[str, Any] | JSONResponse:
        if not body.folder_id:
            return _fail("Folder ID is required", status.HTTP_400_BAD_REQUEST)
        if body.action == "rename":
            folder = await storage.rename_folder(body.folder_id, body.name or "")
        elif body.action == "move":
            folder = await storage.move_folder(body.folder_id, body.parent_id)
        elif body.action == "toggleExpanded":
            folder = await storage.toggle_expanded(body.folder_id)
        else:
            return _fail("Invalid action", status.HTTP_400_BAD_REQUEST)
        return {"success": True, "folder": folder.to_wire()}

    @router.delete("/library", response_model=None)
    async def delete_library(
        folder_id: Optional[str] = Query(None, alias="folderId"),
    ) -> dict[str, Any] | JSONResponse:
        if not folder_id:
            return _fail("Folder ID is required", status.HTTP_400_BAD_REQUEST)
        removed = await storage.delete_folder(folder_id)
        return {"success": True, "removed": sorted(removed)}

    app.include_router(router)
    return app
