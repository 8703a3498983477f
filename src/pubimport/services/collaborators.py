"""REST clients for the publications and library collaborators."""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from pubimport.errors import (
    CollaboratorError,
    LibraryFilingError,
    LibraryRequestError,
    PersistenceError,
)
from pubimport.models import LibraryFolder, LibrarySnapshot, Publication
from pubimport.settings import Settings

logger = structlog.get_logger(__name__)


class PublicationStore(Protocol):
    """Persists normalized publications and returns them with a server id."""

    async def create(self, publication: Publication) -> Publication:
        ...


class LibraryBackend(Protocol):
    """Server side of the folder library."""

    async def fetch(self) -> LibrarySnapshot:
        ...

    async def create_folder(self, name: str, parent_id: str | None) -> LibraryFolder:
        ...

    async def rename_folder(self, folder_id: str, name: str) -> LibraryFolder:
        ...

    async def move_folder(self, folder_id: str, parent_id: str | None) -> LibraryFolder:
        ...

    async def toggle_expanded(self, folder_id: str) -> LibraryFolder:
        ...

    async def delete_folder(self, folder_id: str) -> None:
        ...

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        ...

    async def remove_publication(self, folder_id: str, publication_id: str) -> None:
        ...

    async def move_publication(self, publication_id: str, source_folder_id: str, target_folder_id: str) -> None:
        ...


class _RestClient:
    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings
        self._base_url = settings.api_base_url.rstrip("/")

    async def _call(
        self,
        method: str,
        path: str,
        error_cls: type[CollaboratorError],
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method, url, json=json, params=params, timeout=self._settings.request_timeout
            )
        except httpx.HTTPError as exc:
            logger.warning("collaborator.http_error", method=method, path=path, error=str(exc))
            raise error_cls(f"Request to {path} failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        if response.is_error or payload.get("success") is False:
            detail = str(payload.get("error") or response.reason_phrase or "")
            logger.warning(
                "collaborator.rejected",
                method=method,
                path=path,
                status=response.status_code,
                detail=detail,
            )
            raise error_cls(detail or f"{method} {path} failed", status_code=response.status_code, detail=detail)
        return payload


class RestPublicationStore(_RestClient):
    """`POST /publications` client."""

    async def create(self, publication: Publication) -> Publication:
        payload = await self._call(
            "POST", "/publications", PersistenceError, json={"publication": publication.to_wire()}
        )
        stored = payload.get("publication") or {}
        server_id = stored.get("id") if isinstance(stored, dict) else None
        if not server_id:
            raise PersistenceError("Publications service returned no id for the imported record")
        return publication.model_copy(update={"id": str(server_id)})

    async def get(self, publication_id: str) -> Publication:
        payload = await self._call("GET", f"/publications/{publication_id}", PersistenceError)
        return Publication.model_validate(payload.get("publication") or {})


class RestLibraryBackend(_RestClient):
    """`/library` client: GET snapshot, POST/PUT actions, DELETE by folder id."""

    async def fetch(self) -> LibrarySnapshot:
        payload = await self._call("GET", "/library", LibraryRequestError)
        return LibrarySnapshot.model_validate(
            {
                "folders": payload.get("folders") or [],
                "folderPublications": payload.get("folderPublications") or {},
            }
        )

    async def create_folder(self, name: str, parent_id: str | None) -> LibraryFolder:
        payload = await self._call(
            "POST",
            "/library",
            LibraryRequestError,
            json={"action": "createFolder", "name": name, "parentId": parent_id},
        )
        return _folder(payload)

    async def rename_folder(self, folder_id: str, name: str) -> LibraryFolder:
        payload = await self._call(
            "PUT",
            "/library",
            LibraryRequestError,
            json={"action": "rename", "folderId": folder_id, "name": name},
        )
        return _folder(payload)

    async def move_folder(self, folder_id: str, parent_id: str | None) -> LibraryFolder:
        payload = await self._call(
            "PUT",
            "/library",
            LibraryRequestError,
            json={"action": "move", "folderId": folder_id, "parentId": parent_id},
        )
        return _folder(payload)

    async def toggle_expanded(self, folder_id: str) -> LibraryFolder:
        payload = await self._call(
            "PUT",
            "/library",
            LibraryRequestError,
            json={"action": "toggleExpanded", "folderId": folder_id},
        )
        return _folder(payload)

    async def delete_folder(self, folder_id: str) -> None:
        await self._call("DELETE", "/library", LibraryRequestError, params={"folderId": folder_id})

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        await self._call(
            "POST",
            "/library",
            LibraryFilingError,
            json={"action": "addPublication", "folderId": folder_id, "publicationId": publication_id},
        )

    async def remove_publication(self, folder_id: str, publication_id: str) -> None:
        await self._call(
            "POST",
            "/library",
            LibraryRequestError,
            json={"action": "removePublication", "folderId": folder_id, "publicationId": publication_id},
        )

    async def move_publication(self, publication_id: str, source_folder_id: str, target_folder_id: str) -> None:
        await self._call(
            "POST",
            "/library",
            LibraryRequestError,
            json={
                "action": "movePublication",
                "publicationId": publication_id,
                "sourceFolderId": source_folder_id,
                "targetFolderId": target_folder_id,
            },
        )


def _folder(payload: dict[str, Any]) -> LibraryFolder:
    folder = payload.get("folder")
    if not isinstance(folder, dict):
        raise LibraryRequestError("Library service returned no folder")
    return LibraryFolder.model_validate(folder)
