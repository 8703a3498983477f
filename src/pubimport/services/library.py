"""Client-side model of the hierarchical publication library."""

from __future__ import annotations

import asyncio
from typing import Iterator

import structlog

from pubimport.errors import (
    DuplicateFilingError,
    EmptyNameError,
    FolderCycleError,
    FolderNotFoundError,
    LibraryRequestError,
    NotFiledError,
    RedundantMoveError,
)
from pubimport.models import LibraryFolder, LibrarySnapshot
from .collaborators import LibraryBackend

logger = structlog.get_logger(__name__)


class FolderTree:
    """Folder tree plus folder → publication filing, kept in sync with the backend.

    Structural changes (create, rename, move, delete, filing) go through the
    backend first and only then touch local state; `toggle_expanded` is the one
    optimistic, fire-and-forget operation.
    """

    def __init__(self, backend: LibraryBackend) -> None:
        self._backend = backend
        self._folders: dict[str, LibraryFolder] = {}
        self._children: dict[str | None, list[str]] = {}
        self._publications: dict[str, set[str]] = {}
        self._pending: set[asyncio.Task] = set()

    # Loading -------------------------------------------------------------

    async def load(self) -> None:
        snapshot = await self._backend.fetch()
        self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: LibrarySnapshot) -> None:
        self._folders = {folder.id: folder for folder in snapshot.folders}
        self._publications = {
            folder_id: set(pub_ids)
            for folder_id, pub_ids in snapshot.folder_publications.items()
            if folder_id in self._folders
        }
        self._reindex()
        logger.debug("library.loaded", folders=len(self._folders))

    def snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(
            folders=self.folders,
            folder_publications={fid: sorted(ids) for fid, ids in self._publications.items() if ids},
        )

    # Queries -------------------------------------------------------------

    @property
    def folders(self) -> list[LibraryFolder]:
        return list(self._folders.values())

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._folders

    def __len__(self) -> int:
        return len(self._folders)

    def get(self, folder_id: str) -> LibraryFolder:
        try:
            return self._folders[folder_id]
        except KeyError:
            raise FolderNotFoundError(f"Folder {folder_id} not found") from None

    def children(self, parent_id: str | None = None) -> list[LibraryFolder]:
        return [self._folders[child] for child in self._children.get(parent_id, [])]

    def descendants(self, folder_id: str) -> set[str]:
        found: set[str] = set()
        stack = list(self._children.get(folder_id, []))
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(self._children.get(current, []))
        return found

    def ancestors(self, folder_id: str) -> list[str]:
        """Parent chain from the immediate parent up to the root."""
        chain: list[str] = []
        current = self.get(folder_id).parent
        while current is not None and current in self._folders and current not in chain:
            chain.append(current)
            current = self._folders[current].parent
        return chain

    def path(self, folder_id: str) -> str:
        names = [self._folders[fid].name for fid in reversed(self.ancestors(folder_id))]
        names.append(self.get(folder_id).name)
        return " / ".join(names)

    def walk(self, parent_id: str | None = None, depth: int = 0) -> Iterator[tuple[int, LibraryFolder]]:
        """Depth-first `(depth, folder)` pairs for rendering the tree."""
        for folder in self.children(parent_id):
            yield depth, folder
            yield from self.walk(folder.id, depth + 1)

    def publications_in(self, folder_id: str) -> frozenset[str]:
        return frozenset(self._publications.get(folder_id, ()))

    def folders_containing(self, publication_id: str) -> list[str]:
        return [fid for fid, ids in self._publications.items() if publication_id in ids]

    def can_move(self, folder_id: str, new_parent_id: str | None) -> bool:
        try:
            self._validate_move(folder_id, new_parent_id)
        except (FolderCycleError, RedundantMoveError, FolderNotFoundError):
            return False
        return True

    def can_move_publication(self, publication_id: str, from_folder_id: str, to_folder_id: str) -> bool:
        if from_folder_id == to_folder_id:
            return False
        if from_folder_id not in self._folders or to_folder_id not in self._folders:
            return False
        if publication_id not in self._publications.get(from_folder_id, ()):
            return False
        return publication_id not in self._publications.get(to_folder_id, ())

    # Folder mutations ----------------------------------------------------

    async def create_folder(self, name: str, parent_id: str | None = None) -> LibraryFolder:
        clean = (name or "").strip()
        if not clean:
            raise EmptyNameError("Folder name is required")
        parent = self.get(parent_id) if parent_id is not None else None
        folder = await self._backend.create_folder(clean, parent_id)
        self._folders[folder.id] = folder
        self._reindex()
        if parent is not None and not self._folders[parent.id].expanded:
            # reveal the new child; the flip is persisted like any other toggle
            self.toggle_expanded(parent.id)
        logger.info("library.folder_created", folder_id=folder.id, parent_id=parent_id)
        return folder

    async def rename(self, folder_id: str, name: str) -> LibraryFolder:
        clean = (name or "").strip()
        if not clean:
            raise EmptyNameError("Folder name is required")
        current = self.get(folder_id)
        await self._backend.rename_folder(folder_id, clean)
        updated = current.model_copy(update={"name": clean})
        self._folders[folder_id] = updated
        return updated

    async def move(self, folder_id: str, new_parent_id: str | None = None) -> LibraryFolder:
        self._validate_move(folder_id, new_parent_id)
        await self._backend.move_folder(folder_id, new_parent_id)
        updated = self._folders[folder_id].model_copy(update={"parent": new_parent_id})
        self._folders[folder_id] = updated
        self._reindex()
        logger.info("library.folder_moved", folder_id=folder_id, parent_id=new_parent_id)
        return updated

    async def delete(self, folder_id: str) -> set[str]:
        """Delete a folder with every descendant and their filings; returns removed ids."""
        self.get(folder_id)
        doomed = {folder_id} | self.descendants(folder_id)
        await self._backend.delete_folder(folder_id)
        for fid in doomed:
            self._folders.pop(fid, None)
            self._publications.pop(fid, None)
        self._reindex()
        logger.info("library.folder_deleted", folder_id=folder_id, removed=len(doomed))
        return doomed

    def toggle_expanded(self, folder_id: str) -> LibraryFolder:
        """Flip the expanded flag locally and persist it in the background."""
        folder = self.get(folder_id)
        updated = folder.model_copy(update={"expanded": not folder.expanded})
        self._folders[folder_id] = updated
        task = asyncio.get_running_loop().create_task(self._persist_toggle(folder_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return updated

    async def flush(self) -> None:
        """Wait for background toggle requests to settle."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    # Filing ---------------------------------------------------------------

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        self.get(folder_id)
        await self._backend.add_publication(folder_id, publication_id)
        self._publications.setdefault(folder_id, set()).add(publication_id)

    async def copy_publication(self, publication_id: str, to_folder_id: str) -> None:
        """File into another folder while keeping existing filings."""
        await self.add_publication(to_folder_id, publication_id)

    async def remove_publication(self, folder_id: str, publication_id: str) -> None:
        self.get(folder_id)
        await self._backend.remove_publication(folder_id, publication_id)
        self._publications.get(folder_id, set()).discard(publication_id)

    async def move_publication(self, publication_id: str, from_folder_id: str, to_folder_id: str) -> None:
        self.get(from_folder_id)
        self.get(to_folder_id)
        if publication_id in self._publications.get(to_folder_id, ()):
            raise DuplicateFilingError("Publication is already in the target folder")
        if publication_id not in self._publications.get(from_folder_id, ()):
            raise NotFiledError("Publication is not filed in the source folder")
        await self._backend.move_publication(publication_id, from_folder_id, to_folder_id)
        self._publications[from_folder_id].discard(publication_id)
        self._publications.setdefault(to_folder_id, set()).add(publication_id)

    # Internal helpers -----------------------------------------------------

    def _validate_move(self, folder_id: str, new_parent_id: str | None) -> None:
        folder = self.get(folder_id)
        if new_parent_id is not None:
            self.get(new_parent_id)
            if new_parent_id == folder_id or new_parent_id in self.descendants(folder_id):
                raise FolderCycleError("Cannot move a folder into itself or one of its subfolders")
        if folder.parent == new_parent_id:
            raise RedundantMoveError("Folder is already in that location")

    def _reindex(self) -> None:
        children: dict[str | None, list[str]] = {}
        for folder in self._folders.values():
            parent = folder.parent if folder.parent in self._folders else None
            children.setdefault(parent, []).append(folder.id)
        self._children = children

    async def _persist_toggle(self, folder_id: str) -> None:
        try:
            await self._backend.toggle_expanded(folder_id)
        except LibraryRequestError as exc:
            logger.warning("library.toggle_failed", folder_id=folder_id, error=str(exc))
