"""SQLite-backed store behind the reference publications/library API."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import structlog
from sqlalchemy import text
from sqlmodel import Session, select

from pubimport.db import FolderPublicationRecord, FolderRecord, PublicationRecord, get_engine
from pubimport.errors import (
    EmptyNameError,
    FolderCycleError,
    FolderNotFoundError,
    NotFoundError,
)
from pubimport.models import ImportSource, LibraryFolder, LibrarySnapshot, Publication
from pubimport.settings import Settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# UNION (not UNION ALL) stops at folders already visited.
DESCENDANTS_SQL = text(
    "WITH RECURSIVE sub(id) AS ("
    " SELECT id FROM folderrecord WHERE parent_id = :folder_id"
    " UNION SELECT f.id FROM folderrecord f JOIN sub ON f.parent_id = sub.id"
    ") SELECT id FROM sub"
)


class LocalLibrary:
    """Publications plus the folder library, persisted with sqlmodel."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._lock = asyncio.Lock()
        self._settings.ensure_directories()
        self._engine = get_engine(str(self._settings.db_path))

    # Publications ---------------------------------------------------------

    async def save_publication(self, publication: Publication) -> Publication:
        """Store a new row; the returned copy carries the server id."""
        return await self._run(self._save_publication_sync, publication)

    async def get_publication(self, publication_id: str) -> Publication:
        return await self._run(self._get_publication_sync, publication_id)

    async def list_publications(self) -> list[Publication]:
        return await self._run(self._list_publications_sync)

    # Library --------------------------------------------------------------

    async def snapshot(self) -> LibrarySnapshot:
        return await self._run(self._snapshot_sync)

    async def create_folder(self, name: str, parent_id: str | None = None) -> LibraryFolder:
        return await self._run(self._create_folder_sync, name, parent_id)

    async def rename_folder(self, folder_id: str, name: str) -> LibraryFolder:
        return await self._run(self._rename_folder_sync, folder_id, name)

    async def move_folder(self, folder_id: str, parent_id: str | None) -> LibraryFolder:
        return await self._run(self._move_folder_sync, folder_id, parent_id)

    async def toggle_expanded(self, folder_id: str) -> LibraryFolder:
        return await self._run(self._toggle_expanded_sync, folder_id)

    async def delete_folder(self, folder_id: str) -> set[str]:
        return await self._run(self._delete_folder_sync, folder_id)

    async def add_publication(self, folder_id: str, publication_id: str) -> None:
        await self._run(self._add_publication_sync, folder_id, publication_id)

    async def remove_publication(self, folder_id: str, publication_id: str) -> None:
        await self._run(self._remove_publication_sync, folder_id, publication_id)

    async def move_publication(self, publication_id: str, source_folder_id: str, target_folder_id: str) -> None:
        await self._run(self._move_publication_sync, publication_id, source_folder_id, target_folder_id)

    # Internal helpers -----------------------------------------------------

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    def _save_publication_sync(self, publication: Publication) -> Publication:
        record = PublicationRecord(
            title=publication.title,
            authors_json=json.dumps(publication.authors),
            year=str(publication.year),
            journal=publication.journal,
            type=publication.type,
            abstract=publication.abstract,
            keywords_json=json.dumps(publication.keywords),
            doi=publication.doi,
            url=publication.url,
            volume=publication.volume,
            issue=publication.issue,
            pages=publication.pages,
            isbn=publication.isbn,
            source=publication.source,
            pubmed_id=publication.pubmed_id,
            import_source_json=(
                publication.import_source.model_dump_json(by_alias=True) if publication.import_source else "{}"
            ),
        )
        with Session(self._engine, expire_on_commit=False) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        logger.info("storage.publication_saved", publication_id=record.id, pubmed_id=record.pubmed_id)
        return self._record_to_publication(record)

    def _get_publication_sync(self, publication_id: str) -> Publication:
        with Session(self._engine) as session:
            record = session.get(PublicationRecord, publication_id)
            if record is None:
                raise NotFoundError("Publication not found")
            return self._record_to_publication(record)

    def _list_publications_sync(self) -> list[Publication]:
        with Session(self._engine) as session:
            statement = select(PublicationRecord).order_by(PublicationRecord.created_at.desc())
            records = session.exec(statement).all()
            return [self._record_to_publication(record) for record in records]

    def _snapshot_sync(self) -> LibrarySnapshot:
        with Session(self._engine) as session:
            folders = session.exec(select(FolderRecord).order_by(FolderRecord.created_at.asc())).all()
            links = session.exec(select(FolderPublicationRecord)).all()
            filed: dict[str, list[str]] = {folder.id: [] for folder in folders}
            for link in links:
                filed.setdefault(link.folder_id, []).append(link.publication_id)
            return LibrarySnapshot(
                folders=[self._record_to_folder(folder) for folder in folders],
                folder_publications=filed,
            )

    def _create_folder_sync(self, name: str, parent_id: str | None) -> LibraryFolder:
        clean = (name or "").strip()
        if not clean:
            raise EmptyNameError("Folder name is required")
        with Session(self._engine, expire_on_commit=False) as session:
            if parent_id and session.get(FolderRecord, parent_id) is None:
                raise FolderNotFoundError("Parent folder not found")
            record = FolderRecord(name=clean, parent_id=parent_id or None, expanded=False)
            session.add(record)
            session.commit()
            session.refresh(record)
        return self._record_to_folder(record)

    def _rename_folder_sync(self, folder_id: str, name: str) -> LibraryFolder:
        clean = (name or "").strip()
        if not clean:
            raise EmptyNameError("Folder name is required")
        return self._update_folder(folder_id, name=clean)

    def _move_folder_sync(self, folder_id: str, parent_id: str | None) -> LibraryFolder:
        with Session(self._engine) as session:
            if session.get(FolderRecord, folder_id) is None:
                raise FolderNotFoundError("Folder not found")
            if parent_id:
                if session.get(FolderRecord, parent_id) is None:
                    raise FolderNotFoundError("Target folder not found")
                if parent_id == folder_id or parent_id in self._descendant_ids(session, folder_id):
                    raise FolderCycleError("Cannot move folder into its own descendant")
        return self._update_folder(folder_id, parent_id=parent_id or None)

    def _toggle_expanded_sync(self, folder_id: str) -> LibraryFolder:
        with Session(self._engine) as session:
            record = session.get(FolderRecord, folder_id)
            if record is None:
                raise FolderNotFoundError("Folder not found")
            expanded = not record.expanded
        return self._update_folder(folder_id, expanded=expanded)

    def _delete_folder_sync(self, folder_id: str) -> set[str]:
        with Session(self._engine) as session:
            if session.get(FolderRecord, folder_id) is None:
                raise FolderNotFoundError("Folder not found")
            doomed = {folder_id} | self._descendant_ids(session, folder_id)
            links = session.exec(
                select(FolderPublicationRecord).where(FolderPublicationRecord.folder_id.in_(list(doomed)))
            ).all()
            for link in links:
                session.delete(link)
            session.flush()
            for record in session.exec(select(FolderRecord).where(FolderRecord.id.in_(list(doomed)))).all():
                session.delete(record)
            session.commit()
        logger.info("storage.folder_deleted", folder_id=folder_id, removed=len(doomed))
        return doomed

    def _add_publication_sync(self, folder_id: str, publication_id: str) -> None:
        with Session(self._engine) as session:
            if session.get(FolderRecord, folder_id) is None:
                raise FolderNotFoundError("Folder not found")
            if session.get(PublicationRecord, publication_id) is None:
                raise NotFoundError("Publication not found")
            if session.get(FolderPublicationRecord, (folder_id, publication_id)) is None:
                session.add(FolderPublicationRecord(folder_id=folder_id, publication_id=publication_id))
                session.commit()

    def _remove_publication_sync(self, folder_id: str, publication_id: str) -> None:
        with Session(self._engine) as session:
            if session.get(FolderRecord, folder_id) is None:
                raise FolderNotFoundError("Folder not found")
            link = session.get(FolderPublicationRecord, (folder_id, publication_id))
            if link is not None:
                session.delete(link)
                session.commit()

    def _move_publication_sync(self, publication_id: str, source_folder_id: str, target_folder_id: str) -> None:
        with Session(self._engine) as session:
            for fid in (source_folder_id, target_folder_id):
                if session.get(FolderRecord, fid) is None:
                    raise FolderNotFoundError("One or both folders not found")
            link = session.get(FolderPublicationRecord, (source_folder_id, publication_id))
            if link is not None:
                session.delete(link)
            if session.get(FolderPublicationRecord, (target_folder_id, publication_id)) is None:
                session.add(FolderPublicationRecord(folder_id=target_folder_id, publication_id=publication_id))
            session.commit()

    def _update_folder(self, folder_id: str, **changes: Any) -> LibraryFolder:
        with Session(self._engine, expire_on_commit=False) as session:
            record = session.get(FolderRecord, folder_id)
            if record is None:
                raise FolderNotFoundError("Folder not found")
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.commit()
            session.refresh(record)
        return self._record_to_folder(record)

    @staticmethod
    def _descendant_ids(session: Session, folder_id: str) -> set[str]:
        rows = session.connection().execute(DESCENDANTS_SQL, {"folder_id": folder_id}).fetchall()
        return {row[0] for row in rows}

    @staticmethod
    def _record_to_folder(record: FolderRecord) -> LibraryFolder:
        return LibraryFolder(id=record.id, name=record.name, parent=record.parent_id, expanded=record.expanded)

    @staticmethod
    def _record_to_publication(record: PublicationRecord) -> Publication:
        import_source = json.loads(record.import_source_json or "{}")
        year: int | str = int(record.year) if record.year.isdigit() else record.year
        return Publication(
            id=record.id,
            title=record.title,
            authors=json.loads(record.authors_json or "[]") or ["Unknown Author"],
            year=year,
            journal=record.journal,
            type=record.type,
            abstract=record.abstract,
            keywords=json.loads(record.keywords_json or "[]"),
            doi=record.doi,
            url=record.url,
            volume=record.volume,
            issue=record.issue,
            pages=record.pages,
            isbn=record.isbn,
            source=record.source,
            pubmed_id=record.pubmed_id,
            import_source=ImportSource.model_validate(import_source) if import_source else None,
        )
