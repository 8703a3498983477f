"""SQLite persistence layer for the reference publications/library backend."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from uuid import uuid4

from sqlmodel import Field, SQLModel, create_engine


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class PublicationRecord(SQLModel, table=True):
    """Persisted publication row."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str
    authors_json: str = Field(default="[]")
    year: str = ""
    journal: str = ""
    type: str = "article"
    abstract: str = ""
    keywords_json: str = Field(default="[]")
    doi: str = Field(default="", index=True)
    url: str = ""
    volume: str = ""
    issue: str = ""
    pages: str = ""
    isbn: str = ""
    source: str = ""
    pubmed_id: str = Field(default="", index=True)
    import_source_json: str = Field(default="{}")
    created_at: datetime = Field(default_factory=_now)


class FolderRecord(SQLModel, table=True):
    """Library folder; `parent_id` None means root level."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    parent_id: str | None = Field(default=None, foreign_key="folderrecord.id", index=True)
    expanded: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class FolderPublicationRecord(SQLModel, table=True):
    """Filing of one publication in one folder."""

    folder_id: str = Field(foreign_key="folderrecord.id", primary_key=True)
    publication_id: str = Field(foreign_key="publicationrecord.id", primary_key=True)
    added_at: datetime = Field(default_factory=_now)


def create_engine_for_path(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


@lru_cache(maxsize=4)
def get_engine(path_str: str):
    engine = create_engine_for_path(Path(path_str))
    init_db(engine)
    return engine
