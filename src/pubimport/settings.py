"""Configuration helpers for pubimport."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_DATA_DIR = Path.home() / "pubimport-library"
DEFAULT_PUBMED_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
DEFAULT_API_URL = "http://127.0.0.1:8000/api"


class Settings(BaseModel):
    """Runtime configuration loaded from env vars with sensible defaults."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR)
    db_filename: str = "library.sqlite3"
    log_level: str = "INFO"
    pubmed_base_url: str = DEFAULT_PUBMED_URL
    api_base_url: str = DEFAULT_API_URL
    summarize_url: str | None = None
    page_size: int = 100
    request_timeout: float = 30.0

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    def ensure_directories(self) -> None:
        """Create data directories if they are missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv()
        data_dir = Path(os.environ.get("PUBIMPORT_DATA_DIR", DEFAULT_DATA_DIR))
        return cls(
            data_dir=data_dir,
            db_filename=os.environ.get("PUBIMPORT_DB_FILENAME", "library.sqlite3"),
            log_level=os.environ.get("PUBIMPORT_LOG_LEVEL", "INFO"),
            pubmed_base_url=os.environ.get("PUBIMPORT_PUBMED_URL", DEFAULT_PUBMED_URL),
            api_base_url=os.environ.get("PUBIMPORT_API_URL", DEFAULT_API_URL),
            summarize_url=os.environ.get("PUBIMPORT_SUMMARIZE_URL") or None,
            page_size=int(os.environ.get("PUBIMPORT_PAGE_SIZE", "100")),
            request_timeout=float(os.environ.get("PUBIMPORT_TIMEOUT", "30")),
        )


def get_settings() -> Settings:
    """Convenience accessor for lazy modules."""
    settings = Settings.load()
    settings.ensure_directories()
    return settings
