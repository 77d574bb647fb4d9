"""Configuration helpers for refshelf."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_DATA_DIR = Path.home() / ".reference-manager"
LIBRARY_FILENAME = "csl.library.json"


class Settings(BaseModel):
    """Runtime configuration loaded from env vars with sensible defaults."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR)
    library: Path | None = None
    attachments_dir: Path | None = None
    log_level: str = "WARNING"
    crossref_base_url: str = "https://api.crossref.org/works"
    pubmed_base_url: str = "https://pmc.ncbi.nlm.nih.gov/api/ctxp/v1/pubmed/"
    pubmed_email: str | None = None
    pubmed_api_key: str | None = None
    default_sort: str = "updated"
    default_order: str = "desc"
    default_limit: int = 0
    citation_style: str = "bibliography"

    @property
    def library_path(self) -> Path:
        return self.library or self.data_dir / LIBRARY_FILENAME

    @property
    def attachments_path(self) -> Path:
        return self.attachments_dir or self.data_dir / "attachments"

    def ensure_directories(self) -> None:
        """Create data directories if they are missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.library_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv()
        data_dir = Path(os.environ.get("REFSHELF_DATA_DIR", DEFAULT_DATA_DIR))
        library = os.environ.get("REFSHELF_LIBRARY")
        attachments_dir = os.environ.get("REFSHELF_ATTACHMENTS_DIR")
        return cls(
            data_dir=data_dir,
            library=Path(library) if library else None,
            attachments_dir=Path(attachments_dir) if attachments_dir else None,
            log_level=os.environ.get("REFSHELF_LOG_LEVEL", "WARNING"),
            crossref_base_url=os.environ.get(
                "REFSHELF_CROSSREF_URL", "https://api.crossref.org/works"
            ),
            pubmed_base_url=os.environ.get(
                "REFSHELF_PUBMED_URL", "https://pmc.ncbi.nlm.nih.gov/api/ctxp/v1/pubmed/"
            ),
            pubmed_email=os.environ.get("REFSHELF_PUBMED_EMAIL"),
            pubmed_api_key=os.environ.get("REFSHELF_PUBMED_API_KEY"),
            default_sort=os.environ.get("REFSHELF_DEFAULT_SORT", "updated"),
            default_order=os.environ.get("REFSHELF_DEFAULT_ORDER", "desc"),
            default_limit=int(os.environ.get("REFSHELF_DEFAULT_LIMIT", "0")),
            citation_style=os.environ.get("REFSHELF_CITATION_STYLE", "bibliography"),
        )


def get_settings() -> Settings:
    """Convenience accessor for lazy modules."""
    settings = Settings.load()
    settings.ensure_directories()
    return settings


def configure_logging(level: str) -> None:
    """Route structlog output to stderr, dropping events below ``level``."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
