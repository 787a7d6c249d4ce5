"""Knowledge ingestion: uploaded files, notes and URLs into the store.

Files in one batch are read and normalized concurrently; each result is
then persisted one at a time, and a failure on one file is recorded in
the report without touching its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .acquisition import UrlFetcher
from .errors import CopilotError, EmptyContentError, FileTooLargeError
from .normalizer import normalize_file
from .store import KnowledgeStore
from .types import KnowledgeItem, KnowledgeKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_MB = 100


class FileLike(Protocol):
    """Shape shared by FastAPI's ``UploadFile`` and :class:`InMemoryFile`."""

    filename: Optional[str]
    content_type: Optional[str]

    async def read(self) -> bytes: ...


@dataclass
class InMemoryFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    async def read(self) -> bytes:
        return self.data


@dataclass
class IngestFailure:
    name: str
    error: str

    def to_dict(self):
        return {"name": self.name, "error": self.error}


@dataclass
class IngestReport:
    added: List[KnowledgeItem] = field(default_factory=list)
    failed: List[IngestFailure] = field(default_factory=list)


class KnowledgeIngestor:
    def __init__(
        self,
        store: KnowledgeStore,
        fetcher: UrlFetcher,
        *,
        max_file_mb: float = DEFAULT_MAX_FILE_MB,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.max_file_mb = max_file_mb
        self.max_file_bytes = int(max_file_mb * 1024 * 1024)

    # --------- files ----------
    async def _file_item(self, upload: FileLike) -> KnowledgeItem:
        name = upload.filename or "untitled"
        limit = f"File {name} exceeds the {self.max_file_mb:g}MB limit."
        size = getattr(upload, "size", None)
        if size is not None and size > self.max_file_bytes:
            raise FileTooLargeError(limit)
        data = await upload.read()
        if len(data) > self.max_file_bytes:
            raise FileTooLargeError(limit)

        content = await asyncio.to_thread(normalize_file, name, data, upload.content_type)
        if not content.strip():
            raise EmptyContentError(f"File {name} contains no readable text.")
        return KnowledgeItem(title=name, content=content, kind=KnowledgeKind.FILE)

    async def add_files(self, uploads: Sequence[FileLike]) -> IngestReport:
        report = IngestReport()
        results = await asyncio.gather(
            *(self._file_item(u) for u in uploads), return_exceptions=True
        )
        for upload, result in zip(uploads, results):
            name = upload.filename or "untitled"
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Failed to read file %s: %s", name, result)
                report.failed.append(IngestFailure(name, str(result) or type(result).__name__))
                continue
            try:
                await self.store.put(result)
            except CopilotError as e:
                logger.warning("Failed to save file %s: %s", name, e)
                report.failed.append(IngestFailure(name, str(e)))
                continue
            report.added.append(result)
        logger.info("Uploaded %d file(s), %d failed", len(report.added), len(report.failed))
        return report

    # --------- notes / urls ----------
    async def add_note(self, text: str) -> Optional[KnowledgeItem]:
        if not text or not text.strip():
            return None
        item = KnowledgeItem(
            title=f"Note {datetime.now().strftime('%H:%M:%S')}",
            content=text,
            kind=KnowledgeKind.NOTE,
        )
        await self.store.put(item)
        return item

    async def add_url(self, url: str) -> KnowledgeItem:
        item = await self.fetcher.fetch(url)
        await self.store.put(item)
        logger.info("Stored %s (%d chars)", item.title, len(item.content))
        return item
