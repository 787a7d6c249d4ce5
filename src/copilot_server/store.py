"""Disk-backed knowledge store (async, atomic, insertion-ordered)."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import SAMPLE_KNOWLEDGE, SAMPLE_TITLE
from .errors import StorageUnavailableError
from .types import KnowledgeItem, KnowledgeKind
from .utils import atomic_write_json, ensure_dir, read_json

logger = logging.getLogger(__name__)

STORE_FILE = "knowledge.json"


def sample_item() -> KnowledgeItem:
    return KnowledgeItem(
        id="sample",
        title=SAMPLE_TITLE,
        content=SAMPLE_KNOWLEDGE,
        kind=KnowledgeKind.NOTE,
    )


class KnowledgeStore:
    """JSON-file store of knowledge items keyed by id.

    Layout:
        data_dir/
          knowledge.json          # list[dict] in insertion order
          knowledge.corrupt.json  # previous file, if it failed to parse

    Every operation is a coroutine. File I/O runs in a worker thread and
    all access goes through one lock, so writes are serialized per item
    and a reader never sees a half-written file.
    """

    def __init__(self, data_dir: str) -> None:
        self.root = Path(data_dir)
        self.path = self.root / STORE_FILE
        self._lock = asyncio.Lock()

    # --------- core API ----------
    async def put(self, item: KnowledgeItem) -> None:
        """Insert or fully replace the item with ``item.id``.

        A replacement keeps the original position in the iteration order.
        """
        async with self._lock:
            items = await self._run(self._load)
            for i, existing in enumerate(items):
                if existing.id == item.id:
                    items[i] = item
                    break
            else:
                items.append(item)
            await self._run(self._save, items)

    async def remove(self, item_id: str) -> None:
        """Delete the item; absent ids are a no-op."""
        async with self._lock:
            items = await self._run(self._load)
            kept = [it for it in items if it.id != item_id]
            if len(kept) != len(items):
                await self._run(self._save, kept)

    async def list_all(self) -> List[KnowledgeItem]:
        async with self._lock:
            return await self._run(self._load)

    async def get(self, item_id: str) -> Optional[KnowledgeItem]:
        for item in await self.list_all():
            if item.id == item_id:
                return item
        return None

    async def clear(self) -> None:
        """Whole-store reset."""
        async with self._lock:
            await self._run(self._save, [])

    async def bootstrap(self, seed: bool = True) -> bool:
        """Seed the built-in sample item if the store is empty.

        Returns True when the sample was written.
        """
        async with self._lock:
            items = await self._run(self._load)
            if items or not seed:
                return False
            await self._run(self._save, [sample_item()])
        logger.info("Knowledge store empty, seeded sample item")
        return True

    # --------- internals ----------
    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as e:
            raise StorageUnavailableError(f"Knowledge store unavailable at {self.path}: {e}") from e

    def _load(self) -> List[KnowledgeItem]:
        if not self.path.exists():
            return []
        try:
            raw = read_json(self.path)
            if not isinstance(raw, list):
                raise ValueError("expected a list of items")
            return [KnowledgeItem.from_dict(d) for d in raw]
        except (json.JSONDecodeError, ValueError, KeyError) as e:
            # Corruption fallback: keep a backup and start fresh.
            bad = self.path.with_suffix(".corrupt.json")
            logger.warning("Knowledge store corrupt (%s); moved to %s", e, bad)
            self.path.replace(bad)
            return []

    def _save(self, items: List[KnowledgeItem]) -> None:
        ensure_dir(self.root)
        payload: List[Dict[str, Any]] = [it.to_dict() for it in items]
        atomic_write_json(self.path, payload)
