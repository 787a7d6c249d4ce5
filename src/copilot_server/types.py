"""Core data types: knowledge items and chat messages."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict


class KnowledgeKind(str, Enum):
    NOTE = "note"
    FILE = "file"
    URL = "url"


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class KnowledgeItem:
    """A normalized unit of grounding text held by the knowledge store.

    Items are immutable; an update is a full replacement under the same id.
    """

    title: str
    content: str
    kind: KnowledgeKind
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeItem":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            kind=KnowledgeKind(data.get("kind", KnowledgeKind.NOTE.value)),
        )


@dataclass(frozen=True)
class Message:
    """One entry of a conversation. Messages are append-only."""

    role: Role
    text: str
    id: str = field(default_factory=new_id)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp,
        }
