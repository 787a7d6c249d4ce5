"""Grounding context assembly.

The whole knowledge base is inlined into the system instruction on every
turn. There is no size cap, ranking or truncation; a large knowledge base
can overflow the model's context window.
"""

from __future__ import annotations

from typing import Iterable

from .types import KnowledgeItem


def format_knowledge(items: Iterable[KnowledgeItem]) -> str:
    """``[Document: title]\\ncontent`` blocks joined by blank lines, in store order."""
    return "\n\n".join(f"[Document: {item.title}]\n{item.content}" for item in items)


def compose(items: Iterable[KnowledgeItem], policy: str) -> str:
    """Return the effective system instruction for one model call."""
    return (
        f"{policy}\n"
        "\n---\n"
        "ATTACHED KNOWLEDGE BASE (Use this to answer questions):\n"
        f"{format_knowledge(items)}\n"
        "---\n"
    )
