"""Knowledge base helpers: snippet selection, rendering and suggestion.

Selection is intentionally unranked: active entries of the owning
organization are taken in storage order up to a fixed cap. Entries carry an
embedding column upstream but no similarity search is performed here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from ..errors import GenerationError
from . import schemas
from .parsing import extract_json
from .prompts import build_knowledge_entry_prompt
from .providers import AnthropicProvider

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_LIMIT = 5


def select_knowledge_entries(
    entries: Iterable[schemas.KnowledgeEntry],
    organization_id: UUID,
    limit: int = DEFAULT_KNOWLEDGE_LIMIT,
) -> list[schemas.KnowledgeEntry]:
    """Return at most ``limit`` active entries owned by ``organization_id``."""

    selected: list[schemas.KnowledgeEntry] = []
    if limit <= 0:
        return selected
    for entry in entries:
        if entry.organization_id != organization_id or not entry.is_active:
            continue
        selected.append(entry)
        if len(selected) >= limit:
            break
    return selected


def render_snippet(entry: schemas.KnowledgeEntry) -> str:
    return f"Q: {entry.question}\nA: {entry.answer}"


class KnowledgeEntrySuggester:
    """Turn an answered customer question into a reusable knowledge entry."""

    def __init__(self, provider: AnthropicProvider) -> None:
        self._provider = provider

    def suggest(self, question: str, answer: str) -> schemas.KnowledgeSuggestion:
        fallback = schemas.KnowledgeSuggestion(question=question, answer=answer)
        try:
            text = self._provider.complete(
                "knowledge_entry",
                [{"role": "user", "content": build_knowledge_entry_prompt(question, answer)}],
            )
            payload = extract_json(text)
        except (GenerationError, ValueError) as exc:
            logger.warning("Knowledge entry suggestion failed: %s", exc)
            return fallback
        tags = payload.get("tags")
        return schemas.KnowledgeSuggestion(
            question=str(payload.get("question") or question),
            answer=str(payload.get("answer") or answer),
            category=str(payload.get("category") or "General"),
            tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
        )


__all__ = [
    "DEFAULT_KNOWLEDGE_LIMIT",
    "KnowledgeEntrySuggester",
    "render_snippet",
    "select_knowledge_entries",
]
