"""Draft generation against the hosted model."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from . import schemas
from .prompts import build_system_prompt
from .providers import AnthropicProvider

logger = logging.getLogger(__name__)


class DraftGenerator:
    """Produce a candidate reply for the latest customer message."""

    def __init__(self, provider: AnthropicProvider) -> None:
        self._provider = provider

    def generate(
        self,
        customer_message: str,
        transcript: Sequence[schemas.TranscriptTurn] = (),
        brand_voice: str | None = None,
        knowledge_snippets: Sequence[str] = (),
    ) -> schemas.GeneratedText:
        """Return the draft text.

        Raises :class:`~replydesk.errors.GenerationError` when the provider
        fails or replies without text. Nothing is retried.
        """

        system_prompt = build_system_prompt(brand_voice, knowledge_snippets)
        messages = [{"role": turn.role, "content": turn.content} for turn in transcript]
        messages.append({"role": "user", "content": customer_message})
        result = self._provider.create("draft", messages, system=system_prompt)
        logger.debug(
            "Generated draft of %d chars with %d history turns and %d snippets",
            len(result.text),
            len(transcript),
            len(knowledge_snippets),
        )
        return result


__all__ = ["DraftGenerator"]
