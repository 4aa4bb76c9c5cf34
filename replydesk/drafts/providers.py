"""Anthropic Messages API access for the drafting pipeline.

Every call is a single attempt with an explicit timeout. Provider failures,
timeouts and replies without a usable text block all surface as
:class:`~replydesk.errors.GenerationError`; callers decide whether to fall
back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import anthropic

from ..config import Settings, get_settings
from ..errors import GenerationError
from . import schemas

logger = logging.getLogger(__name__)

# Reply budget per pipeline task; unknown tasks get the draft budget.
MAX_TOKENS: Mapping[str, int] = {
    "draft": 1024,
    "analysis": 200,
    "classification": 150,
    "knowledge_entry": 300,
}


def first_text_block(response: Any) -> str | None:
    """Return the text of the first ``text``-typed content block, if any."""

    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return getattr(block, "text", None)
    return None


class AnthropicProvider:
    """Thin wrapper around :class:`anthropic.Anthropic` ``messages.create``."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        settings: Settings | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tokens: Mapping[str, int] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._settings = settings
        self._client = client
        self.model = model or settings.anthropic_model
        self.timeout = timeout or settings.llm_timeout_seconds
        self._max_tokens = {**MAX_TOKENS, **(max_tokens or {})}

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self._settings.anthropic_api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def create(
        self,
        task: str,
        messages: list[dict[str, str]],
        *,
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> schemas.GeneratedText:
        kwargs: dict[str, Any] = dict(
            model=self.model,
            messages=messages,
            timeout=self.timeout,
            max_tokens=max_tokens or self._max_tokens.get(task, MAX_TOKENS["draft"]),
        )
        # Anthropic ignores empty system strings; only pass if present
        if system:
            kwargs["system"] = system
        try:
            response = self._get_client().messages.create(**kwargs)
        except anthropic.APITimeoutError as exc:
            raise GenerationError(
                f"{task} request timed out after {self.timeout:g}s"
            ) from exc
        except anthropic.AnthropicError as exc:
            raise GenerationError(
                f"{task} request failed: {exc.__class__.__name__}"
            ) from exc
        text = first_text_block(response)
        if not text or not text.strip():
            raise GenerationError(f"{task} reply contained no text")
        return schemas.GeneratedText(
            text=text,
            model=str(getattr(response, "model", None) or self.model),
            stop_reason=getattr(response, "stop_reason", None),
        )

    def complete(
        self,
        task: str,
        messages: list[dict[str, str]],
        *,
        system: str | None = None,
    ) -> str:
        return self.create(task, messages, system=system).text


__all__ = ["AnthropicProvider", "MAX_TOKENS", "first_text_block"]
