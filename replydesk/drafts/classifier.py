"""Intent, sentiment, urgency and category of inbound customer messages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..errors import GenerationError
from . import schemas
from .parsing import extract_json
from .prompts import build_classification_prompt
from .providers import AnthropicProvider

logger = logging.getLogger(__name__)

_POSITIVE = {"great", "good", "awesome", "love", "thanks", "thank you", "helpful", "appreciate"}
_NEGATIVE = {
    "bad",
    "terrible",
    "angry",
    "hate",
    "upset",
    "cancel",
    "complain",
    "frustrated",
    "unacceptable",
    "disappointed",
}

_CATEGORY_PATTERNS = {
    "billing": re.compile(r"\b(invoice|refund|charged?|billing|payment|subscription)\b", re.I),
    "complaint": re.compile(r"\b(complain\w*|unacceptable|terrible service)\b", re.I),
    "technical": re.compile(r"\b(error|bug|crash|not\s+working|broken|login)\b", re.I),
    "feature_request": re.compile(r"\b(feature|would be nice|could you add)\b", re.I),
}
_INTENTS = {
    "billing": "Billing question",
    "complaint": "Complaint",
    "technical": "Technical support",
    "feature_request": "Feature request",
}
_URGENT = re.compile(r"\b(urgent|asap|immediately|right away|emergency)\b", re.I)

_SENTIMENTS = {"positive", "neutral", "negative"}
_URGENCIES = {"low", "medium", "high"}


def normalize_category(value: str | None) -> str | None:
    """Lower-case a category label and use underscores between words."""

    if value is None:
        return None
    cleaned = re.sub(r"[\s\-]+", "_", value.strip().lower())
    return cleaned or None


@dataclass
class KeywordClassifier:
    """Deterministic classifier used when the model is unavailable."""

    def classify(self, text: str) -> schemas.MessageClassification:
        text = text or ""
        lowered = text.lower()
        category = None
        for label, pattern in _CATEGORY_PATTERNS.items():
            if pattern.search(text):
                category = label
                break
        return schemas.MessageClassification(
            intent=_INTENTS.get(category or "", "General inquiry"),
            sentiment=self._sentiment(lowered),
            urgency="high" if _URGENT.search(text) else "medium",
            category=category or "general_inquiry",
        )

    def _sentiment(self, lowered: str) -> str:
        positives = sum(1 for token in _POSITIVE if token in lowered)
        negatives = sum(1 for token in _NEGATIVE if token in lowered)
        if positives > negatives:
            return "positive"
        if negatives > positives:
            return "negative"
        return "neutral"


class MessageClassifier:
    """Ask the model to classify a message; fall back to keywords on failure."""

    def __init__(
        self,
        provider: AnthropicProvider | None,
        fallback: KeywordClassifier | None = None,
    ) -> None:
        self._provider = provider
        self._fallback = fallback or KeywordClassifier()

    def classify(self, text: str) -> schemas.MessageClassification:
        if self._provider is None:
            return self._fallback.classify(text)
        try:
            reply = self._provider.complete(
                "classification",
                [{"role": "user", "content": build_classification_prompt(text)}],
            )
            payload = extract_json(reply)
        except (GenerationError, ValueError) as exc:
            logger.warning("Message classification failed, using keywords: %s", exc)
            return self._fallback.classify(text)
        return _from_payload(payload)


def _from_payload(payload: dict[str, Any]) -> schemas.MessageClassification:
    sentiment = str(payload.get("sentiment") or "neutral").strip().lower()
    urgency = str(payload.get("urgency") or "medium").strip().lower()
    category = payload.get("category")
    return schemas.MessageClassification(
        intent=str(payload.get("intent") or "General inquiry"),
        sentiment=sentiment if sentiment in _SENTIMENTS else "neutral",
        urgency=urgency if urgency in _URGENCIES else "medium",
        category=normalize_category(category) if isinstance(category, str) else None,
    )


__all__ = ["KeywordClassifier", "MessageClassifier", "normalize_category"]
