"""Confidence and tone scoring for generated drafts.

The model grades its own draft; deterministic penalties are then applied on
top of the self-reported score:

- the score is clamped to ``[0, 100]``;
- drafts shorter than :data:`SHORT_DRAFT_CHARS` lose
  :data:`SHORT_DRAFT_PENALTY` points;
- drafts containing any :data:`HEDGING_PHRASES` lose
  :data:`HEDGING_PENALTY` points;
- the result is rounded half up.

Scoring never raises. When the model call or its JSON cannot be used the
analyzer returns :data:`FALLBACK_CONFIDENCE`, which is below the usual
auto-send thresholds and so routes the draft to a human.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from ..errors import GenerationError
from . import schemas
from .parsing import extract_json
from .prompts import build_analysis_prompt
from .providers import AnthropicProvider

logger = logging.getLogger(__name__)

HEDGING_PHRASES = (
    "not sure",
    "maybe",
    "possibly",
    "might be",
    "i think",
    "uncertain",
)
SHORT_DRAFT_CHARS = 100
SHORT_DRAFT_PENALTY = 15
HEDGING_PENALTY = 20
DEFAULT_SELF_SCORE = 70
FALLBACK_CONFIDENCE = 60
DEFAULT_TONE = "professional"


def contains_hedging(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in HEDGING_PHRASES)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def adjust_confidence(raw_score: float, draft_text: str) -> int:
    """Apply clamping and heuristic penalties to a self-reported score."""

    score = min(100.0, max(0.0, float(raw_score)))
    if len(draft_text) < SHORT_DRAFT_CHARS:
        score = max(0.0, score - SHORT_DRAFT_PENALTY)
    if contains_hedging(draft_text):
        score = max(0.0, score - HEDGING_PENALTY)
    return _round_half_up(score)


def _self_score(payload: dict[str, Any]) -> float:
    value = payload.get("confidence")
    if value is None or isinstance(value, bool):
        return DEFAULT_SELF_SCORE
    score = float(value)
    if math.isnan(score):
        raise ValueError("confidence is NaN")
    return score


def fallback_analysis() -> schemas.DraftAnalysis:
    return schemas.DraftAnalysis(
        confidence=FALLBACK_CONFIDENCE,
        tone=DEFAULT_TONE,
        reasoning="Error in analysis, using default score",
    )


class ConfidenceAnalyzer:
    """Score a draft's trustworthiness and label its tone."""

    def __init__(self, provider: AnthropicProvider) -> None:
        self._provider = provider

    def analyze(
        self,
        draft_text: str,
        customer_message: str,
        used_knowledge_base: bool = False,
    ) -> schemas.DraftAnalysis:
        prompt = build_analysis_prompt(draft_text, customer_message, used_knowledge_base)
        try:
            reply = self._provider.complete(
                "analysis", [{"role": "user", "content": prompt}]
            )
            payload = extract_json(reply)
            raw_score = _self_score(payload)
        except (GenerationError, ValueError, TypeError) as exc:
            logger.warning("Draft analysis failed, using default score: %s", exc)
            return fallback_analysis()

        tone = payload.get("tone")
        reasoning = payload.get("reasoning")
        return schemas.DraftAnalysis(
            confidence=adjust_confidence(raw_score, draft_text),
            tone=str(tone).strip().lower() if tone else DEFAULT_TONE,
            reasoning=str(reasoning) if reasoning else "Analysis completed",
        )


__all__ = [
    "ConfidenceAnalyzer",
    "FALLBACK_CONFIDENCE",
    "HEDGING_PENALTY",
    "HEDGING_PHRASES",
    "SHORT_DRAFT_CHARS",
    "SHORT_DRAFT_PENALTY",
    "adjust_confidence",
    "contains_hedging",
    "fallback_analysis",
]
