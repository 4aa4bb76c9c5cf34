"""Pydantic schemas for the drafting pipeline."""

from __future__ import annotations

import re
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..errors import ValidationError

_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class DraftStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    SENT = "sent"
    FAILED = "failed"


Sentiment = Literal["positive", "neutral", "negative"]
Urgency = Literal["low", "medium", "high"]


class Message(BaseModel):
    """A stored email in a conversation thread; immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    conversation_id: UUID
    direction: Direction
    body: str
    created_at: datetime


class Conversation(BaseModel):
    id: UUID
    organization_id: UUID
    messages: list[Message] = Field(default_factory=list)
    customer_name: str | None = None
    subject: str | None = None


class KnowledgeEntry(BaseModel):
    id: UUID
    organization_id: UUID
    question: str
    answer: str
    is_active: bool = True
    category: str | None = None
    tags: list[str] = Field(default_factory=list)


class TranscriptTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AssembledContext(BaseModel):
    """Model-ready input built from a conversation and its knowledge base."""

    conversation_id: UUID
    organization_id: UUID
    message: Message
    transcript: list[TranscriptTurn] = Field(default_factory=list)
    knowledge_snippets: list[str] = Field(default_factory=list)

    @property
    def used_knowledge_base(self) -> bool:
        return bool(self.knowledge_snippets)


class GeneratedText(BaseModel):
    text: str
    model: str
    stop_reason: str | None = None


class DraftAnalysis(BaseModel):
    confidence: int = Field(ge=0, le=100)
    tone: str = "professional"
    reasoning: str = ""


class GeneratedDraft(BaseModel):
    response: str
    confidence: int = Field(ge=0, le=100)
    tone: str
    used_knowledge_base: bool = False
    reasoning: str = ""


class MessageClassification(BaseModel):
    intent: str = "General inquiry"
    sentiment: Sentiment = "neutral"
    urgency: Urgency = "medium"
    category: str | None = None

    @field_validator("sentiment", "urgency", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class KnowledgeSuggestion(BaseModel):
    question: str
    answer: str
    category: str = "General"
    tags: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Organization settings. Stored settings use camelCase keys; both spellings
# are accepted.


class _SettingsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkingHours(_SettingsModel):
    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "UTC"

    @field_validator("start", "end")
    @classmethod
    def _clock(cls, value: str) -> str:
        if not _CLOCK_PATTERN.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    @field_validator("timezone")
    @classmethod
    def _zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    def contains(self, moment: datetime) -> bool:
        """Return whether ``moment`` falls in ``[start, end)`` local time.

        Naive datetimes are treated as UTC. A window whose end precedes its
        start wraps past midnight.
        """

        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        local = moment.astimezone(ZoneInfo(self.timezone)).time()
        start = time.fromisoformat(self.start)
        end = time.fromisoformat(self.end)
        if start <= end:
            return start <= local < end
        return local >= start or local < end


class SentimentFilter(_SettingsModel):
    auto_send_positive: bool = True
    auto_send_neutral: bool = True
    require_approval_negative: bool = True


class AutoSendPolicy(_SettingsModel):
    """Organization rules governing whether a draft may skip human review."""

    enabled: bool = False
    confidence_threshold: int = Field(default=80, ge=0, le=100)
    require_approval_for_low_confidence: bool = True
    auto_send_categories: list[str] = Field(default_factory=list)
    never_auto_send_categories: list[str] = Field(default_factory=list)
    # ``None`` or a negative value means unlimited.
    max_auto_responses_per_day: int | None = None
    only_during_working_hours: bool = False
    working_hours: WorkingHours | None = None
    require_knowledge_base_match: bool = False
    sentiment_filter: SentimentFilter | None = None


class OrganizationSettings(_SettingsModel):
    brand_voice: str | None = None
    signature: str | None = None
    working_hours: WorkingHours | None = None
    auto_response_rules: AutoSendPolicy = Field(default_factory=AutoSendPolicy)

    def effective_policy(self) -> AutoSendPolicy:
        """Return the auto-send rules, inheriting organization working hours."""

        rules = self.auto_response_rules
        if rules.working_hours is None and self.working_hours is not None:
            return rules.model_copy(update={"working_hours": self.working_hours})
        return rules


def load_organization_settings(raw: dict[str, Any] | None) -> OrganizationSettings:
    """Validate stored organization settings at the boundary of the core."""

    try:
        return OrganizationSettings.model_validate(raw or {})
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid organization settings: {exc}") from exc


# ---------------------------------------------------------------------------
# Decisions and persisted draft records


class AutoSendDecision(BaseModel):
    action: Literal["send", "hold"]
    reason: str
    check: str | None = None

    @property
    def should_send(self) -> bool:
        return self.action == "send"


class DraftRecord(BaseModel):
    """The draft as handed to the persistence collaborator (``AiResponse``)."""

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    message_id: UUID
    status: DraftStatus = DraftStatus.PENDING
    response: str | None = None
    confidence: int | None = Field(default=None, ge=0, le=100)
    tone: str | None = None
    used_knowledge_base: bool = False
    reasoning: str | None = None
    classification: MessageClassification | None = None
    decision: AutoSendDecision | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    sent_at: datetime | None = None


class GenerateDraftRequest(BaseModel):
    conversation_id: UUID
    message_id: UUID


class GenerateDraftResponse(BaseModel):
    draft: DraftRecord
    remaining: int


__all__ = [
    "AssembledContext",
    "AutoSendDecision",
    "AutoSendPolicy",
    "Conversation",
    "Direction",
    "DraftAnalysis",
    "DraftRecord",
    "DraftStatus",
    "GenerateDraftRequest",
    "GenerateDraftResponse",
    "GeneratedDraft",
    "GeneratedText",
    "KnowledgeEntry",
    "KnowledgeSuggestion",
    "Message",
    "MessageClassification",
    "OrganizationSettings",
    "SentimentFilter",
    "TranscriptTurn",
    "WorkingHours",
    "load_organization_settings",
]
