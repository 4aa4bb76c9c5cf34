"""Service layer orchestrating one draft from context to auto-send decision."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

from ..config import Settings, get_settings
from ..errors import GenerationError
from . import schemas
from .analyzer import ConfidenceAnalyzer
from .classifier import MessageClassifier
from .context import ContextAssembler, ConversationSource
from .generator import DraftGenerator
from .policy import AutoSendPolicyEngine, DailyAutoSendCounter, advance_status
from .providers import AnthropicProvider

logger = logging.getLogger(__name__)

Status = schemas.DraftStatus


class OutboundSender(Protocol):
    """Delivery collaborator invoked for drafts cleared for auto-send."""

    def send(self, record: schemas.DraftRecord, context: schemas.AssembledContext) -> None: ...


class DraftPipeline:
    """High-level orchestration for drafting a reply to one message."""

    def __init__(
        self,
        assembler: ContextAssembler,
        generator: DraftGenerator,
        analyzer: ConfidenceAnalyzer,
        engine: AutoSendPolicyEngine,
        classifier: MessageClassifier | None = None,
        sender: OutboundSender | None = None,
    ) -> None:
        self._assembler = assembler
        self._generator = generator
        self._analyzer = analyzer
        self._engine = engine
        self._classifier = classifier or MessageClassifier(None)
        self._sender = sender

    # Individual stages -------------------------------------------------

    def assemble_context(
        self, conversation_id: UUID, message_id: UUID
    ) -> schemas.AssembledContext:
        return self._assembler.assemble(conversation_id, message_id)

    def generate_draft(
        self,
        customer_message: str,
        transcript: Sequence[schemas.TranscriptTurn] = (),
        brand_voice: str | None = None,
        knowledge_snippets: Sequence[str] = (),
    ) -> str:
        return self._generator.generate(
            customer_message, transcript, brand_voice, knowledge_snippets
        ).text

    def analyze(
        self, draft_text: str, customer_message: str, used_knowledge_base: bool = False
    ) -> schemas.DraftAnalysis:
        return self._analyzer.analyze(draft_text, customer_message, used_knowledge_base)

    # Orchestration -----------------------------------------------------

    def run(
        self,
        conversation_id: UUID,
        message_id: UUID,
        settings: schemas.OrganizationSettings,
        classification: schemas.MessageClassification | None = None,
        now: datetime | None = None,
    ) -> schemas.DraftRecord:
        """Draft, score and decide on a reply to ``message_id``.

        Missing conversations or messages raise
        :class:`~replydesk.errors.NotFoundError` before any record exists.
        Generation failures are captured on the returned record, which ends
        in ``failed``; nothing is retried. The daily auto-send allowance is
        only drawn on when a sender is configured to deliver the draft.
        """

        moment = now or datetime.now(timezone.utc)
        context = self.assemble_context(conversation_id, message_id)
        record = schemas.DraftRecord(
            conversation_id=conversation_id,
            message_id=message_id,
            used_knowledge_base=context.used_knowledge_base,
            created_at=moment,
            updated_at=moment,
        )
        advance_status(record, Status.PROCESSING, now=moment)

        customer_message = context.message.body
        try:
            draft_text = self.generate_draft(
                customer_message,
                context.transcript,
                settings.brand_voice,
                context.knowledge_snippets,
            )
        except GenerationError as exc:
            logger.error(
                "Draft generation failed for conversation %s message %s: %s",
                conversation_id,
                message_id,
                exc,
            )
            record.error = str(exc)
            return advance_status(record, Status.FAILED, now=moment)

        analysis = self.analyze(draft_text, customer_message, context.used_knowledge_base)
        record.response = draft_text
        record.confidence = analysis.confidence
        record.tone = analysis.tone
        record.reasoning = analysis.reasoning
        advance_status(record, Status.READY, now=moment)

        if classification is None:
            classification = self._classifier.classify(customer_message)
        record.classification = classification

        draft = schemas.GeneratedDraft(
            response=draft_text,
            confidence=analysis.confidence,
            tone=analysis.tone,
            used_knowledge_base=context.used_knowledge_base,
            reasoning=analysis.reasoning,
        )
        decision = self._engine.evaluate(
            context.organization_id,
            draft,
            classification,
            settings.effective_policy(),
            now=moment,
            reserve=self._sender is not None,
        )
        record.decision = decision
        if not decision.should_send:
            return record

        if self._sender is None:
            logger.info(
                "Draft %s cleared for auto-send but no sender is configured", record.id
            )
            return record
        try:
            self._sender.send(record, context)
        except Exception as exc:
            logger.exception(
                "Auto-send delivery failed for conversation %s message %s",
                conversation_id,
                message_id,
            )
            record.error = f"Delivery failed: {exc}"
            return advance_status(record, Status.FAILED, now=moment)
        return advance_status(record, Status.SENT, now=moment)


def build_pipeline(
    source: ConversationSource,
    counter: DailyAutoSendCounter,
    sender: OutboundSender | None = None,
    settings: Settings | None = None,
    client: Any | None = None,
) -> DraftPipeline:
    """Wire a pipeline from runtime settings and the storage collaborators."""

    settings = settings or get_settings()
    provider = AnthropicProvider(client, settings=settings)
    return DraftPipeline(
        ContextAssembler(source, knowledge_limit=settings.knowledge_context_limit),
        DraftGenerator(provider),
        ConfidenceAnalyzer(provider),
        AutoSendPolicyEngine(counter),
        MessageClassifier(provider),
        sender,
    )


__all__ = ["DraftPipeline", "OutboundSender", "build_pipeline"]
