import json
import logging
import uuid
from datetime import datetime, timezone

import anthropic
import httpx
import pytest

from replydesk.config import Settings
from replydesk.drafts import schemas, service
from replydesk.drafts.analyzer import ConfidenceAnalyzer
from replydesk.drafts.classifier import MessageClassifier
from replydesk.drafts.context import ContextAssembler, InMemoryConversationSource
from replydesk.drafts.generator import DraftGenerator
from replydesk.drafts.policy import AutoSendPolicyEngine, InMemoryDailyAutoSendCounter
from replydesk.drafts.service import DraftPipeline
from replydesk.errors import NotFoundError

Status = schemas.DraftStatus
NOON = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)
DRAFT = (
    "Hi Dana, thanks for your patience. Order 1234 ships within 2 business days "
    "and you will receive a tracking link by email as soon as it leaves our warehouse."
)
SETTINGS = schemas.load_organization_settings(
    {
        "brandVoice": "Warm and concise.",
        "workingHours": {"start": "09:00", "end": "17:00", "timezone": "UTC"},
        "autoResponseRules": {
            "enabled": True,
            "confidenceThreshold": 80,
            "neverAutoSendCategories": ["billing"],
            "maxAutoResponsesPerDay": 50,
            "onlyDuringWorkingHours": True,
            "requireKnowledgeBaseMatch": True,
            "sentimentFilter": {"autoSendNeutral": True},
        },
    }
)


def _analysis(confidence: int) -> str:
    return json.dumps({"confidence": confidence, "tone": "friendly", "reasoning": "Specific"})


def _classification(category: str, sentiment: str = "neutral") -> str:
    return json.dumps(
        {"intent": "Order status", "sentiment": sentiment, "urgency": "low", "category": category}
    )


class RecordingSender:
    def __init__(self, error: Exception | None = None):
        self.sent: list[schemas.DraftRecord] = []
        self.error = error

    def send(self, record, context):
        if self.error is not None:
            raise self.error
        self.sent.append(record)


@pytest.fixture
def build_pipeline(sample_thread):
    def _build(provider, sender=None, counter=None):
        source = InMemoryConversationSource([sample_thread.conversation], sample_thread.knowledge)
        return DraftPipeline(
            ContextAssembler(source),
            DraftGenerator(provider),
            ConfidenceAnalyzer(provider),
            AutoSendPolicyEngine(counter or InMemoryDailyAutoSendCounter()),
            MessageClassifier(provider),
            sender,
        )

    return _build


def test_confident_general_inquiry_is_sent(fake_provider, build_pipeline, sample_thread):
    provider, client = fake_provider(DRAFT, _analysis(85), _classification("general inquiry"))
    sender = RecordingSender()
    counter = InMemoryDailyAutoSendCounter()

    record = build_pipeline(provider, sender, counter).run(
        sample_thread.conversation.id, sample_thread.target.id, SETTINGS, now=NOON
    )

    assert record.status is Status.SENT
    assert record.sent_at == NOON
    assert record.response == DRAFT
    assert record.confidence == 85
    assert record.tone == "friendly"
    assert record.used_knowledge_base
    assert record.classification.category == "general_inquiry"
    assert record.decision.should_send
    assert sender.sent == [record]
    assert counter.count(sample_thread.organization_id, NOON.date()) == 1

    draft_call = client.messages.calls[0]
    assert "Brand Voice Guidelines:\nWarm and concise." in draft_call["system"]
    assert draft_call["messages"][-1] == {"role": "user", "content": sample_thread.target.body}


def test_billing_message_is_held_for_review(fake_provider, build_pipeline, sample_thread):
    provider, _ = fake_provider(DRAFT, _analysis(95), _classification("billing"))
    sender = RecordingSender()

    record = build_pipeline(provider, sender).run(
        sample_thread.conversation.id, sample_thread.target.id, SETTINGS, now=NOON
    )

    assert record.status is Status.READY
    assert record.decision.action == "hold"
    assert record.decision.check == "never_auto_send_categories"
    assert sender.sent == []


def test_supplied_classification_skips_model_call(fake_provider, build_pipeline, sample_thread):
    provider, client = fake_provider(DRAFT, _analysis(90))
    classification = schemas.MessageClassification(category="general_inquiry")

    record = build_pipeline(provider).run(
        sample_thread.conversation.id,
        sample_thread.target.id,
        SETTINGS,
        classification=classification,
        now=NOON,
    )

    assert len(client.messages.calls) == 2
    # Cleared for sending, but nothing delivers it without a sender.
    assert record.decision.should_send
    assert record.status is Status.READY


def test_undelivered_drafts_leave_daily_allowance(fake_provider, build_pipeline, sample_thread):
    classification = schemas.MessageClassification(category="general_inquiry")
    counter = InMemoryDailyAutoSendCounter()
    provider, _ = fake_provider(DRAFT, _analysis(90), DRAFT, _analysis(90))
    pipeline = build_pipeline(provider, counter=counter)

    for _ in range(2):
        record = pipeline.run(
            sample_thread.conversation.id,
            sample_thread.target.id,
            SETTINGS,
            classification=classification,
            now=NOON,
        )
        assert record.decision.should_send

    assert counter.count(sample_thread.organization_id, NOON.date()) == 0


def test_build_pipeline_uses_runtime_settings(fake_provider, sample_thread):
    source = InMemoryConversationSource([sample_thread.conversation], sample_thread.knowledge)
    extra = schemas.KnowledgeEntry(
        id=uuid.uuid4(),
        organization_id=sample_thread.organization_id,
        question="Do you ship abroad?",
        answer="Yes, to 40 countries.",
    )
    source.add_knowledge_entry(extra)
    _, client = fake_provider(DRAFT)
    settings = Settings(anthropic_api_key="test", knowledge_context_limit=1)

    pipeline = service.build_pipeline(
        source, InMemoryDailyAutoSendCounter(), settings=settings, client=client
    )
    context = pipeline.assemble_context(sample_thread.conversation.id, sample_thread.target.id)
    pipeline.generate_draft("hello")

    assert len(context.knowledge_snippets) == 1
    assert client.messages.calls[0]["model"] == settings.anthropic_model


def test_analysis_failure_routes_to_human(fake_provider, build_pipeline, sample_thread):
    provider, _ = fake_provider(DRAFT, "unparseable", _classification("general_inquiry"))

    record = build_pipeline(provider, RecordingSender()).run(
        sample_thread.conversation.id, sample_thread.target.id, SETTINGS, now=NOON
    )

    assert record.confidence == 60
    assert record.status is Status.READY
    assert record.decision.check == "confidence_threshold"


def test_generation_failure_marks_record_failed(fake_provider, build_pipeline, sample_thread, caplog):
    timeout = anthropic.APITimeoutError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )
    provider, client = fake_provider(timeout)

    with caplog.at_level(logging.ERROR, logger="replydesk.drafts.service"):
        record = build_pipeline(provider).run(
            sample_thread.conversation.id, sample_thread.target.id, SETTINGS, now=NOON
        )

    assert record.status is Status.FAILED
    assert "timed out" in record.error
    assert record.response is None
    assert len(client.messages.calls) == 1
    assert str(sample_thread.conversation.id) in caplog.text
    assert str(sample_thread.target.id) in caplog.text


def test_delivery_failure_marks_record_failed(fake_provider, build_pipeline, sample_thread):
    provider, _ = fake_provider(DRAFT, _analysis(85), _classification("general_inquiry"))
    sender = RecordingSender(error=ConnectionError("smtp down"))

    record = build_pipeline(provider, sender).run(
        sample_thread.conversation.id, sample_thread.target.id, SETTINGS, now=NOON
    )

    assert record.status is Status.FAILED
    assert record.sent_at is None
    assert "smtp down" in record.error


def test_missing_message_propagates(fake_provider, build_pipeline, sample_thread):
    provider, client = fake_provider()
    with pytest.raises(NotFoundError):
        build_pipeline(provider).run(sample_thread.conversation.id, uuid.uuid4(), SETTINGS)
    assert client.messages.calls == []


def test_stage_methods(fake_provider, build_pipeline, sample_thread):
    provider, _ = fake_provider(DRAFT, _analysis(77))
    pipeline = build_pipeline(provider)

    context = pipeline.assemble_context(sample_thread.conversation.id, sample_thread.target.id)
    text = pipeline.generate_draft(
        context.message.body, context.transcript, None, context.knowledge_snippets
    )
    analysis = pipeline.analyze(text, context.message.body, context.used_knowledge_base)

    assert text == DRAFT
    assert analysis.confidence == 77
