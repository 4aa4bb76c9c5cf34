import pathlib
import sys
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import FastAPI, Request

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from replydesk.app_logging import init_logging
from replydesk.config import Settings
from replydesk.drafts import schemas
from replydesk.drafts.providers import AnthropicProvider

BASE_TIME = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)


class FakeMessages:
    """Scripted stand-in for ``anthropic.Anthropic().messages``.

    Each queued reply is either a string (returned as one text block), ``None``
    (a reply with no content blocks) or an exception instance (raised).
    """

    def __init__(self, replies):
        self.replies = deque(replies)
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.replies:
            raise AssertionError("unexpected model call")
        reply = self.replies.popleft()
        if isinstance(reply, BaseException):
            raise reply
        content = [] if reply is None else [SimpleNamespace(type="text", text=reply)]
        return SimpleNamespace(
            content=content, model=kwargs.get("model"), stop_reason="end_turn"
        )


class FakeAnthropic:
    def __init__(self, *replies):
        self.messages = FakeMessages(replies)


@pytest.fixture
def fake_provider():
    """Return a factory building providers backed by scripted replies."""

    def _make(*replies) -> tuple[AnthropicProvider, FakeAnthropic]:
        client = FakeAnthropic(*replies)
        provider = AnthropicProvider(client, settings=Settings(anthropic_api_key="test"))
        return provider, client

    return _make


@dataclass
class SampleThread:
    organization_id: uuid.UUID
    conversation: schemas.Conversation
    target: schemas.Message
    knowledge: list[schemas.KnowledgeEntry] = field(default_factory=list)


def _message(conversation_id, direction, body, minutes):
    return schemas.Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        direction=direction,
        body=body,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def sample_thread() -> SampleThread:
    organization_id = uuid.uuid4()
    conversation_id = uuid.uuid4()
    inbound, outbound = schemas.Direction.INBOUND, schemas.Direction.OUTBOUND
    first = _message(conversation_id, inbound, "Hi, my order has not arrived.", 0)
    reply = _message(conversation_id, outbound, "Sorry to hear that! Which order?", 5)
    target = _message(conversation_id, inbound, "Order 1234. When will it ship?", 10)
    later = _message(conversation_id, inbound, "Never mind, it arrived.", 30)
    # Stored order is not chronological on purpose.
    conversation = schemas.Conversation(
        id=conversation_id,
        organization_id=organization_id,
        messages=[reply, later, target, first],
        customer_name="Dana",
        subject="Where is my order?",
    )
    knowledge = [
        schemas.KnowledgeEntry(
            id=uuid.uuid4(),
            organization_id=organization_id,
            question="How long does shipping take?",
            answer="Orders ship within 2 business days.",
        ),
        schemas.KnowledgeEntry(
            id=uuid.uuid4(),
            organization_id=organization_id,
            question="Old policy",
            answer="Retired answer.",
            is_active=False,
        ),
        schemas.KnowledgeEntry(
            id=uuid.uuid4(),
            organization_id=uuid.uuid4(),
            question="Another tenant",
            answer="Not yours.",
        ),
    ]
    return SampleThread(organization_id, conversation, target, knowledge)


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
