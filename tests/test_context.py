import uuid

import pytest

from replydesk.drafts.context import (
    ContextAssembler,
    InMemoryConversationSource,
    build_transcript,
)
from replydesk.drafts.knowledge import render_snippet, select_knowledge_entries
from replydesk.drafts import schemas
from replydesk.errors import NotFoundError


@pytest.fixture
def assembler(sample_thread):
    source = InMemoryConversationSource([sample_thread.conversation], sample_thread.knowledge)
    return ContextAssembler(source)


def test_transcript_is_chronological_and_excludes_later_messages(assembler, sample_thread):
    context = assembler.assemble(sample_thread.conversation.id, sample_thread.target.id)

    assert [(t.role, t.content) for t in context.transcript] == [
        ("user", "Hi, my order has not arrived."),
        ("assistant", "Sorry to hear that! Which order?"),
    ]
    assert context.message == sample_thread.target
    assert context.organization_id == sample_thread.organization_id


def test_only_active_entries_of_owning_org(assembler, sample_thread):
    context = assembler.assemble(sample_thread.conversation.id, sample_thread.target.id)

    assert context.knowledge_snippets == [
        "Q: How long does shipping take?\nA: Orders ship within 2 business days."
    ]
    assert context.used_knowledge_base


def test_no_entries_means_no_knowledge_base(sample_thread):
    source = InMemoryConversationSource([sample_thread.conversation])
    context = ContextAssembler(source).assemble(
        sample_thread.conversation.id, sample_thread.target.id
    )
    assert context.knowledge_snippets == []
    assert not context.used_knowledge_base


def test_first_message_has_empty_transcript(assembler, sample_thread):
    first = min(sample_thread.conversation.messages, key=lambda m: m.created_at)
    context = assembler.assemble(sample_thread.conversation.id, first.id)
    assert context.transcript == []


def test_missing_conversation(assembler, sample_thread):
    with pytest.raises(NotFoundError):
        assembler.assemble(uuid.uuid4(), sample_thread.target.id)


def test_missing_message(assembler, sample_thread):
    with pytest.raises(NotFoundError):
        assembler.assemble(sample_thread.conversation.id, uuid.uuid4())


def test_knowledge_cap(sample_thread):
    org = sample_thread.organization_id
    entries = [
        schemas.KnowledgeEntry(id=uuid.uuid4(), organization_id=org, question=f"q{i}", answer="a")
        for i in range(8)
    ]
    source = InMemoryConversationSource([sample_thread.conversation], entries)
    context = ContextAssembler(source).assemble(
        sample_thread.conversation.id, sample_thread.target.id
    )
    assert len(context.knowledge_snippets) == 5

    assert len(select_knowledge_entries(entries, org, limit=2)) == 2
    assert select_knowledge_entries(entries, org, limit=0) == []


class LeakySource(InMemoryConversationSource):
    """Ignores organization and limit filters."""

    def list_knowledge_entries(self, organization_id, limit):
        return list(self._knowledge)


def test_assembler_filters_sources_that_ignore_ownership(sample_thread):
    source = LeakySource([sample_thread.conversation], sample_thread.knowledge)
    context = ContextAssembler(source).assemble(
        sample_thread.conversation.id, sample_thread.target.id
    )
    assert context.knowledge_snippets == [render_snippet(sample_thread.knowledge[0])]


def test_build_transcript_maps_directions(sample_thread):
    turns = build_transcript(sample_thread.conversation.messages, sample_thread.target)
    assert [t.role for t in turns] == ["user", "assistant"]
