"""Assemble model context from a conversation and its knowledge base."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from ..errors import NotFoundError
from . import schemas
from .knowledge import DEFAULT_KNOWLEDGE_LIMIT, render_snippet, select_knowledge_entries

_ROLES = {
    schemas.Direction.INBOUND: "user",
    schemas.Direction.OUTBOUND: "assistant",
}


class ConversationSource(Protocol):
    """Read access to already-loaded conversations and knowledge entries."""

    def get_conversation(self, conversation_id: UUID) -> schemas.Conversation | None: ...

    def list_knowledge_entries(
        self, organization_id: UUID, limit: int
    ) -> list[schemas.KnowledgeEntry]: ...


class InMemoryConversationSource:
    """Dictionary-backed :class:`ConversationSource` used by tests and demos."""

    def __init__(
        self,
        conversations: Iterable[schemas.Conversation] = (),
        knowledge_entries: Iterable[schemas.KnowledgeEntry] = (),
    ) -> None:
        self._conversations = {c.id: c for c in conversations}
        self._knowledge = list(knowledge_entries)

    def add_conversation(self, conversation: schemas.Conversation) -> None:
        self._conversations[conversation.id] = conversation

    def add_knowledge_entry(self, entry: schemas.KnowledgeEntry) -> None:
        self._knowledge.append(entry)

    def get_conversation(self, conversation_id: UUID) -> schemas.Conversation | None:
        return self._conversations.get(conversation_id)

    def list_knowledge_entries(
        self, organization_id: UUID, limit: int
    ) -> list[schemas.KnowledgeEntry]:
        return select_knowledge_entries(self._knowledge, organization_id, limit)


def build_transcript(
    messages: Iterable[schemas.Message], target: schemas.Message
) -> list[schemas.TranscriptTurn]:
    """Map messages strictly earlier than ``target`` to a two-role transcript."""

    history = sorted(
        (m for m in messages if m.created_at < target.created_at),
        key=lambda m: m.created_at,
    )
    return [
        schemas.TranscriptTurn(role=_ROLES[m.direction], content=m.body) for m in history
    ]


class ContextAssembler:
    """Build :class:`~replydesk.drafts.schemas.AssembledContext` values."""

    def __init__(
        self,
        source: ConversationSource,
        knowledge_limit: int = DEFAULT_KNOWLEDGE_LIMIT,
    ) -> None:
        self._source = source
        self._knowledge_limit = knowledge_limit

    def assemble(self, conversation_id: UUID, message_id: UUID) -> schemas.AssembledContext:
        conversation = self._source.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        target = next((m for m in conversation.messages if m.id == message_id), None)
        if target is None or target.conversation_id != conversation.id:
            raise NotFoundError(
                f"Message {message_id} not found in conversation {conversation_id}"
            )
        entries = self._source.list_knowledge_entries(
            conversation.organization_id, self._knowledge_limit
        )
        # Sources may ignore the filter; enforce ownership and the cap here too.
        entries = select_knowledge_entries(
            entries, conversation.organization_id, self._knowledge_limit
        )
        return schemas.AssembledContext(
            conversation_id=conversation.id,
            organization_id=conversation.organization_id,
            message=target,
            transcript=build_transcript(conversation.messages, target),
            knowledge_snippets=[render_snippet(entry) for entry in entries],
        )


__all__ = [
    "ContextAssembler",
    "ConversationSource",
    "InMemoryConversationSource",
    "build_transcript",
]
