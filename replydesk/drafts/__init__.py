"""Drafting pipeline: context, generation, scoring and auto-send policy."""

from .analyzer import ConfidenceAnalyzer
from .classifier import KeywordClassifier, MessageClassifier
from .context import ContextAssembler, ConversationSource, InMemoryConversationSource
from .generator import DraftGenerator
from .knowledge import KnowledgeEntrySuggester
from .policy import (
    AutoSendPolicyEngine,
    DailyAutoSendCounter,
    DraftLifecycle,
    InMemoryDailyAutoSendCounter,
    advance_status,
    decide_auto_send,
)
from .providers import AnthropicProvider
from .service import DraftPipeline, OutboundSender, build_pipeline

__all__ = [
    "AnthropicProvider",
    "AutoSendPolicyEngine",
    "ConfidenceAnalyzer",
    "ContextAssembler",
    "ConversationSource",
    "DailyAutoSendCounter",
    "DraftGenerator",
    "DraftLifecycle",
    "DraftPipeline",
    "InMemoryConversationSource",
    "InMemoryDailyAutoSendCounter",
    "KeywordClassifier",
    "KnowledgeEntrySuggester",
    "MessageClassifier",
    "OutboundSender",
    "advance_status",
    "build_pipeline",
    "decide_auto_send",
]
