"""Prompt builders for drafting, self-evaluation and classification."""

from __future__ import annotations

from collections.abc import Sequence

SYSTEM_PROMPT = """You are an AI customer support assistant. Your role is to help draft professional, empathetic, and helpful responses to customer emails.

Key guidelines:
- Be professional but friendly and approachable
- Show empathy and understanding for customer concerns
- Provide clear, actionable solutions
- Keep responses concise but complete
- Use proper grammar and spelling
- Sign off appropriately for business communication"""

KNOWLEDGE_INSTRUCTION = (
    "Use the knowledge base information above to provide accurate and specific "
    "answers when relevant."
)


def build_system_prompt(
    brand_voice: str | None = None,
    knowledge_snippets: Sequence[str] | None = None,
) -> str:
    """Return the drafting system prompt.

    Brand voice and knowledge snippets are appended verbatim.
    """

    prompt = SYSTEM_PROMPT
    if brand_voice:
        prompt += f"\n\nBrand Voice Guidelines:\n{brand_voice}"
    if knowledge_snippets:
        joined = "\n\n".join(knowledge_snippets)
        prompt += f"\n\nRelevant Knowledge Base Information:\n{joined}"
        prompt += f"\n\n{KNOWLEDGE_INSTRUCTION}"
    return prompt


def build_analysis_prompt(
    draft_text: str, customer_message: str, used_knowledge_base: bool = False
) -> str:
    bonus = (
        "- Response uses verified knowledge base information (+10 bonus)\n"
        if used_knowledge_base
        else ""
    )
    return f"""Analyze this customer support response in detail:

Original customer message: "{customer_message}"

AI Response: "{draft_text}"

Evaluate the following factors:
1. Completeness: Does it fully address the customer's question? (0-100)
2. Accuracy: Is the information specific and actionable? (0-100)
3. Clarity: Is it clear and easy to understand? (0-100)
4. Professionalism: Is the tone appropriate? (0-100)
5. Uncertainty indicators: Does it contain phrases like "I'm not sure", "maybe", "possibly" that reduce confidence?

Calculate an overall confidence score (0-100) considering all factors.
Higher scores for:
- Complete, specific answers
- Clear action steps
- No hedging language
{bonus}
Lower scores for:
- Vague or generic responses
- Uncertainty phrases
- Incomplete answers
- Off-topic responses

Also identify the tone (professional, friendly, empathetic, formal, casual).

Respond in JSON format: {{"confidence": number, "tone": string, "reasoning": "brief explanation"}}"""


def build_classification_prompt(message: str) -> str:
    return f"""Analyze this customer support message and extract:
1. Primary intent (what does the customer want?)
2. Sentiment (positive, neutral, or negative)
3. Urgency level (low, medium, or high)
4. Category (billing, technical, general inquiry, feature request, complaint, etc.)

Message: "{message}"

Respond in JSON format: {{"intent": string, "sentiment": string, "urgency": string, "category": string}}"""


def build_knowledge_entry_prompt(question: str, answer: str) -> str:
    return f"""Given this customer question and answer, create a knowledge base entry:

Question: "{question}"
Answer: "{answer}"

Provide:
1. A generalized version of the question (remove specific details)
2. A clear, concise answer
3. A category for this entry
4. 3-5 relevant tags

Respond in JSON format: {{"question": string, "answer": string, "category": string, "tags": string[]}}"""


__all__ = [
    "KNOWLEDGE_INSTRUCTION",
    "SYSTEM_PROMPT",
    "build_analysis_prompt",
    "build_classification_prompt",
    "build_knowledge_entry_prompt",
    "build_system_prompt",
]
