"""Conversational assistant grounded in the stored rating events.

Each turn builds a database context for the user's message, sends it with a
compressed view of the conversation to the language model, and returns an
updated memory the client sends back on the next turn. When the message
mentions a topic already in memory, the cached context is reused instead of
querying the store again.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from stock_recommender.analysis.recommendations import Recommendation, build_recommendations
from stock_recommender.analysis.scoring import ScoringWeights
from stock_recommender.core.errors import InvalidRequestError
from stock_recommender.models import StockRating
from stock_recommender.providers.llm import LLMClient
from stock_recommender.schemas.chat import ChatMessage, ConversationMemory
from stock_recommender.services.store import RatingStore

logger = logging.getLogger(__name__)

CHAT_MAX_TOKENS = 500
MAX_TOPICS = 5
MAX_CONTEXT_ROWS = 20
NO_DATA_CONTEXT = "No data found for your query."

_TICKER_RE = re.compile(r"^[A-Z]{2,5}$")
_TOPIC_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("target_prices", ("target", "price")),
    ("ratings", ("rating", "upgrade", "downgrade")),
    ("sectors", ("sector", "industry")),
    ("analyst_actions", ("raised", "lowered", "initiated")),
)

CHAT_SYSTEM_PROMPT = (
    "You are a professional financial advisor with access to real-time stock market database. "
    "Use the provided database context to answer questions accurately. When users ask about specific "
    "stocks, sectors, or market trends, reference the actual data provided. If asked about stocks not "
    "in the context, clearly state data limitations. Keep responses helpful and actionable.\n\n"
    "FORMATTING RULES:\n"
    "- Use markdown formatting for better readability\n"
    "- Use numbered lists (1. 2. 3.) for multiple items\n"
    "- Use **bold** for company names and tickers\n"
    "- Use bullet points (-) for sub-items\n"
    "- Keep responses concise but complete"
)


@dataclass(frozen=True)
class ChatResult:
    response: str
    tokens_used: int
    context: str
    memory: ConversationMemory


def extract_tickers(message: str) -> list[str]:
    """Words written as 2-5 capital letters, in order of appearance."""

    tickers: list[str] = []
    for word in message.split():
        candidate = word.strip(".,;:!?()[]{}\"'$")
        if _TICKER_RE.match(candidate) and candidate not in tickers:
            tickers.append(candidate)
    return tickers


def extract_topics(message: str) -> list[str]:
    topics = extract_tickers(message)
    lowered = message.lower()
    for topic, keywords in _TOPIC_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            topics.append(topic)
    return topics


def merge_topics(current: Iterable[str], new: Iterable[str]) -> list[str]:
    merged: list[str] = []
    for topic in [*current, *new]:
        if topic not in merged:
            merged.append(topic)
    return merged[:MAX_TOPICS]


def summarize_conversation(message: str, current_summary: str) -> str:
    if not current_summary:
        return f"User asked about: {message[:50]}"
    return f"{current_summary[:100]}; Latest: {message[:30]}"


def is_similar_query(message: str, topics: Sequence[str]) -> bool:
    lowered = message.lower()
    return any(topic.lower() in lowered for topic in topics)


def build_conversation_context(recent: Sequence[ChatMessage], memory: ConversationMemory | None) -> str:
    lines: list[str] = []
    if memory is not None and memory.summary:
        lines.append(f"Previous conversation: {memory.summary}")
    if recent:
        lines.append("Recent messages:")
        lines.extend(f"{item.role}: {item.content}" for item in recent)
    return "\n".join(lines)


def format_events(events: Sequence[StockRating], question: str) -> str:
    if not events:
        return NO_DATA_CONTEXT
    lines = [f"Query results for: {question}", ""]
    for event in events[:MAX_CONTEXT_ROWS]:
        lines.append(
            f"{event.company} ({event.ticker}) - Rating: {event.rating_to} - Target: {event.target_to}"
            f" - Action: {event.action} - Brokerage: {event.brokerage} - Time: {event.time.isoformat()}"
        )
    return "\n".join(lines)


def format_recommendations(recommendations: Sequence[Recommendation], question: str) -> str:
    if not recommendations:
        return NO_DATA_CONTEXT
    lines = [f"Top recommendations for: {question}", ""]
    for item in recommendations:
        lines.append(
            f"{item.company} ({item.ticker}) - Rating: {item.current_rating} - Target: {item.target_price}"
            f" - Brokerage: {item.brokerage} - Score: {item.score:.1f} - Recommendation: {item.recommendation}"
            f" - Reason: {item.reason}"
        )
    return "\n".join(lines)


class ChatService:
    def __init__(self, store: RatingStore, llm: LLMClient, weights: ScoringWeights):
        self._store = store
        self._llm = llm
        self._weights = weights

    async def retrieve_context(self, message: str, memory: ConversationMemory | None) -> str:
        if memory is not None and memory.last_context and is_similar_query(message, memory.key_topics):
            logger.info("Reusing cached chat context for topics %s", memory.key_topics)
            return memory.last_context

        tickers = extract_tickers(message)
        if tickers:
            events = await self._store.events_for_tickers(tickers, MAX_CONTEXT_ROWS)
            if events:
                return format_events(events, message)
        events = await self._store.all_events()
        recommendations = build_recommendations(events, self._weights, 10)
        return format_recommendations(recommendations, message)

    async def reply(
        self,
        message: str,
        memory: ConversationMemory | None = None,
        recent_messages: Sequence[ChatMessage] = (),
    ) -> ChatResult:
        if not message or not message.strip():
            raise InvalidRequestError("Message is required")

        context = await self.retrieve_context(message, memory)
        conversation = build_conversation_context(recent_messages, memory)
        system_prompt = (
            f"{CHAT_SYSTEM_PROMPT}\n\nConversation Context:\n{conversation}\n\nDatabase Context:\n{context}"
        )
        completion = await self._llm.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message},
            ],
            max_tokens=CHAT_MAX_TOKENS,
            temperature=0.7,
        )

        current = memory or ConversationMemory()
        updated = ConversationMemory(
            summary=summarize_conversation(message, current.summary),
            key_topics=merge_topics(current.key_topics, extract_topics(message)),
            last_context=context,
        )
        return ChatResult(response=completion.text, tokens_used=completion.tokens_used, context=context, memory=updated)


__all__ = [
    "ChatResult",
    "ChatService",
    "build_conversation_context",
    "extract_tickers",
    "extract_topics",
    "format_events",
    "format_recommendations",
    "is_similar_query",
    "merge_topics",
    "summarize_conversation",
]
