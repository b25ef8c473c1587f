"""Schemas for the LLM backed summary and chat endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ConversationMemory(BaseModel):
    summary: str = ""
    key_topics: list[str] = Field(default_factory=list)
    last_context: str = ""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    message: str = ""
    conversation_memory: ConversationMemory | None = None
    recent_messages: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str
    tokens_used: int
    generated_at: datetime
    context_used: str = ""
    updated_memory: ConversationMemory


class SummaryResponse(BaseModel):
    summary: str
    generated_at: datetime
    tokens_used: int


__all__ = ["ChatMessage", "ChatRequest", "ChatResponse", "ConversationMemory", "SummaryResponse"]
