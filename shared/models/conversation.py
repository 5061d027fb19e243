"""Pydantic models for chat sessions and their memory."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Conversation(BaseModel):
    chat_id: str
    language: str
    summary: str | None = None
    message_count: int = 0
    messages_since_summary: int = 0
    last_activity: datetime | None = None
    created_at: datetime | None = None


class Message(BaseModel):
    id: int | None = None
    chat_id: str
    role: MessageRole
    text: str
    metadata: dict[str, Any] = {}
    created_at: datetime | None = None


class MemoryContext(BaseModel):
    """Per-query memory handed to the answer prompt. Never persisted.

    Attributes:
        summary:      The rolling summary of the session, if any.
        messages:     Selected recent messages, oldest first.
        total_tokens: Estimated tokens of summary + messages, never above the budget.
    """

    summary: str | None = None
    messages: list[Message] = []
    total_tokens: int = 0


class ConversationStats(BaseModel):
    chat_id: str
    language: str
    message_count: int
    has_summary: bool
    last_activity: datetime | None = None
    is_active: bool
