from __future__ import annotations
"""Dialogue turn and context budget schemas."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageType(str, Enum):
    """Where a turn came from. Informational only."""
    TEXT = "text"
    VOICE = "voice"
    AUDIO = "audio"
    IMAGE = "image"


class ContextSettings(BaseModel):
    """Per-user context window budget."""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    max_messages: int = Field(default=20, gt=0)
    max_tokens: int = Field(default=8000, gt=0)
    enabled: bool = True
    auto_cleanup: bool = True


DEFAULT_CONTEXT_SETTINGS = ContextSettings()


class ContextMessage(BaseModel):
    """One dialogue turn. Never mutated after creation."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    user_id: int
    role: MessageRole
    content: str
    message_type: MessageType = MessageType.TEXT
    timestamp: datetime
    token_count: int = Field(default=0, ge=0)


class ContextStats(BaseModel):
    """Aggregate over a user's full persisted log."""
    message_count: int = 0
    estimated_tokens: int = 0
    oldest_message_timestamp: Optional[datetime] = None
    newest_message_timestamp: Optional[datetime] = None


class GlobalContextStats(BaseModel):
    total_users: int = 0
    total_messages: int = 0
    average_messages_per_user: float = 0.0
