from __future__ import annotations
# Schemas module - domain types handed to callers

from aibot.schemas.context import (
    DEFAULT_CONTEXT_SETTINGS,
    ContextMessage,
    ContextSettings,
    ContextStats,
    GlobalContextStats,
    MessageRole,
    MessageType,
)
from aibot.schemas.user_settings import StyleDescription, UserSettings

__all__ = [
    "DEFAULT_CONTEXT_SETTINGS",
    "ContextMessage",
    "ContextSettings",
    "ContextStats",
    "GlobalContextStats",
    "MessageRole",
    "MessageType",
    "StyleDescription",
    "UserSettings",
]
