from __future__ import annotations
"""
Context Service - per-user dialogue history with budgeted retrieval.

Every user owns an append-only log of turns. Reads return a window bounded
both by message count and by estimated tokens; when a budget forces
exclusion, older turns are dropped first. Writes are persisted before the
call returns and raise ``StorageError`` on failure; read failures are
logged and yield empty results.
"""
import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timezone
from typing import Callable, List

from aibot.core.exceptions import StorageError, ValidationError
from aibot.core.logging import log_user_activity
from aibot.schemas import (
    ContextMessage,
    ContextSettings,
    ContextStats,
    GlobalContextStats,
    MessageRole,
    MessageType,
)
from aibot.services.storage import Storage
from aibot.services.token_estimator import TokenEstimator, estimate_tokens

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    MessageRole.USER: "Пользователь",
    MessageRole.ASSISTANT: "Ассистент",
}

CONTEXT_HEADER = "Контекст предыдущих сообщений:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextService:
    """Stores, bounds and renders conversation context of each user."""

    def __init__(
        self,
        storage: Storage,
        estimator: TokenEstimator = estimate_tokens,
        clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self.storage = storage
        self.estimator = estimator
        self.clock = clock
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def _next_timestamp(self, user_id: int) -> datetime:
        """Clock time, but never before the user's newest stored turn. Caller holds the lock."""
        now = self.clock()
        last = await self.storage.get_messages(user_id, limit=1)
        if last and now < last[0].timestamp:
            now = last[0].timestamp
        return now

    def _message_tokens(self, message: ContextMessage) -> int:
        return message.token_count or self.estimator(message.content)

    # ==================== Writes ====================

    async def add_user_message(
        self,
        user_id: int,
        content: str,
        message_type: MessageType = MessageType.TEXT
    ) -> ContextMessage:
        """Append a user turn."""
        return await self._add_message(user_id, MessageRole.USER, content, MessageType(message_type))

    async def add_assistant_message(self, user_id: int, content: str) -> ContextMessage:
        """Append an assistant turn."""
        return await self._add_message(user_id, MessageRole.ASSISTANT, content, MessageType.TEXT)

    async def _add_message(
        self,
        user_id: int,
        role: MessageRole,
        content: str,
        message_type: MessageType
    ) -> ContextMessage:
        if user_id is None:
            raise ValidationError("user_id is required")

        async with self._lock_for(user_id):
            message = ContextMessage(
                id=str(uuid.uuid4()),
                user_id=user_id,
                role=role,
                content=content,
                message_type=message_type,
                timestamp=await self._next_timestamp(user_id),
                token_count=self.estimator(content),
            )
            await self.storage.append_message(message)

        logger.debug(
            f"Message added to context: user={user_id} role={role.value} "
            f"type={message_type.value} tokens={message.token_count}"
        )
        return message

    async def clear_user_context(self, user_id: int) -> int:
        """Delete the whole log of a user. Returns the deleted count."""
        async with self._lock_for(user_id):
            cleared = await self.storage.delete_messages(user_id)

        log_user_activity(user_id, None, "context_cleared", cleared_messages=cleared)
        return cleared

    async def auto_cleanup_context(self, user_id: int, settings: ContextSettings) -> int:
        """
        Evict all but the newest ``max_messages`` persisted turns.

        Count-based only; the token budget is applied at read time.
        Returns the number of evicted turns (0 when disabled).
        """
        if not settings.auto_cleanup:
            return 0

        async with self._lock_for(user_id):
            removed = await self.storage.trim_messages(user_id, settings.max_messages)

        if removed:
            logger.debug(
                f"Context auto-cleanup: user={user_id} removed={removed} "
                f"limit={settings.max_messages}"
            )
        return removed

    # ==================== Reads ====================

    async def get_user_context(self, user_id: int, settings: ContextSettings) -> List[ContextMessage]:
        """Return the context window visible under ``settings``, oldest first."""
        if not settings.enabled:
            return []

        try:
            recent = await self.storage.get_messages(user_id, limit=settings.max_messages)
        except StorageError as e:
            logger.error(f"Context read failed, continuing without memory: {e}")
            return []

        # Walk from the newest message back while the token budget holds
        kept: List[ContextMessage] = []
        total_tokens = 0
        for message in reversed(recent):
            tokens = self._message_tokens(message)
            if total_tokens + tokens > settings.max_tokens:
                break
            total_tokens += tokens
            kept.append(message)

        kept.reverse()
        return kept

    async def get_user_context_stats(self, user_id: int) -> ContextStats:
        """Aggregate over the full persisted log (not the window)."""
        try:
            messages = await self.storage.get_messages(user_id)
        except StorageError as e:
            logger.error(f"Context stats read failed: {e}")
            return ContextStats()

        if not messages:
            return ContextStats()

        return ContextStats(
            message_count=len(messages),
            estimated_tokens=sum(self._message_tokens(m) for m in messages),
            oldest_message_timestamp=messages[0].timestamp,
            newest_message_timestamp=messages[-1].timestamp,
        )

    async def format_context_for_prompt(self, user_id: int, settings: ContextSettings) -> str:
        """Render the context window as a transcript block for the prompt."""
        messages = await self.get_user_context(user_id, settings)
        if not messages:
            return ""

        lines = []
        for message in messages:
            role = ROLE_LABELS[message.role]
            type_info = f" [{message.message_type.value}]" if message.message_type != MessageType.TEXT else ""
            lines.append(f"{role}{type_info}: {message.content}")

        return f"\n\n{CONTEXT_HEADER}\n" + "\n".join(lines) + "\n"

    async def get_global_stats(self) -> GlobalContextStats:
        """Administrative aggregate across all users with history."""
        try:
            counts = await self.storage.count_messages_by_user()
        except StorageError as e:
            logger.error(f"Global context stats read failed: {e}")
            return GlobalContextStats()

        total_users = len(counts)
        total_messages = sum(counts.values())
        average = total_messages / total_users if total_users else 0.0

        return GlobalContextStats(
            total_users=total_users,
            total_messages=total_messages,
            average_messages_per_user=round(average, 2),
        )
