from __future__ import annotations
"""In-process storage backend (tests and ephemeral runs)."""
from collections import Counter
from typing import Dict, List, Optional

from aibot.schemas import ContextMessage, UserSettings
from aibot.services.storage.base import Storage


class InMemoryStorage(Storage):
    """Keeps everything in dictionaries. Lost on restart."""

    def __init__(self) -> None:
        self._settings: Dict[int, UserSettings] = {}
        self._messages: Dict[int, List[ContextMessage]] = {}

    async def get_user_settings(self, user_id: int) -> Optional[UserSettings]:
        stored = self._settings.get(user_id)
        return stored.model_copy(deep=True) if stored else None

    async def save_user_settings(self, user_settings: UserSettings) -> None:
        self._settings[user_settings.user_id] = user_settings.model_copy(deep=True)

    async def count_users_by_style(self) -> Dict[str, int]:
        return dict(Counter(s.response_style for s in self._settings.values()))

    async def count_users(self) -> int:
        return len(self._settings)

    async def append_message(self, message: ContextMessage) -> None:
        # ContextMessage is frozen, safe to share
        self._messages.setdefault(message.user_id, []).append(message)

    async def get_messages(
        self,
        user_id: int,
        limit: Optional[int] = None
    ) -> List[ContextMessage]:
        messages = self._messages.get(user_id, [])
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return list(messages)

    async def delete_messages(self, user_id: int) -> int:
        return len(self._messages.pop(user_id, []))

    async def trim_messages(self, user_id: int, keep: int) -> int:
        messages = self._messages.get(user_id, [])
        excess = len(messages) - max(keep, 0)
        if excess <= 0:
            return 0
        self._messages[user_id] = messages[excess:]
        return excess

    async def count_messages_by_user(self) -> Dict[int, int]:
        return {
            user_id: len(messages)
            for user_id, messages in self._messages.items()
            if messages
        }
