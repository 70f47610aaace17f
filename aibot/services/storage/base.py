from __future__ import annotations
"""Storage interface shared by the context and settings stores."""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from aibot.schemas import ContextMessage, UserSettings


class Storage(ABC):
    """
    Persistence backend for user settings and dialogue turns.

    Implementations raise ``StorageError`` on any I/O failure and hand out
    copies only; mutating a returned object never changes stored state.
    """

    # ==================== User settings ====================

    @abstractmethod
    async def get_user_settings(self, user_id: int) -> Optional[UserSettings]:
        """Return the stored record or None."""

    @abstractmethod
    async def save_user_settings(self, user_settings: UserSettings) -> None:
        """Insert or update the record for ``user_settings.user_id``."""

    @abstractmethod
    async def count_users_by_style(self) -> Dict[str, int]:
        """Number of users per stored style (styles with no users omitted)."""

    @abstractmethod
    async def count_users(self) -> int:
        """Number of settings records."""

    # ==================== Context messages ====================

    @abstractmethod
    async def append_message(self, message: ContextMessage) -> None:
        """Append a turn to the end of the owner's log."""

    @abstractmethod
    async def get_messages(
        self,
        user_id: int,
        limit: Optional[int] = None
    ) -> List[ContextMessage]:
        """
        Return the ``limit`` most recent turns (all when None),
        oldest first.
        """

    @abstractmethod
    async def delete_messages(self, user_id: int) -> int:
        """Delete the whole log of a user; return deleted count."""

    @abstractmethod
    async def trim_messages(self, user_id: int, keep: int) -> int:
        """Delete all but the ``keep`` most recent turns; return deleted count."""

    @abstractmethod
    async def count_messages_by_user(self) -> Dict[int, int]:
        """Message count per user that has at least one turn."""

    async def close(self) -> None:
        """Release resources held by the backend."""
        return None
