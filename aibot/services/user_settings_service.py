from __future__ import annotations
"""User settings service - style choice and context configuration per user."""
import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from aibot.core.exceptions import StorageError, ValidationError
from aibot.core.logging import log_user_activity
from aibot.schemas import ContextSettings, StyleDescription, UserSettings
from aibot.services.storage import Storage
from aibot.services.styles import DEFAULT_STYLE, StyleRegistry, style_registry

logger = logging.getLogger(__name__)


class UserSettingsService:
    """
    Single authoritative settings record per user, created on first access.

    Creation and updates for one user are serialized with a per-user lock,
    so overlapping handlers never produce two divergent default records.
    """

    def __init__(
        self,
        storage: Storage,
        registry: Optional[StyleRegistry] = None,
        default_context: Optional[ContextSettings] = None
    ) -> None:
        self.storage = storage
        self.registry = registry or style_registry
        self.default_context = default_context or ContextSettings()
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _defaults(self, user_id: int, username: Optional[str]) -> UserSettings:
        now = datetime.now(timezone.utc)
        return UserSettings(
            user_id=user_id,
            username=username,
            response_style=DEFAULT_STYLE,
            context_settings=self.default_context.model_copy(),
            created_at=now,
            updated_at=now,
        )

    async def _get_or_create(
        self,
        user_id: int,
        username: Optional[str],
        degrade: bool = False
    ) -> UserSettings:
        """
        Load or create the record. Caller holds the user's lock.

        With ``degrade`` a failed read yields unsaved defaults; otherwise the
        ``StorageError`` propagates so updates never overwrite an unread record.
        """
        if user_id is None:
            raise ValidationError("user_id is required")

        try:
            existing = await self.storage.get_user_settings(user_id)
        except StorageError as e:
            if not degrade:
                raise
            logger.error(f"Settings read failed for user {user_id}, using defaults: {e}")
            return self._defaults(user_id, username)

        if existing is None:
            created = self._defaults(user_id, username)
            await self.storage.save_user_settings(created)
            log_user_activity(
                user_id, username, "settings_created",
                default_style=created.response_style,
                context_enabled=created.context_settings.enabled,
            )
            return created

        if username and existing.username != username:
            existing.username = username
            existing.updated_at = datetime.now(timezone.utc)
            await self.storage.save_user_settings(existing)

        return existing

    # ==================== Settings records ====================

    async def get_user_settings(self, user_id: int, username: Optional[str] = None) -> UserSettings:
        """Return the user's settings, creating defaults for a new user."""
        async with self._lock_for(user_id):
            return await self._get_or_create(user_id, username, degrade=True)

    async def update_user_style(
        self,
        user_id: int,
        style_key: str,
        username: Optional[str] = None
    ) -> UserSettings:
        """
        Set the response style.

        The key is not re-validated here; callers check ``is_valid_style`` first.
        """
        async with self._lock_for(user_id):
            user_settings = await self._get_or_create(user_id, username)
            old_style = user_settings.response_style

            user_settings.response_style = style_key
            user_settings.updated_at = datetime.now(timezone.utc)
            if username:
                user_settings.username = username

            await self.storage.save_user_settings(user_settings)

        log_user_activity(user_id, username, "style_changed", old_style=old_style, new_style=style_key)
        return user_settings

    async def update_user_context_settings(
        self,
        user_id: int,
        context_settings: Mapping[str, Any],
        username: Optional[str] = None
    ) -> UserSettings:
        """Merge ``context_settings`` field by field over the stored values."""
        unknown = set(context_settings) - set(ContextSettings.model_fields)
        if unknown:
            raise ValidationError(f"Unknown context settings: {', '.join(sorted(unknown))}")

        # Reject bad values before touching storage
        try:
            ContextSettings.model_validate({**self.default_context.model_dump(), **context_settings})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid context settings: {e}") from e

        async with self._lock_for(user_id):
            user_settings = await self._get_or_create(user_id, username)
            user_settings.context_settings = ContextSettings.model_validate({
                **user_settings.context_settings.model_dump(),
                **context_settings,
            })
            user_settings.updated_at = datetime.now(timezone.utc)
            if username:
                user_settings.username = username

            await self.storage.save_user_settings(user_settings)

        log_user_activity(
            user_id, username, "context_settings_changed",
            new_settings=dict(context_settings),
        )
        return user_settings

    # ==================== Styles ====================

    def is_valid_style(self, key: str) -> bool:
        return self.registry.is_valid(key)

    def get_style_description(self, key: str) -> Optional[StyleDescription]:
        return self.registry.get(key)

    def get_all_styles(self) -> List[StyleDescription]:
        return self.registry.get_all()

    async def get_style_stats(self) -> Dict[str, int]:
        """Users per style; every registry key is present, zeros included."""
        stats = {key: 0 for key in self.registry.get_keys()}
        try:
            counts = await self.storage.count_users_by_style()
        except StorageError as e:
            logger.error(f"Style stats read failed: {e}")
            return stats

        for style, count in counts.items():
            if style in stats:
                stats[style] = count
            else:
                logger.warning(f"{count} user(s) on unregistered style '{style}'")
        return stats

    async def get_users_count(self) -> int:
        try:
            return await self.storage.count_users()
        except StorageError as e:
            logger.error(f"Users count read failed: {e}")
            return 0
