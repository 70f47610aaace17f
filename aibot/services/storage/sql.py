from __future__ import annotations
"""SQLAlchemy storage backend (SQLite by default)."""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from aibot.core.database import close_db, create_session_maker
from aibot.core.exceptions import StorageError
from aibot.models import ContextMessageRecord, UserSettingsRecord
from aibot.schemas import (
    DEFAULT_CONTEXT_SETTINGS,
    ContextMessage,
    UserSettings,
)
from aibot.services.storage.base import Storage

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _needs_backfill(row: UserSettingsRecord) -> bool:
    return any(
        value is None
        for value in (
            row.context_enabled,
            row.context_max_messages,
            row.context_max_tokens,
            row.context_auto_cleanup,
        )
    )


def _backfill_context_columns(row: UserSettingsRecord) -> None:
    """Fill context columns missing on rows from older versions with defaults."""
    defaults = DEFAULT_CONTEXT_SETTINGS
    if row.context_enabled is None:
        row.context_enabled = defaults.enabled
    if row.context_max_messages is None:
        row.context_max_messages = defaults.max_messages
    if row.context_max_tokens is None:
        row.context_max_tokens = defaults.max_tokens
    if row.context_auto_cleanup is None:
        row.context_auto_cleanup = defaults.auto_cleanup


def _settings_from_row(row: UserSettingsRecord) -> UserSettings:
    # Validation fails fast on malformed rows
    try:
        return UserSettings.model_validate({
            "user_id": row.user_id,
            "username": row.username,
            "response_style": row.response_style,
            "context_settings": {
                "enabled": row.context_enabled,
                "max_messages": row.context_max_messages,
                "max_tokens": row.context_max_tokens,
                "auto_cleanup": row.context_auto_cleanup,
            },
            "created_at": _as_utc(row.created_at),
            "updated_at": _as_utc(row.updated_at),
        })
    except PydanticValidationError as e:
        raise StorageError(f"Malformed settings row for user {row.user_id}: {e}") from e


def _apply_settings_to_row(row: UserSettingsRecord, user_settings: UserSettings) -> None:
    context = user_settings.context_settings
    row.username = user_settings.username
    row.response_style = user_settings.response_style
    row.context_enabled = context.enabled
    row.context_max_messages = context.max_messages
    row.context_max_tokens = context.max_tokens
    row.context_auto_cleanup = context.auto_cleanup
    row.created_at = user_settings.created_at
    row.updated_at = user_settings.updated_at


def _message_from_row(row: ContextMessageRecord) -> ContextMessage:
    try:
        return ContextMessage.model_validate({
            "id": row.id,
            "user_id": row.user_id,
            "role": row.role,
            "content": row.content,
            "message_type": row.message_type,
            "timestamp": _as_utc(row.created_at),
            "token_count": row.token_count,
        })
    except PydanticValidationError as e:
        raise StorageError(f"Malformed context row {row.id}: {e}") from e


class SqlStorage(Storage):
    """
    Storage on top of an async SQLAlchemy engine.

    Every call runs in its own session and commits before returning,
    so a write is durable once the coroutine completes.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None
    ) -> None:
        self.engine = engine
        self.session_maker = session_maker or create_session_maker(engine)

    # ==================== User settings ====================

    async def get_user_settings(self, user_id: int) -> Optional[UserSettings]:
        try:
            async with self.session_maker() as db:
                row = await db.get(UserSettingsRecord, user_id)
                if row is None:
                    return None

                if _needs_backfill(row):
                    _backfill_context_columns(row)
                    await db.commit()
                    logger.info(f"Backfilled context settings for user {user_id}")

                return _settings_from_row(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load settings for user {user_id}: {e}") from e

    async def save_user_settings(self, user_settings: UserSettings) -> None:
        try:
            async with self.session_maker() as db:
                row = await db.get(UserSettingsRecord, user_settings.user_id)
                if row is None:
                    row = UserSettingsRecord(user_id=user_settings.user_id)
                    db.add(row)
                _apply_settings_to_row(row, user_settings)
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to save settings for user {user_settings.user_id}: {e}"
            ) from e

    async def count_users_by_style(self) -> Dict[str, int]:
        stmt = select(
            UserSettingsRecord.response_style,
            func.count(UserSettingsRecord.user_id)
        ).group_by(UserSettingsRecord.response_style)
        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                return {style: count for style, count in result.all()}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count users by style: {e}") from e

    async def count_users(self) -> int:
        try:
            async with self.session_maker() as db:
                result = await db.execute(select(func.count(UserSettingsRecord.user_id)))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count users: {e}") from e

    # ==================== Context messages ====================

    async def append_message(self, message: ContextMessage) -> None:
        row = ContextMessageRecord(
            id=message.id,
            user_id=message.user_id,
            role=message.role.value,
            content=message.content,
            message_type=message.message_type.value,
            token_count=message.token_count,
            created_at=message.timestamp,
        )
        try:
            async with self.session_maker() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to append message for user {message.user_id}: {e}") from e

    async def get_messages(
        self,
        user_id: int,
        limit: Optional[int] = None
    ) -> List[ContextMessage]:
        if limit is not None and limit <= 0:
            return []

        stmt = select(ContextMessageRecord).where(
            ContextMessageRecord.user_id == user_id
        ).order_by(ContextMessageRecord.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load messages for user {user_id}: {e}") from e

        return [_message_from_row(row) for row in reversed(rows)]

    async def delete_messages(self, user_id: int) -> int:
        stmt = delete(ContextMessageRecord).where(ContextMessageRecord.user_id == user_id)
        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                await db.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete messages for user {user_id}: {e}") from e

    async def trim_messages(self, user_id: int, keep: int) -> int:
        # Newest seq that falls outside the kept window
        cutoff_stmt = select(ContextMessageRecord.seq).where(
            ContextMessageRecord.user_id == user_id
        ).order_by(ContextMessageRecord.seq.desc()).offset(max(keep, 0)).limit(1)

        try:
            async with self.session_maker() as db:
                cutoff = (await db.execute(cutoff_stmt)).scalar_one_or_none()
                if cutoff is None:
                    return 0

                result = await db.execute(
                    delete(ContextMessageRecord).where(
                        ContextMessageRecord.user_id == user_id,
                        ContextMessageRecord.seq <= cutoff,
                    )
                )
                await db.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to trim messages for user {user_id}: {e}") from e

    async def count_messages_by_user(self) -> Dict[int, int]:
        stmt = select(
            ContextMessageRecord.user_id,
            func.count(ContextMessageRecord.seq)
        ).group_by(ContextMessageRecord.user_id)
        try:
            async with self.session_maker() as db:
                result = await db.execute(stmt)
                return {user_id: count for user_id, count in result.all()}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count messages: {e}") from e

    async def close(self) -> None:
        await close_db(self.engine)
