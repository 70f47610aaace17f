from __future__ import annotations
"""
Conversation Orchestrator - one inbound turn from settings to reply.

Reads the user's settings and context window, composes the prompt, calls the
backend and records the exchange. A reply string is always produced: backend
failures become localized error texts and storage failures only cost memory.
"""
import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from aibot.core.exceptions import BackendError, StorageError, ValidationError
from aibot.core.i18n import error_message, t
from aibot.core.logging import log_user_activity
from aibot.schemas import MessageType, UserSettings
from aibot.services.context_service import ContextService
from aibot.services.gemini_service import GenerationBackend
from aibot.services.media_service import AudioKind, MediaFile, MediaService
from aibot.services.prompt_composer import REQUEST_LABEL, compose_prompt
from aibot.services.user_settings_service import UserSettingsService
from aibot.utils.files import format_duration

logger = logging.getLogger(__name__)


@dataclass
class InboundMessage:
    """Transport-neutral inbound turn."""
    user_id: int
    chat_id: int
    content: str = ""
    username: Optional[str] = None
    message_type: MessageType = MessageType.TEXT
    media: Optional[MediaFile] = None


class ConversationOrchestrator:
    """Runs a turn through settings, context, composer and backend."""

    def __init__(
        self,
        settings_service: UserSettingsService,
        context_service: ContextService,
        backend: GenerationBackend,
        media_service: Optional[MediaService] = None
    ) -> None:
        self.settings_service = settings_service
        self.context_service = context_service
        self.backend = backend
        self.media_service = media_service or MediaService(backend)
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def _load_settings(self, message: InboundMessage) -> UserSettings:
        if message.user_id is None:
            raise ValidationError("user_id is required")

        try:
            return await self.settings_service.get_user_settings(message.user_id, message.username)
        except StorageError as e:
            # Creating the record failed; answer with defaults this time
            logger.error(f"Settings unavailable for user {message.user_id}: {e}")
            now = datetime.now(timezone.utc)
            return UserSettings(
                user_id=message.user_id,
                username=message.username,
                context_settings=self.settings_service.default_context.model_copy(),
                created_at=now,
                updated_at=now,
            )

    async def _record_turn(
        self,
        user_settings: UserSettings,
        user_content: str,
        message_type: MessageType,
        reply: str
    ) -> None:
        """Persist the exchange and run auto-cleanup; failures are logged only."""
        context_settings = user_settings.context_settings
        if not context_settings.enabled:
            return

        user_id = user_settings.user_id
        async with self._lock_for(user_id):
            try:
                await self.context_service.add_user_message(user_id, user_content, message_type)
                await self.context_service.add_assistant_message(user_id, reply)
                await self.context_service.auto_cleanup_context(user_id, context_settings)
            except StorageError as e:
                logger.error(f"Failed to record turn for user {user_id}: {e}")

    async def handle_text(self, message: InboundMessage) -> str:
        """Answer a text message in the user's style with their context."""
        user_settings = await self._load_settings(message)
        log_user_activity(
            message.user_id, message.username, "text_message",
            length=len(message.content),
            style=user_settings.response_style,
        )

        formatted_context = await self.context_service.format_context_for_prompt(
            message.user_id, user_settings.context_settings
        )
        prompt = compose_prompt(message.content, user_settings.response_style, formatted_context)

        try:
            reply = await self.backend.generate_text(prompt)
        except BackendError as e:
            logger.error(f"Text generation failed for user {message.user_id}: {e}")
            return error_message(e.kind.value)

        if not reply:
            return t("bot.empty_response")

        await self._record_turn(user_settings, message.content, MessageType.TEXT, reply)
        return reply

    async def handle_image(self, message: InboundMessage) -> str:
        """Describe an image; the caption, if any, is the user's question."""
        if message.media is None:
            raise ValidationError("image message without a file")

        user_settings = await self._load_settings(message)
        caption = message.content.strip()
        log_user_activity(
            message.user_id, message.username, "image_message",
            has_caption=bool(caption),
        )

        extra_prompt = await self.context_service.format_context_for_prompt(
            message.user_id, user_settings.context_settings
        )
        if caption:
            extra_prompt += f"\n\n{REQUEST_LABEL}: {caption}"

        result = await self.media_service.process_image(message.media, extra_prompt)
        if result.success:
            await self._record_turn(
                user_settings,
                caption or t("media.image_turn"),
                MessageType.IMAGE,
                result.message,
            )
        return result.message

    async def handle_audio(self, message: InboundMessage, kind: AudioKind) -> str:
        """Transcribe and answer a voice note, or analyze an audio file."""
        if message.media is None:
            raise ValidationError("audio message without a file")

        user_settings = await self._load_settings(message)
        media = message.media
        log_user_activity(
            message.user_id, message.username, "audio_message",
            kind=kind.value,
            duration=media.duration,
        )

        extra_prompt = await self.context_service.format_context_for_prompt(
            message.user_id, user_settings.context_settings
        )
        result = await self.media_service.process_audio(media, kind, extra_prompt)
        if not result.success:
            return result.message

        if kind == AudioKind.VOICE:
            user_content = t("media.voice_turn", duration=format_duration(media.duration or 0))
            message_type = MessageType.VOICE
        else:
            user_content = t("media.audio_turn", name=media.file_name or "")
            message_type = MessageType.AUDIO

        await self._record_turn(user_settings, user_content.strip(), message_type, result.message)
        return result.message
