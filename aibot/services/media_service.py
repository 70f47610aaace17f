from __future__ import annotations
"""Media service - images, voice notes and audio files through the backend."""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from aibot.core.config import settings
from aibot.core.exceptions import BackendError, BackendErrorKind, classify_backend_error
from aibot.core.i18n import error_message, t
from aibot.services.gemini_service import GenerationBackend
from aibot.utils.files import (
    audio_mime_type,
    create_temp_dir,
    download_file,
    format_duration,
    image_mime_type,
    safe_delete_file,
)

logger = logging.getLogger(__name__)

LONG_VOICE_SECONDS = 60

AUDIO_BASE_PROMPT = "Ты - умный ИИ-ассистент в чате Telegram, который обрабатывает аудиосообщения."

LONG_VOICE_PROMPT = f"""{AUDIO_BASE_PROMPT}

ЗАДАЧА: Транскрибируй и проанализируй это голосовое сообщение.

ИНСТРУКЦИИ:
1. Сначала создай точную транскрипцию речи
2. Выдели основные темы и ключевые моменты
3. Если есть вопросы - дай краткие ответы
4. Если есть просьбы - укажи, что можешь помочь
5. Используй эмоджи для лучшего восприятия

ФОРМАТ ОТВЕТА:
📝 **Транскрипция:** [точный текст]
💡 **Основные моменты:** [ключевые темы]
❓ **Ответы на вопросы:** [если есть вопросы]"""

SHORT_VOICE_PROMPT = f"""{AUDIO_BASE_PROMPT}

ЗАДАЧА: Обработай это голосовое сообщение естественно и дружелюбно.

ИНСТРУКЦИИ:
1. Транскрибируй речь точно
2. Отвечай как живой собеседник
3. Если есть вопрос - дай полезный ответ
4. Если это просто сообщение - подтверди понимание
5. Используй подходящие эмоджи
6. Будь кратким и по делу

Отвечай естественно, как будто это обычный разговор! 🗣️"""

AUDIO_FILE_PROMPT = f"""{AUDIO_BASE_PROMPT}

ЗАДАЧА: Проанализируй этот аудиофайл (может быть музыка, подкаст, лекция и т.д.).

ИНСТРУКЦИИ:
1. Определи тип контента (речь/музыка/другое)
2. Если это речь - создай транскрипцию
3. Если это музыка - опиши стиль, настроение
4. Выдели основное содержание
5. Дай краткую оценку или комментарий

ФОРМАТ ОТВЕТА:
🎵 **Тип:** [тип аудио]
📄 **Содержание:** [описание/транскрипция]
💭 **Комментарий:** [твои мысли]"""

IMAGE_PROMPT = """Ты - умный ИИ-ассистент в чате Telegram, который анализирует изображения.

Опиши, что изображено: основные объекты, людей, обстановку и настроение.
Если на изображении есть текст - приведи его.
Отвечай структурированно и используй эмоджи для лучшего восприятия."""


class AudioKind(str, Enum):
    VOICE = "voice"
    AUDIO_FILE = "audio_file"


@dataclass
class MediaFile:
    """Attachment reference handed over by the transport."""
    file_id: str
    file_url: str
    file_name: Optional[str] = None
    duration: Optional[int] = None


@dataclass
class MediaProcessResult:
    success: bool
    message: str
    error: Optional[str] = None


def get_audio_prompt(kind: AudioKind, duration: Optional[int] = None) -> str:
    """Prompt by audio kind; long voice notes get a structured analysis."""
    if kind == AudioKind.VOICE:
        if duration and duration > LONG_VOICE_SECONDS:
            return LONG_VOICE_PROMPT
        return SHORT_VOICE_PROMPT
    return AUDIO_FILE_PROMPT


def _audio_extension(kind: AudioKind, file_name: Optional[str]) -> str:
    if kind == AudioKind.VOICE:
        return "ogg"
    if file_name and "." in file_name:
        return file_name.rsplit(".", 1)[-1].lower()
    return "mp3"


def _image_extension(file_name: Optional[str]) -> str:
    if file_name and "." in file_name:
        return file_name.rsplit(".", 1)[-1].lower()
    return "jpg"


class MediaService:
    """Downloads an attachment, uploads it to the backend and asks for an answer."""

    def __init__(self, backend: GenerationBackend) -> None:
        self.backend = backend

    async def _generate_for_file(
        self,
        media: MediaFile,
        temp_dir_name: str,
        extension: str,
        mime_type_for,
        prompt: str
    ) -> str:
        temp_dir = create_temp_dir(temp_dir_name)
        # Unique per request; the same attachment may be handled twice at once
        file_path = temp_dir / f"{media.file_id}-{uuid.uuid4().hex}.{extension}"
        try:
            await download_file(media.file_url, file_path)
            mime_type = mime_type_for(str(file_path))

            logger.info(f"Uploading {file_path.name} to Gemini ({mime_type})")
            uploaded = await self.backend.upload_media(str(file_path), mime_type)
            return await self.backend.generate_from_media(uploaded.uri, uploaded.mime_type, prompt)
        finally:
            safe_delete_file(file_path)

    async def process_image(
        self,
        media: MediaFile,
        extra_prompt: str = ""
    ) -> MediaProcessResult:
        """Describe an image; ``extra_prompt`` carries context and the caption."""
        try:
            text = await self._generate_for_file(
                media,
                settings.temp_dir_images,
                _image_extension(media.file_name),
                image_mime_type,
                IMAGE_PROMPT + extra_prompt,
            )
        except (BackendError, httpx.HTTPError, OSError) as e:
            logger.error(f"Image processing failed: {e}")
            return self._failure(e, "image")

        if not text:
            return MediaProcessResult(success=False, message=error_message("unknown", "image"))

        return MediaProcessResult(success=True, message=f"{t('media.image_header')}\n\n{text}")

    async def process_audio(
        self,
        media: MediaFile,
        kind: AudioKind,
        extra_prompt: str = ""
    ) -> MediaProcessResult:
        """Transcribe and answer a voice note or analyze an audio file."""
        logger.info(
            f"Processing {'voice message' if kind == AudioKind.VOICE else 'audio file'}, "
            f"duration={media.duration or 'unknown'}s"
        )
        try:
            text = await self._generate_for_file(
                media,
                settings.temp_dir_audio,
                _audio_extension(kind, media.file_name),
                audio_mime_type,
                get_audio_prompt(kind, media.duration) + extra_prompt,
            )
        except (BackendError, httpx.HTTPError, OSError) as e:
            logger.error(f"Audio processing failed: {e}")
            return self._failure(e, "audio")

        if not text:
            return MediaProcessResult(success=False, message=error_message("unknown", "audio"))

        if kind == AudioKind.VOICE and media.duration:
            header = t("media.voice_header", duration=format_duration(media.duration))
            text = f"{header}\n\n{text}"

        return MediaProcessResult(success=True, message=text)

    @staticmethod
    def _failure(error: Exception, scope: str) -> MediaProcessResult:
        kind = classify_backend_error(error) if isinstance(error, BackendError) else BackendErrorKind.UNKNOWN
        return MediaProcessResult(
            success=False,
            message=error_message(kind.value, scope),
            error=str(error),
        )
