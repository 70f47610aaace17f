from __future__ import annotations
"""Generation backend - Google Gemini text and media-grounded generation."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import google.generativeai as genai

from aibot.core.config import settings
from aibot.core.exceptions import BackendError, classify_backend_error

logger = logging.getLogger("gemini")


@dataclass(frozen=True)
class UploadedMedia:
    """Reference to a file uploaded to the backend."""
    uri: str
    mime_type: str


class GenerationBackend(Protocol):
    """What the orchestrator needs from a generation backend."""

    async def generate_text(self, prompt: str) -> str: ...

    async def upload_media(self, file_path: str, mime_type: str) -> UploadedMedia: ...

    async def generate_from_media(self, uri: str, mime_type: str, prompt: str) -> str: ...


def _response_text(response) -> str:
    # .text raises when the candidate was blocked or has no parts
    try:
        return response.text or ""
    except ValueError as e:
        logger.warning(f"Gemini returned no text: {e}")
        return ""


class GeminiService:
    """
    Thin adapter over ``google.generativeai``.

    All failures surface as ``BackendError`` carrying a classified kind.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None) -> None:
        key = api_key or settings.gemini_api_key
        if not key:
            raise ValueError("Gemini API key is not configured")

        genai.configure(api_key=key)
        self.model_name = model_name or settings.gemini_model
        self.model = genai.GenerativeModel(self.model_name)

    async def generate_text(self, prompt: str) -> str:
        """Completion for a plain text prompt."""
        try:
            response = await self.model.generate_content_async(prompt)
        except Exception as e:
            logger.error(f"Gemini text generation failed: {e}")
            raise BackendError(str(e), classify_backend_error(e)) from e
        return _response_text(response)

    async def upload_media(self, file_path: str, mime_type: str) -> UploadedMedia:
        """Upload a local file and return its backend reference."""
        try:
            # upload_file is blocking
            uploaded = await asyncio.to_thread(genai.upload_file, path=file_path, mime_type=mime_type)
        except Exception as e:
            logger.error(f"Gemini file upload failed: {e}")
            raise BackendError(str(e), classify_backend_error(e)) from e

        if not uploaded.uri or not uploaded.mime_type:
            raise BackendError("Не удалось загрузить файл в Gemini API")

        logger.debug(f"Uploaded {file_path} as {uploaded.uri} ({uploaded.mime_type})")
        return UploadedMedia(uri=uploaded.uri, mime_type=uploaded.mime_type)

    async def generate_from_media(self, uri: str, mime_type: str, prompt: str) -> str:
        """Completion grounded in a previously uploaded file."""
        file_part = genai.protos.Part(
            file_data=genai.protos.FileData(file_uri=uri, mime_type=mime_type)
        )
        try:
            response = await self.model.generate_content_async([file_part, prompt])
        except Exception as e:
            logger.error(f"Gemini media generation failed: {e}")
            raise BackendError(str(e), classify_backend_error(e)) from e
        return _response_text(response)
