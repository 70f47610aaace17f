from __future__ import annotations
"""Temporary file helpers for media attachments."""
import logging
import os
import tempfile
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPES = {
    "mp3": "audio/mp3",
    "wav": "audio/wav",
    "m4a": "audio/m4a",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "flac": "audio/flac",
}

IMAGE_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
}


def _extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def audio_mime_type(filename: str) -> str:
    """MIME type by extension; Telegram voice notes (OGG) by default."""
    return AUDIO_MIME_TYPES.get(_extension(filename), "audio/ogg")


def image_mime_type(filename: str) -> str:
    """MIME type by extension; JPEG by default."""
    return IMAGE_MIME_TYPES.get(_extension(filename), "image/jpeg")


def create_temp_dir(dir_name: str) -> Path:
    """Create (if needed) and return a directory under the system temp dir."""
    temp_dir = Path(tempfile.gettempdir()) / dir_name
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def safe_delete_file(file_path: str | os.PathLike) -> None:
    """Remove a temp file; a failure is only logged."""
    try:
        Path(file_path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to delete temp file {file_path}: {e}")


async def download_file(file_url: str, file_path: str | os.PathLike, timeout: float = 60.0) -> None:
    """Download ``file_url`` into ``file_path``."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(file_url)
        if response.status_code != 200:
            raise IOError(f"Не удалось скачать файл: HTTP {response.status_code}")
        Path(file_path).write_bytes(response.content)


def format_duration(duration: int) -> str:
    """Human-readable audio duration: "45 сек" or "2:05 мин"."""
    if duration > 60:
        minutes, seconds = divmod(duration, 60)
        return f"{minutes}:{seconds:02d} мин"
    return f"{duration} сек"
