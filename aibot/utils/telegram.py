from __future__ import annotations
"""Telegram text helpers - Markdown fallback and message splitting."""
import logging
import re
from typing import List, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup

from aibot.core.i18n import t

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4096

# Preferred split points, best first
SPLIT_SEPARATORS = ("\n\n", "\n", ". ", " ")

_MARKDOWN_RULES = (
    (re.compile(r"```[\s\S]*?```"), "[код]"),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"_(.*?)_"), r"\1"),
    (re.compile(r"~~(.*?)~~"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"^#{1,6}\s+(.*)$", re.MULTILINE), r"\1"),
    (re.compile(r"\\(.)"), r"\1"),
)

_ESCAPED_CHARS = "\\*_`[]()~>#+-=|{}.!"


def strip_markdown(text: str) -> str:
    """Remove Markdown markup, keeping the visible text."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text


def escape_markdown(text: str) -> str:
    """Backslash-escape every Markdown special character."""
    return "".join(f"\\{char}" if char in _ESCAPED_CHARS else char for char in text)


def has_markdown_issues(text: str) -> bool:
    """True when paired markers or brackets are unbalanced."""
    if any(text.count(marker) % 2 for marker in ("*", "_", "`")):
        return True
    return text.count("[") != text.count("]") or text.count("(") != text.count(")")


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> List[str]:
    """
    Split ``text`` into chunks of at most ``limit`` characters.

    Cuts at paragraph, line, sentence or word boundaries when one exists in
    the window, otherwise hard. Joining the chunks gives back the input.
    """
    if len(text) <= limit:
        return [text]

    parts: List[str] = []
    rest = text
    while len(rest) > limit:
        window = rest[:limit]
        cut = 0
        for separator in SPLIT_SEPARATORS:
            index = window.rfind(separator)
            if index > 0:
                cut = index + len(separator)
                break
        if cut == 0:
            cut = limit
        parts.append(rest[:cut])
        rest = rest[cut:]

    if rest:
        parts.append(rest)
    return parts


async def safe_send(
    bot: Bot,
    chat_id: int,
    text: str,
    reply_markup: Optional[InlineKeyboardMarkup] = None
) -> None:
    """
    Send ``text`` with Markdown, falling back to plain text.

    Long texts go out in several messages; the keyboard is attached to the
    last one. Errors other than Markdown parsing propagate.
    """
    parts = split_message(text)
    for index, part in enumerate(parts):
        markup = reply_markup if index == len(parts) - 1 else None
        try:
            await bot.send_message(chat_id=chat_id, text=part, reply_markup=markup, parse_mode="Markdown")
        except TelegramBadRequest as e:
            if "can't parse entities" not in str(e):
                raise
            logger.warning(f"Markdown parse failed, sending plain text: {e}")
            try:
                await bot.send_message(chat_id=chat_id, text=strip_markdown(part), reply_markup=markup)
            except TelegramAPIError as second_error:
                logger.error(f"Failed to send message even without formatting: {second_error}")
                await bot.send_message(chat_id=chat_id, text=t("bot.send_error"))
                return
