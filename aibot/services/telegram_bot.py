from __future__ import annotations
"""Telegram bot integration using aiogram with interactive buttons."""
import logging
from datetime import datetime
from typing import List, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
    Update,
)

from aibot.core.exceptions import BotError
from aibot.core.i18n import t
from aibot.core.logging import log_user_activity
from aibot.schemas import ContextSettings, StyleDescription
from aibot.services.context_service import ContextService
from aibot.services.media_service import AudioKind, MediaFile
from aibot.services.orchestrator import ConversationOrchestrator, InboundMessage
from aibot.services.user_settings_service import UserSettingsService
from aibot.utils.telegram import safe_send

logger = logging.getLogger(__name__)

MAX_MESSAGES_PRESETS = (10, 20, 50)

TELEGRAM_FILE_URL = "https://api.telegram.org/file/bot{token}/{file_path}"

# ==================== Button Definitions ====================

def get_style_keyboard(styles: List[StyleDescription], current: str) -> InlineKeyboardMarkup:
    """Two styles per row; the current one is marked."""
    buttons = []
    row: List[InlineKeyboardButton] = []
    for style in styles:
        mark = "✅ " if style.key == current else ""
        row.append(InlineKeyboardButton(
            text=f"{mark}{style.emoji} {style.name}",
            callback_data=f"style:{style.key}",
        ))
        if len(row) == 2:
            buttons.append(row)
            row = []
    if row:
        buttons.append(row)
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_context_keyboard(context_settings: ContextSettings) -> InlineKeyboardMarkup:
    """Context menu: toggles, history length presets and clear."""
    presets = []
    for count in MAX_MESSAGES_PRESETS:
        mark = "✅ " if count == context_settings.max_messages else ""
        presets.append(InlineKeyboardButton(
            text=mark + t("context.max_messages_button", count=count),
            callback_data=f"ctx:max:{count}",
        ))

    buttons = [
        [InlineKeyboardButton(text=t("context.toggle_enabled"), callback_data="ctx:toggle_enabled")],
        [InlineKeyboardButton(text=t("context.toggle_cleanup"), callback_data="ctx:toggle_cleanup")],
        presets,
        [InlineKeyboardButton(text=t("context.clear_button"), callback_data="ctx:clear")],
    ]
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def _format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else t("stats.none")


class TelegramBotService:
    """
    Routes Telegram updates to commands, menus and the orchestrator.

    All replies go through ``safe_send`` so Markdown errors never lose an answer.
    """

    def __init__(
        self,
        bot: Bot,
        orchestrator: ConversationOrchestrator,
        settings_service: UserSettingsService,
        context_service: ContextService
    ) -> None:
        self.bot = bot
        self.orchestrator = orchestrator
        self.settings_service = settings_service
        self.context_service = context_service

    async def process_update(self, update: Update) -> None:
        """Handle one incoming update."""
        if update.callback_query:
            await self._handle_callback(update.callback_query)
            return

        message = update.message
        if not message or not message.from_user:
            return

        try:
            await self._handle_message(message)
        except BotError as e:
            logger.error(f"Failed to process message from {message.from_user.id}: {e}")
            await safe_send(self.bot, message.chat.id, t("bot.processing_error"))

    # ==================== Messages ====================

    async def _handle_message(self, message: Message) -> None:
        chat_id = message.chat.id
        user = message.from_user

        if message.text and message.text.startswith("/"):
            await self._handle_command(message, message.text)
            return

        inbound = InboundMessage(
            user_id=user.id,
            chat_id=chat_id,
            username=user.username,
            content=message.text or message.caption or "",
        )

        if message.text:
            await self.bot.send_chat_action(chat_id=chat_id, action="typing")
            reply = await self.orchestrator.handle_text(inbound)
        elif message.photo:
            # Largest size comes last
            photo = message.photo[-1]
            inbound.media = MediaFile(
                file_id=photo.file_unique_id,
                file_url=await self._get_file_url(photo.file_id),
            )
            await self.bot.send_chat_action(chat_id=chat_id, action="upload_photo")
            reply = await self.orchestrator.handle_image(inbound)
        elif message.voice:
            inbound.media = MediaFile(
                file_id=message.voice.file_unique_id,
                file_url=await self._get_file_url(message.voice.file_id),
                duration=message.voice.duration,
            )
            await self.bot.send_chat_action(chat_id=chat_id, action="typing")
            reply = await self.orchestrator.handle_audio(inbound, AudioKind.VOICE)
        elif message.audio:
            inbound.media = MediaFile(
                file_id=message.audio.file_unique_id,
                file_url=await self._get_file_url(message.audio.file_id),
                file_name=message.audio.file_name,
                duration=message.audio.duration,
            )
            await self.bot.send_chat_action(chat_id=chat_id, action="typing")
            reply = await self.orchestrator.handle_audio(inbound, AudioKind.AUDIO_FILE)
        else:
            log_user_activity(user.id, user.username, "unsupported_message", content_type=message.content_type)
            reply = t("bot.unsupported")

        await safe_send(self.bot, chat_id, reply)

    async def _get_file_url(self, file_id: str) -> str:
        file = await self.bot.get_file(file_id)
        return TELEGRAM_FILE_URL.format(token=self.bot.token, file_path=file.file_path)

    # ==================== Commands ====================

    async def _handle_command(self, message: Message, text: str) -> None:
        """Handle bot commands."""
        chat_id = message.chat.id
        user = message.from_user
        # "/style@my_bot args" -> "/style"
        command = text.split()[0].split("@")[0].lower()

        if command == "/start":
            await self.settings_service.get_user_settings(user.id, user.username)
            log_user_activity(user.id, user.username, "start_command")
            name = user.first_name or t("bot.default_name")
            await safe_send(self.bot, chat_id, t("bot.welcome", name=name))

        elif command == "/help":
            log_user_activity(user.id, user.username, "help_command")
            await safe_send(self.bot, chat_id, t("bot.help"))

        elif command == "/style":
            text, keyboard = await self._style_menu(user.id, user.username)
            await safe_send(self.bot, chat_id, text, reply_markup=keyboard)

        elif command == "/context":
            text, keyboard = await self._context_menu(user.id, user.username)
            await safe_send(self.bot, chat_id, text, reply_markup=keyboard)

        elif command == "/clear":
            cleared = await self.context_service.clear_user_context(user.id)
            await safe_send(self.bot, chat_id, t("context.cleared", count=cleared))

        elif command == "/stats":
            await safe_send(self.bot, chat_id, await self._stats_text(user.id))

        else:
            log_user_activity(user.id, user.username, "unknown_command", command=command)
            await safe_send(self.bot, chat_id, t("bot.unknown_command"))

    async def _style_menu(self, user_id: int, username: Optional[str]):
        user_settings = await self.settings_service.get_user_settings(user_id, username)
        current = self.settings_service.get_style_description(user_settings.response_style)
        text = t(
            "style.menu",
            emoji=current.emoji if current else "",
            name=current.name if current else user_settings.response_style,
        )
        keyboard = get_style_keyboard(self.settings_service.get_all_styles(), user_settings.response_style)
        return text, keyboard

    async def _context_menu(self, user_id: int, username: Optional[str]):
        user_settings = await self.settings_service.get_user_settings(user_id, username)
        context_settings = user_settings.context_settings
        stats = await self.context_service.get_user_context_stats(user_id)
        text = t(
            "context.menu",
            status=t("context.on") if context_settings.enabled else t("context.off"),
            auto_cleanup=t("context.on") if context_settings.auto_cleanup else t("context.off"),
            max_messages=context_settings.max_messages,
            max_tokens=context_settings.max_tokens,
            message_count=stats.message_count,
            estimated_tokens=stats.estimated_tokens,
        )
        return text, get_context_keyboard(context_settings)

    async def _stats_text(self, user_id: int) -> str:
        stats = await self.context_service.get_user_context_stats(user_id)
        global_stats = await self.context_service.get_global_stats()
        style_stats = await self.settings_service.get_style_stats()
        users = await self.settings_service.get_users_count()

        lines = [
            t(
                "stats.user",
                message_count=stats.message_count,
                estimated_tokens=stats.estimated_tokens,
                oldest=_format_timestamp(stats.oldest_message_timestamp),
                newest=_format_timestamp(stats.newest_message_timestamp),
            ),
            "",
            t(
                "stats.global",
                users=users,
                total_users=global_stats.total_users,
                total_messages=global_stats.total_messages,
                average=global_stats.average_messages_per_user,
            ),
            "",
            t("stats.styles_header"),
        ]
        for style in self.settings_service.get_all_styles():
            lines.append(f"{style.emoji} {style.name}: {style_stats.get(style.key, 0)}")
        return "\n".join(lines)

    # ==================== Callbacks ====================

    async def _handle_callback(self, callback: CallbackQuery) -> None:
        """Handle button callback queries."""
        data = callback.data or ""
        user = callback.from_user
        action, value = data.split(":", 1) if ":" in data else (data, "")
        notice: Optional[str] = None

        try:
            if action == "style":
                notice = await self._handle_style_callback(callback, value)
            elif action == "ctx":
                notice = await self._handle_context_callback(callback, value)
            else:
                logger.warning(f"Unknown callback data from {user.id}: {data}")
        except BotError as e:
            logger.error(f"Callback {data} failed for {user.id}: {e}")
            notice = t("bot.processing_error")

        # Answer callback to remove loading state
        try:
            await self.bot.answer_callback_query(callback.id, text=notice)
        except TelegramAPIError as e:
            logger.debug(f"answer_callback_query failed: {e}")

    async def _handle_style_callback(self, callback: CallbackQuery, style_key: str) -> Optional[str]:
        user = callback.from_user
        if not self.settings_service.is_valid_style(style_key):
            return t("style.invalid")

        await self.settings_service.update_user_style(user.id, style_key, user.username)
        style = self.settings_service.get_style_description(style_key)

        text, keyboard = await self._style_menu(user.id, user.username)
        await self._edit_menu(callback, text, keyboard)
        if callback.message:
            await safe_send(
                self.bot,
                callback.message.chat.id,
                t("style.changed", emoji=style.emoji, name=style.name, description=style.description),
            )
        return None

    async def _handle_context_callback(self, callback: CallbackQuery, value: str) -> Optional[str]:
        user = callback.from_user

        if value == "clear":
            cleared = await self.context_service.clear_user_context(user.id)
            notice = t("context.cleared", count=cleared)
        else:
            user_settings = await self.settings_service.get_user_settings(user.id, user.username)
            current = user_settings.context_settings
            if value == "toggle_enabled":
                update = {"enabled": not current.enabled}
            elif value == "toggle_cleanup":
                update = {"auto_cleanup": not current.auto_cleanup}
            elif value.startswith("max:") and value[4:].isdigit():
                update = {"max_messages": int(value[4:])}
            else:
                logger.warning(f"Unknown context action: {value}")
                return None
            await self.settings_service.update_user_context_settings(user.id, update, user.username)
            notice = t("context.updated")

        text, keyboard = await self._context_menu(user.id, user.username)
        await self._edit_menu(callback, text, keyboard)
        return notice

    async def _edit_menu(self, callback: CallbackQuery, text: str, keyboard: InlineKeyboardMarkup) -> None:
        if not callback.message:
            return
        try:
            await self.bot.edit_message_text(
                chat_id=callback.message.chat.id,
                message_id=callback.message.message_id,
                text=text,
                reply_markup=keyboard,
                parse_mode="Markdown",
            )
        except TelegramAPIError as e:
            # "message is not modified" and friends
            logger.debug(f"Menu edit skipped: {e}")
