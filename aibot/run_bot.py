"""Run the Telegram bot in polling mode together with the health API."""
import asyncio
import logging
import sys

import uvicorn
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from aibot.core.config import settings
from aibot.core.i18n import load_translations
from aibot.core.logging import setup_logging
from aibot.main import app, init_sentry
from aibot.schemas import ContextSettings
from aibot.services.context_service import ContextService
from aibot.services.gemini_service import GeminiService
from aibot.services.media_service import MediaService
from aibot.services.orchestrator import ConversationOrchestrator
from aibot.services.storage import create_storage
from aibot.services.telegram_bot import TelegramBotService
from aibot.services.user_settings_service import UserSettingsService

logger = logging.getLogger("telegram_runner")


async def poll(bot: Bot, service: TelegramBotService) -> None:
    """Long-poll Telegram and hand every update to the service."""
    offset = 0
    while True:
        try:
            updates = await bot.get_updates(offset=offset, timeout=10)
        except TelegramAPIError as e:
            logger.warning(f"Polling error: {e}")
            await asyncio.sleep(5)
            continue

        for update in updates:
            offset = update.update_id + 1
            try:
                await service.process_update(update)
            except Exception:
                # One broken update must not stop the loop
                logger.exception(f"Update {update.update_id} processing failed")

        # Small sleep prevents a tight loop if get_updates returns immediately
        await asyncio.sleep(0.1)


async def main() -> None:
    setup_logging(settings.log_level)
    init_sentry()

    if not settings.bot_token:
        logger.error("BOT_TOKEN is not set")
        return
    if not settings.gemini_api_key:
        logger.error("GEMINI_API_KEY is not set")
        return

    load_translations()
    storage = await create_storage(settings)
    logger.info(f"Storage ready: {settings.storage_backend}")

    default_context = ContextSettings(
        max_messages=settings.context_max_messages,
        max_tokens=settings.context_max_tokens,
    )
    settings_service = UserSettingsService(storage, default_context=default_context)
    context_service = ContextService(storage)
    backend = GeminiService()
    orchestrator = ConversationOrchestrator(
        settings_service,
        context_service,
        backend,
        MediaService(backend),
    )

    bot = Bot(token=settings.bot_token)
    service = TelegramBotService(bot, orchestrator, settings_service, context_service)

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=settings.port, log_level="warning"))
    server_task = asyncio.create_task(server.serve())
    logger.info(f"Health server listening on port {settings.port}")

    try:
        await bot.delete_webhook(drop_pending_updates=True)
        logger.info("Starting polling loop...")
        await poll(bot, service)
    finally:
        server.should_exit = True
        await server_task
        await bot.session.close()
        await storage.close()
        logger.info("Bot stopped")


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Bot stopped!")
