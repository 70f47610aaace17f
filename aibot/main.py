"""AI Telegram Bot - health API served next to the polling loop."""
import logging
from datetime import datetime, timezone

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from aibot.core.config import settings as app_settings

logger = logging.getLogger("api")


def init_sentry() -> None:
    """Enable Sentry error monitoring when a DSN is configured."""
    if app_settings.sentry_dsn:
        sentry_sdk.init(
            dsn=app_settings.sentry_dsn,
            traces_sample_rate=1.0,
        )


# Create FastAPI app
app = FastAPI(
    title=app_settings.app_name,
    description="Telegram бот с интеграцией Gemini API",
    version="1.0.0",
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global handler to catch all unhandled exceptions."""
    logger.error(f"Global Exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal Server Error",
            "error_type": type(exc).__name__,
        },
    )


@app.get("/", response_class=PlainTextResponse)
async def root():
    """Root endpoint."""
    return "AI Telegram Bot is running! 🤖"


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": app_settings.app_name,
    }
