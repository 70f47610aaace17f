from __future__ import annotations
"""Logging setup and user-activity records."""
import logging
import sys
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

activity_logger = logging.getLogger("user_activity")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for console output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    # aiogram and httpx are chatty at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)


def log_user_activity(
    user_id: int,
    username: Optional[str],
    action: str,
    **details: Any
) -> None:
    """
    Record a user action.

    Details are attached via ``extra`` so structured handlers can pick them up;
    the message itself stays human-readable.
    """
    activity_logger.info(
        f"user={user_id} ({username or '-'}) action={action} {details or ''}".rstrip(),
        extra={
            "user_id": user_id,
            "username": username,
            "action": action,
            "details": details,
        },
    )
