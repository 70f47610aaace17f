from __future__ import annotations
"""User settings model - one row per Telegram user."""
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from aibot.core.database import Base


class UserSettingsRecord(Base):
    """
    Persisted style choice and context budget of a user.

    Context columns are nullable so rows written before context settings
    existed can be detected and backfilled on load.
    """
    __tablename__ = "user_settings"

    # Telegram user id
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    username: Mapped[Optional[str]] = mapped_column(String(255))

    response_style: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="friendly"
    )

    # Context settings (flattened)
    context_enabled: Mapped[Optional[bool]] = mapped_column(Boolean)
    context_max_messages: Mapped[Optional[int]] = mapped_column(Integer)
    context_max_tokens: Mapped[Optional[int]] = mapped_column(Integer)
    context_auto_cleanup: Mapped[Optional[bool]] = mapped_column(Boolean)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<UserSettingsRecord {self.user_id}: {self.response_style}>"
