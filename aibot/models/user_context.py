from __future__ import annotations
"""Dialogue turn model for per-user conversation context."""
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from aibot.core.database import Base


class ContextMessageRecord(Base):
    """Stores one user or assistant turn. Rows are never updated."""
    __tablename__ = "user_contexts"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_user_contexts_role"),
    )

    # Insertion sequence; breaks ties between equal timestamps
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Message identifier (uuid4 hex string)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # Message role (user or assistant)
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")

    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<ContextMessageRecord {self.role}: {self.content[:50]}...>"
