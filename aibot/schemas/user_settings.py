from __future__ import annotations
"""User settings and style registry schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from aibot.schemas.context import ContextSettings


class UserSettings(BaseModel):
    """Style choice and context configuration of one user."""
    model_config = ConfigDict(validate_assignment=True)

    user_id: int
    username: Optional[str] = None
    response_style: str = "friendly"
    context_settings: ContextSettings = Field(default_factory=ContextSettings)
    created_at: datetime
    updated_at: datetime


class StyleDescription(BaseModel):
    """Registry entry shown in the style selection menu."""
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str
    emoji: str
