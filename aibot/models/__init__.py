from __future__ import annotations
# Models module - import all models to register them with SQLAlchemy

from aibot.models.user_context import ContextMessageRecord
from aibot.models.user_settings import UserSettingsRecord

__all__ = [
    "ContextMessageRecord",
    "UserSettingsRecord",
]
