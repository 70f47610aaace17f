from __future__ import annotations
"""Persistence backends."""
from aibot.core.config import Settings
from aibot.core.database import create_engine, init_db
from aibot.services.storage.base import Storage
from aibot.services.storage.memory import InMemoryStorage
from aibot.services.storage.sql import SqlStorage


async def create_storage(app_settings: Settings) -> Storage:
    """Build the backend selected by ``storage_backend`` and prepare its schema."""
    if app_settings.storage_backend == "memory":
        return InMemoryStorage()

    if app_settings.storage_backend != "sql":
        raise ValueError(f"Unknown storage backend: {app_settings.storage_backend}")

    engine = create_engine(app_settings.database_url, echo=app_settings.debug)
    await init_db(engine)
    return SqlStorage(engine)


__all__ = [
    "InMemoryStorage",
    "SqlStorage",
    "Storage",
    "create_storage",
]
