import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from aibot.core.exceptions import StorageError, ValidationError
from aibot.schemas import ContextSettings, MessageRole, MessageType
from aibot.services.context_service import ContextService


@pytest.mark.asyncio
async def test_messages_come_back_in_append_order(storage):
    service = ContextService(storage)

    await service.add_user_message(1, "Привет")
    await service.add_assistant_message(1, "Здравствуйте!")
    await service.add_user_message(1, "Как дела?")

    context = await service.get_user_context(1, ContextSettings())

    assert [m.content for m in context] == ["Привет", "Здравствуйте!", "Как дела?"]
    assert [m.role for m in context] == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER]


@pytest.mark.asyncio
async def test_added_message_has_token_count_and_id(storage):
    service = ContextService(storage)

    message = await service.add_user_message(1, "раз два три четыре")

    assert message.token_count == 3
    assert message.id
    assert message.message_type == MessageType.TEXT


@pytest.mark.asyncio
async def test_count_budget_keeps_most_recent(storage):
    service = ContextService(storage)
    for i in range(1, 6):
        await service.add_user_message(1, f"Сообщение {i}")

    context = await service.get_user_context(1, ContextSettings(max_messages=2))

    assert [m.content for m in context] == ["Сообщение 4", "Сообщение 5"]


@pytest.mark.asyncio
async def test_token_budget_drops_oldest_first(storage):
    service = ContextService(storage)
    # 8 words -> 6 tokens each
    for i in range(3):
        await service.add_user_message(1, " ".join([f"слово{i}"] * 8))

    context = await service.get_user_context(1, ContextSettings(max_tokens=12))

    assert len(context) == 2
    assert context[0].content.startswith("слово1")
    assert context[1].content.startswith("слово2")
    assert sum(m.token_count for m in context) <= 12


@pytest.mark.asyncio
async def test_token_budget_stops_at_first_overflow(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "коротко")
    await service.add_user_message(1, " ".join(["длинно"] * 40))

    context = await service.get_user_context(1, ContextSettings(max_tokens=10))

    assert context == []


@pytest.mark.asyncio
async def test_disabled_context_is_empty(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "Привет")
    settings = ContextSettings(enabled=False)

    assert await service.get_user_context(1, settings) == []
    assert await service.format_context_for_prompt(1, settings) == ""


@pytest.mark.asyncio
async def test_clear_is_idempotent(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "Привет")
    await service.add_assistant_message(1, "Здравствуйте!")

    assert await service.clear_user_context(1) == 2
    assert await service.clear_user_context(1) == 0

    stats = await service.get_user_context_stats(1)
    assert stats.message_count == 0
    assert stats.oldest_message_timestamp is None


@pytest.mark.asyncio
async def test_clear_only_touches_one_user(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "первый")
    await service.add_user_message(2, "второй")

    await service.clear_user_context(1)

    context = await service.get_user_context(2, ContextSettings())
    assert [m.content for m in context] == ["второй"]


@pytest.mark.asyncio
async def test_auto_cleanup_bounds_persisted_log(storage):
    service = ContextService(storage)
    settings = ContextSettings(max_messages=3)

    for i in range(7):
        await service.add_user_message(1, f"Сообщение {i}")
        await service.auto_cleanup_context(1, settings)
        stats = await service.get_user_context_stats(1)
        assert stats.message_count <= 3

    context = await service.get_user_context(1, ContextSettings(max_messages=10))
    assert [m.content for m in context] == ["Сообщение 4", "Сообщение 5", "Сообщение 6"]


@pytest.mark.asyncio
async def test_auto_cleanup_disabled_keeps_everything(storage):
    service = ContextService(storage)
    for i in range(5):
        await service.add_user_message(1, f"Сообщение {i}")

    removed = await service.auto_cleanup_context(1, ContextSettings(max_messages=2, auto_cleanup=False))

    assert removed == 0
    assert (await service.get_user_context_stats(1)).message_count == 5


@pytest.mark.asyncio
async def test_format_marks_non_text_types(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "Хорошо", MessageType.VOICE)
    await service.add_assistant_message(1, "Отлично")

    formatted = await service.format_context_for_prompt(1, ContextSettings())

    assert formatted.startswith("\n\nКонтекст предыдущих сообщений:\n")
    assert "Пользователь [voice]: Хорошо" in formatted
    assert "Ассистент: Отлично" in formatted
    assert "[text]" not in formatted


@pytest.mark.asyncio
async def test_stats_cover_full_log(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "раз два три четыре")
    await service.add_assistant_message(1, "пять шесть")

    stats = await service.get_user_context_stats(1)

    assert stats.message_count == 2
    assert stats.estimated_tokens == 3 + 2
    assert stats.oldest_message_timestamp <= stats.newest_message_timestamp


@pytest.mark.asyncio
async def test_global_stats(storage):
    service = ContextService(storage)
    await service.add_user_message(1, "a")
    await service.add_assistant_message(1, "b")
    await service.add_user_message(2, "c")

    stats = await service.get_global_stats()

    assert stats.total_users == 2
    assert stats.total_messages == 3
    assert stats.average_messages_per_user == 1.5


@pytest.mark.asyncio
async def test_global_stats_without_users(storage):
    stats = await ContextService(storage).get_global_stats()

    assert stats.total_users == 0
    assert stats.total_messages == 0
    assert stats.average_messages_per_user == 0


@pytest.mark.asyncio
async def test_timestamps_never_go_back(storage):
    start = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    ticks = iter([start, start - timedelta(seconds=30)])
    service = ContextService(storage, clock=lambda: next(ticks))

    first = await service.add_user_message(1, "раз")
    second = await service.add_user_message(1, "два")

    assert second.timestamp >= first.timestamp


@pytest.mark.asyncio
async def test_custom_estimator_is_used(storage):
    service = ContextService(storage, estimator=len)

    message = await service.add_user_message(1, "abcdef")

    assert message.token_count == 6


@pytest.mark.asyncio
async def test_missing_user_id_is_rejected(storage):
    service = ContextService(storage)

    with pytest.raises(ValidationError):
        await service.add_user_message(None, "Привет")


@pytest.mark.asyncio
async def test_reads_degrade_when_storage_fails(broken_storage):
    service = ContextService(broken_storage)

    assert await service.get_user_context(1, ContextSettings()) == []
    assert await service.format_context_for_prompt(1, ContextSettings()) == ""
    assert (await service.get_user_context_stats(1)).message_count == 0
    assert (await service.get_global_stats()).total_users == 0


@pytest.mark.asyncio
async def test_writes_raise_when_storage_fails(broken_storage):
    service = ContextService(broken_storage)

    with pytest.raises(StorageError):
        await service.add_user_message(1, "Привет")
    with pytest.raises(StorageError):
        await service.clear_user_context(1)


@pytest.mark.asyncio
async def test_malformed_rows_degrade_reads(sql_storage):
    service = ContextService(sql_storage)
    await service.add_user_message(1, "Привет")

    async with sql_storage.session_maker() as db:
        await db.execute(text("UPDATE user_contexts SET message_type = 'sticker'"))
        await db.commit()

    with pytest.raises(StorageError):
        await sql_storage.get_messages(1)

    assert await service.get_user_context(1, ContextSettings()) == []
    assert await service.format_context_for_prompt(1, ContextSettings()) == ""
    assert (await service.get_user_context_stats(1)).message_count == 0


@pytest.mark.asyncio
async def test_timestamps_follow_stored_log_across_instances(storage):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await ContextService(storage, clock=lambda: now).add_user_message(1, "раз")

    later = ContextService(storage, clock=lambda: now - timedelta(minutes=5))
    message = await later.add_assistant_message(1, "два")

    assert message.timestamp == now


@pytest.mark.asyncio
async def test_locks_are_released_after_use(storage):
    service = ContextService(storage)

    await asyncio.gather(*(service.add_user_message(user_id, "привет") for user_id in range(10)))
    await service.clear_user_context(3)
    await service.auto_cleanup_context(4, ContextSettings(max_messages=1))

    assert len(service._locks) == 0
