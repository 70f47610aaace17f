from unittest.mock import AsyncMock, MagicMock

import pytest

from aibot.core.exceptions import BackendError, BackendErrorKind, StorageError, ValidationError
from aibot.schemas import ContextSettings, MessageRole, MessageType
from aibot.services.context_service import ContextService
from aibot.services.media_service import AudioKind, MediaFile, MediaProcessResult
from aibot.services.orchestrator import ConversationOrchestrator, InboundMessage
from aibot.services.storage import InMemoryStorage
from aibot.services.styles import style_registry
from aibot.services.user_settings_service import UserSettingsService


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def backend():
    backend = MagicMock()
    backend.generate_text = AsyncMock(return_value="Ответ ассистента")
    return backend


@pytest.fixture
def media_service():
    media = MagicMock()
    media.process_image = AsyncMock(return_value=MediaProcessResult(success=True, message="На фото кот"))
    media.process_audio = AsyncMock(return_value=MediaProcessResult(success=True, message="Транскрипция"))
    return media


@pytest.fixture
def orchestrator(storage, backend, media_service):
    return ConversationOrchestrator(
        UserSettingsService(storage),
        ContextService(storage),
        backend,
        media_service,
    )


def _text(content, user_id=1):
    return InboundMessage(user_id=user_id, chat_id=user_id, username="alice", content=content)


@pytest.mark.asyncio
async def test_text_turn_is_answered_and_recorded(orchestrator, backend):
    reply = await orchestrator.handle_text(_text("Привет"))

    assert reply == "Ответ ассистента"
    prompt = backend.generate_text.await_args.args[0]
    assert prompt.startswith(style_registry.get_prompt("friendly"))
    assert prompt.endswith("Запрос пользователя: Привет")

    context = await orchestrator.context_service.get_user_context(1, ContextSettings())
    assert [(m.role, m.content) for m in context] == [
        (MessageRole.USER, "Привет"),
        (MessageRole.ASSISTANT, "Ответ ассистента"),
    ]


@pytest.mark.asyncio
async def test_second_turn_sees_first_in_prompt(orchestrator, backend):
    await orchestrator.handle_text(_text("Меня зовут Анна"))
    await orchestrator.handle_text(_text("Как меня зовут?"))

    prompt = backend.generate_text.await_args.args[0]
    assert "Контекст предыдущих сообщений:" in prompt
    assert "Пользователь: Меня зовут Анна" in prompt
    assert "Ассистент: Ответ ассистента" in prompt


@pytest.mark.asyncio
async def test_style_is_applied(orchestrator, backend):
    await orchestrator.settings_service.update_user_style(1, "developer")

    await orchestrator.handle_text(_text("Что такое async?"))

    assert backend.generate_text.await_args.args[0].startswith(style_registry.get_prompt("developer"))


@pytest.mark.asyncio
async def test_disabled_context_records_nothing(orchestrator, backend):
    await orchestrator.settings_service.update_user_context_settings(1, {"enabled": False})

    await orchestrator.handle_text(_text("Привет"))
    await orchestrator.handle_text(_text("Ещё раз"))

    assert "Контекст" not in backend.generate_text.await_args.args[0]
    stats = await orchestrator.context_service.get_user_context_stats(1)
    assert stats.message_count == 0


@pytest.mark.asyncio
async def test_auto_cleanup_runs_after_each_turn(orchestrator):
    await orchestrator.settings_service.update_user_context_settings(1, {"max_messages": 3})

    for i in range(4):
        await orchestrator.handle_text(_text(f"Сообщение {i}"))

    stats = await orchestrator.context_service.get_user_context_stats(1)
    assert stats.message_count == 3


@pytest.mark.asyncio
async def test_backend_error_becomes_user_message(orchestrator, backend):
    backend.generate_text.side_effect = BackendError("quota", BackendErrorKind.QUOTA_EXCEEDED)

    reply = await orchestrator.handle_text(_text("Привет"))

    assert "квота" in reply
    stats = await orchestrator.context_service.get_user_context_stats(1)
    assert stats.message_count == 0


@pytest.mark.asyncio
async def test_empty_generation(orchestrator, backend):
    backend.generate_text.return_value = ""

    reply = await orchestrator.handle_text(_text("Привет"))

    assert reply == "Извините, не удалось сгенерировать ответ."


@pytest.mark.asyncio
async def test_storage_write_failure_still_answers(storage, backend, media_service):
    context_service = ContextService(storage)
    context_service.add_user_message = AsyncMock(side_effect=StorageError("disk full"))
    orchestrator = ConversationOrchestrator(UserSettingsService(storage), context_service, backend, media_service)

    reply = await orchestrator.handle_text(_text("Привет"))

    assert reply == "Ответ ассистента"


@pytest.mark.asyncio
async def test_settings_creation_failure_falls_back_to_defaults(storage, backend, media_service):
    settings_service = UserSettingsService(storage)
    settings_service.get_user_settings = AsyncMock(side_effect=StorageError("read only"))
    orchestrator = ConversationOrchestrator(settings_service, ContextService(storage), backend, media_service)

    reply = await orchestrator.handle_text(_text("Привет"))

    assert reply == "Ответ ассистента"
    assert backend.generate_text.await_args.args[0].startswith(style_registry.get_prompt("friendly"))


@pytest.mark.asyncio
async def test_missing_user_id_is_rejected(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.handle_text(InboundMessage(user_id=None, chat_id=1, content="Привет"))


@pytest.mark.asyncio
async def test_image_turn_recorded_with_caption(orchestrator, media_service):
    message = InboundMessage(
        user_id=1, chat_id=1, content="Кто это?",
        media=MediaFile(file_id="p", file_url="https://x/p"),
    )

    reply = await orchestrator.handle_image(message)

    assert reply == "На фото кот"
    extra_prompt = media_service.process_image.await_args.args[1]
    assert extra_prompt.endswith("Запрос пользователя: Кто это?")

    context = await orchestrator.context_service.get_user_context(1, ContextSettings())
    assert context[0].message_type == MessageType.IMAGE
    assert context[0].content == "Кто это?"
    assert context[1].content == "На фото кот"


@pytest.mark.asyncio
async def test_image_without_caption(orchestrator):
    message = InboundMessage(user_id=1, chat_id=1, media=MediaFile(file_id="p", file_url="https://x/p"))

    await orchestrator.handle_image(message)

    context = await orchestrator.context_service.get_user_context(1, ContextSettings())
    assert context[0].content == "Изображение"


@pytest.mark.asyncio
async def test_voice_turn_recorded(orchestrator, media_service):
    message = InboundMessage(
        user_id=1, chat_id=1,
        media=MediaFile(file_id="v", file_url="https://x/v", duration=12),
    )

    reply = await orchestrator.handle_audio(message, AudioKind.VOICE)

    assert reply == "Транскрипция"
    assert media_service.process_audio.await_args.args[1] == AudioKind.VOICE
    context = await orchestrator.context_service.get_user_context(1, ContextSettings())
    assert context[0].message_type == MessageType.VOICE
    assert context[0].content == "Голосовое сообщение (12 сек)"


@pytest.mark.asyncio
async def test_failed_audio_is_not_recorded(orchestrator, media_service):
    media_service.process_audio.return_value = MediaProcessResult(success=False, message="Ошибка", error="x")
    message = InboundMessage(
        user_id=1, chat_id=1,
        media=MediaFile(file_id="a", file_url="https://x/a", file_name="song.mp3"),
    )

    reply = await orchestrator.handle_audio(message, AudioKind.AUDIO_FILE)

    assert reply == "Ошибка"
    assert (await orchestrator.context_service.get_user_context_stats(1)).message_count == 0


@pytest.mark.asyncio
async def test_turn_locks_are_released(orchestrator):
    for user_id in range(5):
        await orchestrator.handle_text(_text("Привет", user_id=user_id))

    assert len(orchestrator._locks) == 0
    assert len(orchestrator.context_service._locks) == 0
    assert len(orchestrator.settings_service._locks) == 0
