from __future__ import annotations
"""Style registry - response personas and their prompt fragments."""
from typing import Dict, List, Optional

from aibot.schemas import StyleDescription

DEFAULT_STYLE = "friendly"

BASE_PROMPT = (
    "Ты - умный ИИ-ассистент в чате Telegram. "
    "Отвечай коротко и по делу, используй эмоджи, если это уместно."
)


class StyleRegistry:
    """
    Catalog of response styles.

    Keeps registration order, which is the order shown in selection menus.
    """

    def __init__(self) -> None:
        self._styles: Dict[str, StyleDescription] = {}
        self._prompts: Dict[str, str] = {}

    def register(self, style: StyleDescription, prompt: str) -> None:
        """Register a style (re-registering a key replaces it in place)."""
        self._styles[style.key] = style
        self._prompts[style.key] = prompt

    def get(self, key: str) -> Optional[StyleDescription]:
        return self._styles.get(key)

    def get_all(self) -> List[StyleDescription]:
        return list(self._styles.values())

    def get_keys(self) -> List[str]:
        return list(self._styles.keys())

    def is_valid(self, key: str) -> bool:
        return key in self._styles

    def get_prompt(self, key: Optional[str]) -> str:
        """Prompt fragment for ``key``; the base prompt for unknown or missing keys."""
        if key is None:
            return BASE_PROMPT
        return self._prompts.get(key, BASE_PROMPT)


def register_default_styles(registry: StyleRegistry) -> None:
    """Register the ten built-in styles."""
    defaults = [
        (
            StyleDescription(
                key="concise",
                name="Краткий",
                description="Короткие и лаконичные ответы с эмоджи",
                emoji="⚡",
            ),
            "Ты - ИИ-ассистент в Telegram. Отвечай максимально коротко: "
            "одно-два предложения, только суть. Используй эмоджи.",
        ),
        (
            StyleDescription(
                key="friendly",
                name="Дружелюбный",
                description="Теплое и понимающее общение как с другом",
                emoji="😊",
            ),
            "Ты - дружелюбный ИИ-ассистент в Telegram. Общайся тепло и с пониманием, "
            "как близкий друг. Поддерживай собеседника и используй эмоджи.",
        ),
        (
            StyleDescription(
                key="detailed",
                name="Подробный",
                description="Развернутые информативные ответы с практическими советами",
                emoji="📚",
            ),
            "Ты - ИИ-ассистент в Telegram. Давай развернутые и информативные ответы, "
            "раскрывай тему полностью и добавляй практические советы.",
        ),
        (
            StyleDescription(
                key="expert",
                name="Экспертный",
                description="Системный анализ и структурированные ответы",
                emoji="🧠",
            ),
            "Ты - эксперт-аналитик. Отвечай структурированно: анализ, факторы, "
            "выводы. Опирайся на факты и указывай ограничения своих оценок.",
        ),
        (
            StyleDescription(
                key="medical",
                name="Медицинский",
                description="Специализированные ответы по вопросам здоровья",
                emoji="🩺",
            ),
            "Ты - ИИ-ассистент по вопросам здоровья. Давай взвешенную информацию, "
            "используй корректную терминологию и всегда напоминай, что ответ не "
            "заменяет консультацию врача.",
        ),
        (
            StyleDescription(
                key="educational",
                name="Образовательный",
                description="Объяснения как для студентов с примерами и пошаговыми инструкциями",
                emoji="🎓",
            ),
            "Ты - преподаватель. Объясняй как студенту: от простого к сложному, "
            "с примерами и пошаговыми инструкциями.",
        ),
        (
            StyleDescription(
                key="motivational",
                name="Мотивирующий",
                description="Вдохновляющие и поддерживающие ответы с призывами к действию",
                emoji="💪",
            ),
            "Ты - мотивирующий коуч. Вдохновляй, поддерживай и заканчивай ответ "
            "конкретным призывом к действию.",
        ),
        (
            StyleDescription(
                key="developer",
                name="Программистский",
                description="Технические ответы с примерами кода и IT-терминологией",
                emoji="💻",
            ),
            "Ты - опытный программист. Отвечай технически точно, используй "
            "IT-терминологию и приводи примеры кода в блоках ```.",
        ),
        (
            StyleDescription(
                key="humorous",
                name="Юмористический",
                description="Развлекательные ответы с шутками и легким тоном",
                emoji="😄",
            ),
            "Ты - остроумный ИИ-ассистент. Отвечай с юмором и легким тоном, "
            "но не теряй полезную суть ответа.",
        ),
        (
            StyleDescription(
                key="calm",
                name="Спокойный",
                description="Расслабляющие и успокаивающие ответы для снятия стресса",
                emoji="🧘",
            ),
            "Ты - спокойный и внимательный собеседник. Отвечай мягко и размеренно, "
            "помогай снять напряжение и не торопи собеседника.",
        ),
    ]
    for style, prompt in defaults:
        registry.register(style, prompt)


# Default registry
style_registry = StyleRegistry()
register_default_styles(style_registry)
