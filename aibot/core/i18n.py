from __future__ import annotations
"""User-facing texts loaded from JSON locale files."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from aibot.core.config import settings

logger = logging.getLogger(__name__)

# Locales directory
LOCALES_DIR = Path(__file__).parent.parent / "locales"

SUPPORTED_LANGUAGES = ("ru",)

# Loaded translations cache
_translations: Dict[str, Dict[str, Any]] = {}


def load_translations() -> None:
    """Load all translation files."""
    for lang in SUPPORTED_LANGUAGES:
        locale_file = LOCALES_DIR / f"{lang}.json"
        if locale_file.exists():
            with open(locale_file, "r", encoding="utf-8") as f:
                _translations[lang] = json.load(f)
        else:
            logger.warning(f"Locale file not found: {locale_file}")
            _translations[lang] = {}


def get_text(key: str, lang: Optional[str] = None, **kwargs: Any) -> str:
    """
    Get translated text by key.

    Args:
        key: Dot-separated key path (e.g., "bot.welcome")
        lang: Language code, defaults to settings
        **kwargs: Format string arguments

    Returns:
        Translated string or key if not found
    """
    if not _translations:
        load_translations()

    language = lang or settings.default_language
    translations = _translations.get(language) or _translations.get(settings.default_language, {})

    # Navigate nested keys
    value: Any = translations
    for part in key.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        else:
            return key

    if not isinstance(value, str):
        return key

    if kwargs:
        try:
            return value.format(**kwargs)
        except (KeyError, IndexError):
            return value

    return value


def t(key: str, lang: Optional[str] = None, **kwargs: Any) -> str:
    """Shorthand for get_text."""
    return get_text(key, lang, **kwargs)


def error_message(kind: str, scope: Optional[str] = None, lang: Optional[str] = None) -> str:
    """
    User-facing text for a backend error kind.

    A scoped text ("errors.image.<kind>") wins over the generic one.
    """
    if scope:
        key = f"errors.{scope}.{kind}"
        text = get_text(key, lang)
        if text != key:
            return text
    return get_text(f"errors.{kind}", lang)
