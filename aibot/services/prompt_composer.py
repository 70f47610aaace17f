from __future__ import annotations
"""Builds the model-ready prompt from style, context and user request."""
from typing import Optional

from aibot.services.styles import StyleRegistry, style_registry

REQUEST_LABEL = "Запрос пользователя"


def compose_prompt(
    user_request: str,
    style_key: Optional[str] = None,
    formatted_context: str = "",
    registry: Optional[StyleRegistry] = None
) -> str:
    """
    Style prompt, then the context block verbatim, then the user request.

    Nothing is truncated here; the context block is already budgeted.
    """
    style_prompt = (registry or style_registry).get_prompt(style_key)
    return f"{style_prompt}{formatted_context or ''}\n\n{REQUEST_LABEL}: {user_request}"
