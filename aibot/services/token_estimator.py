from __future__ import annotations
"""Cheap token-count approximation used for context budgets."""
import math
from typing import Callable

TOKENS_PER_WORD = 0.75

TokenEstimator = Callable[[str], int]


def estimate_tokens(text: str) -> int:
    """
    Approximate the number of model tokens in ``text``.

    Word count (whitespace-separated) times 0.75, rounded up. Not a real
    tokenizer; callers only rely on it being deterministic and >= 0.
    """
    words = len(text.split()) if text else 0
    return math.ceil(words * TOKENS_PER_WORD)
