from __future__ import annotations
"""AI Telegram assistant with per-user memory and response styles."""

__version__ = "1.0.0"
