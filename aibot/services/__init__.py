from __future__ import annotations
# Services module - stores, backend adapters and the Telegram transport
