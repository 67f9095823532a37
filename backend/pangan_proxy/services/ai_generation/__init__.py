"""AI generation: NekoLabs (primary) + Gemini (chat fallback)."""

from .service import (
    GeminiChatFallback,
    NekoLabsService,
)

__all__ = [
    "GeminiChatFallback",
    "NekoLabsService",
]
