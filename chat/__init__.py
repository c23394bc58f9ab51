"""Chat domain models; the orchestrator lives in ``chat.orchestrator``"""

from .models import (
    ChatSettings,
    KNOWN_MODELS,
    Message,
    MessageRole,
    MessageStatus,
    OutputFormat,
    SendMessageResult,
    TokenUsage,
)

__all__ = [
    "ChatSettings",
    "KNOWN_MODELS",
    "Message",
    "MessageRole",
    "MessageStatus",
    "OutputFormat",
    "SendMessageResult",
    "TokenUsage",
]
