"""Conversation context: window model, compression, token estimation"""

from .models import ContextStats, ContextSummary, ConversationWindow
from .token_estimator import estimate_tokens, estimate_tokens_for_messages
from .compression import ContextWindowManager

__all__ = [
    "ContextStats",
    "ContextSummary",
    "ConversationWindow",
    "estimate_tokens",
    "estimate_tokens_for_messages",
    "ContextWindowManager",
]
