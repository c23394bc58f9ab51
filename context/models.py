"""Models for the compressed conversation context"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from chat.models import Message


@dataclass(frozen=True)
class ContextSummary:
    """Summary standing in for a block of older messages"""
    content: str
    original_message_count: int
    estimated_tokens: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "original_message_count": self.original_message_count,
            "estimated_tokens": self.estimated_tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextSummary":
        return cls(
            id=data["id"],
            content=data["content"],
            original_message_count=int(data["original_message_count"]),
            estimated_tokens=int(data.get("estimated_tokens", 0)),
        )


@dataclass
class ConversationWindow:
    """Recent uncompressed messages plus the summaries of everything older

    Every message is either in ``recent`` or folded into exactly one summary.
    """
    recent: List[Message] = field(default_factory=list)
    summaries: List[ContextSummary] = field(default_factory=list)

    @property
    def recent_count(self) -> int:
        return len(self.recent)

    def append(self, message: Message) -> None:
        self.recent.append(message)

    def remove_last(self, message_id: str) -> bool:
        """Remove the newest message if it has the given id"""
        if self.recent and self.recent[-1].id == message_id:
            self.recent.pop()
            return True
        return False

    def clear(self) -> None:
        self.recent.clear()
        self.summaries.clear()


@dataclass(frozen=True)
class ContextStats:
    """Read-only snapshot of the context for display"""
    recent_count: int
    summary_block_count: int
    total_original_messages: int
    estimated_tokens_saved: int
    current_context_tokens: int
