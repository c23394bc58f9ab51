"""Domain models for chat messages, usage accounting and settings"""

import datetime
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

import settings


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"


class OutputFormat(str, Enum):
    """Reply format requested from the model"""
    NONE = "none"
    JSON = "json"


# Model name on the wire -> display name
KNOWN_MODELS = {
    "GigaChat": "GigaChat",
    "GigaChat-Pro": "GigaChat Pro",
    "GigaChat-Max": "GigaChat Max",
}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage for one exchange

    Attributes:
        estimated_prompt: Prompt tokens estimated locally
        estimated_completion: Completion tokens estimated locally
        actual_prompt: Prompt tokens reported by the provider
        actual_completion: Completion tokens reported by the provider
        actual_total: Total tokens reported by the provider
    """
    estimated_prompt: int = 0
    estimated_completion: int = 0
    actual_prompt: Optional[int] = None
    actual_completion: Optional[int] = None
    actual_total: Optional[int] = None

    @property
    def estimated_total(self) -> int:
        return self.estimated_prompt + self.estimated_completion

    @property
    def has_actual_data(self) -> bool:
        return self.actual_prompt is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estimated_prompt": self.estimated_prompt,
            "estimated_completion": self.estimated_completion,
            "actual_prompt": self.actual_prompt,
            "actual_completion": self.actual_completion,
            "actual_total": self.actual_total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenUsage":
        return cls(
            estimated_prompt=data.get("estimated_prompt", 0),
            estimated_completion=data.get("estimated_completion", 0),
            actual_prompt=data.get("actual_prompt"),
            actual_completion=data.get("actual_completion"),
            actual_total=data.get("actual_total"),
        )


@dataclass(frozen=True)
class Message:
    """A single conversation message

    Status moves Sending -> Sent or Sending -> Error. A Sent message is final.
    """
    content: str
    role: MessageRole
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime.datetime = field(default_factory=_utcnow)
    status: MessageStatus = MessageStatus.SENDING
    token_usage: Optional[TokenUsage] = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(content=content, role=MessageRole.USER)

    @classmethod
    def assistant(cls, content: str, token_usage: Optional[TokenUsage] = None) -> "Message":
        return cls(
            content=content,
            role=MessageRole.ASSISTANT,
            status=MessageStatus.SENT,
            token_usage=token_usage,
        )

    def with_status(self, status: MessageStatus) -> "Message":
        """Return a copy with a new status

        Raises:
            ValueError: If this message has already been sent
        """
        if self.status == MessageStatus.SENT and status != MessageStatus.SENT:
            raise ValueError(f"Message {self.id} is already sent and cannot change status")
        return replace(self, status=status)

    def to_api_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        usage = data.get("token_usage")
        return cls(
            id=data["id"],
            role=MessageRole(data["role"]),
            content=data["content"],
            timestamp=datetime.datetime.fromisoformat(data["timestamp"]),
            status=MessageStatus(data.get("status", MessageStatus.SENT.value)),
            token_usage=TokenUsage.from_dict(usage) if usage else None,
        )


@dataclass(frozen=True)
class ChatSettings:
    """User-facing chat configuration, read-only to the core"""
    model: str = settings.DEFAULT_MODEL
    temperature: float = settings.DEFAULT_TEMPERATURE
    max_tokens: int = settings.DEFAULT_MAX_TOKENS
    system_prompt: str = settings.DEFAULT_SYSTEM_PROMPT
    output_format: OutputFormat = OutputFormat.NONE
    context_compression_enabled: bool = settings.DEFAULT_COMPRESSION_ENABLED
    compression_threshold: int = settings.DEFAULT_COMPRESSION_THRESHOLD
    recent_messages_count: int = settings.DEFAULT_RECENT_MESSAGES_COUNT
    stream: bool = settings.DEFAULT_STREAM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "system_prompt": self.system_prompt,
            "output_format": self.output_format.value,
            "context_compression_enabled": self.context_compression_enabled,
            "compression_threshold": self.compression_threshold,
            "recent_messages_count": self.recent_messages_count,
            "stream": self.stream,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSettings":
        """Build settings from stored data, falling back to defaults per field"""
        defaults = cls()
        output_format = data.get("output_format", defaults.output_format.value)
        try:
            output_format = OutputFormat(output_format)
        except ValueError:
            output_format = defaults.output_format
        return cls(
            model=data.get("model", defaults.model),
            temperature=float(data.get("temperature", defaults.temperature)),
            max_tokens=int(data.get("max_tokens", defaults.max_tokens)),
            system_prompt=data.get("system_prompt", defaults.system_prompt),
            output_format=output_format,
            context_compression_enabled=bool(
                data.get("context_compression_enabled", defaults.context_compression_enabled)
            ),
            compression_threshold=int(data.get("compression_threshold", defaults.compression_threshold)),
            recent_messages_count=int(data.get("recent_messages_count", defaults.recent_messages_count)),
            stream=bool(data.get("stream", defaults.stream)),
        )


@dataclass(frozen=True)
class SendMessageResult:
    """Outcome of a successful send

    Attributes:
        message: The assistant reply
        compressed_count: Messages folded into a new summary during this send
    """
    message: Message
    compressed_count: int = 0
