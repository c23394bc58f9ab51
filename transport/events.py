"""Events produced while consuming a streaming chat response"""

from dataclasses import dataclass
from typing import Optional, Union

from .models import Usage


@dataclass(frozen=True)
class StreamContent:
    """Incremental reply text"""
    text: str


@dataclass(frozen=True)
class StreamFinished:
    """The model reported why it stopped"""
    reason: str
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class StreamError:
    """Transport-level failure; always the last event"""
    cause: Exception


@dataclass(frozen=True)
class StreamDone:
    """The ``[DONE]`` sentinel; always the last event"""


StreamEvent = Union[StreamContent, StreamFinished, StreamError, StreamDone]
