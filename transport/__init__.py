"""Chat completions transport: wire models, stream decoding, HTTP client"""

from .chat_client import ChatTransport, decode_error_message, new_request_id
from .events import StreamContent, StreamDone, StreamError, StreamEvent, StreamFinished
from .models import (
    ApiErrorBody,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    StreamChunk,
    Usage,
)
from .stream_decoder import StreamFrameDecoder

__all__ = [
    "ChatTransport",
    "decode_error_message",
    "new_request_id",
    "StreamContent",
    "StreamDone",
    "StreamError",
    "StreamEvent",
    "StreamFinished",
    "ApiErrorBody",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "StreamChunk",
    "Usage",
    "StreamFrameDecoder",
]
