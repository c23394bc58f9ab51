"""
Pydantic models for the chat completions wire format.
"""
from typing import List, Optional, Union
from pydantic import BaseModel


class ChatMessage(BaseModel):
    """Chat message"""
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    """Chat completion request"""
    model: str
    messages: List[ChatMessage]
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: Optional[bool] = None

    def to_payload(self) -> dict:
        """Request body with unset optional fields left out"""
        return self.model_dump(exclude_none=True)


class Usage(BaseModel):
    """Token usage reported by the provider"""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Choice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Non-streaming chat completion response"""
    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    choices: List[Choice]
    usage: Optional[Usage] = None

    @property
    def content(self) -> Optional[str]:
        """Text of the first choice, if any"""
        if not self.choices:
            return None
        return self.choices[0].message.content


class Delta(BaseModel):
    """Incremental message fragment in a stream chunk"""
    role: Optional[str] = None
    content: Optional[str] = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: Delta = Delta()
    finish_reason: Optional[str] = None


class StreamChunk(BaseModel):
    """One decoded ``data:`` frame of a streaming response"""
    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    choices: List[StreamChoice]
    usage: Optional[Usage] = None


class ErrorDetail(BaseModel):
    message: str
    type: Optional[str] = None
    code: Optional[Union[str, int]] = None


class ApiErrorBody(BaseModel):
    """Structured error body: ``{"error": {"message": ...}}``"""
    error: ErrorDetail
