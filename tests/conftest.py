"""Shared fixtures and fakes for the chat client tests.

Invariants:
    - No test touches the network; HTTP goes through httpx.MockTransport
    - No test writes outside tmp_path (stores always get explicit paths)
    - Time is a fixed clock so expiry arithmetic is deterministic
"""

import asyncio
import os
from typing import Callable, List, Optional, Union

# Keep local state and traces out of the user's home during collection
os.environ.setdefault("STREAM_TRACE_ENABLED", "false")
os.environ.setdefault("DATA_DIR", os.path.join(os.path.dirname(__file__), ".data"))

import httpx
import pytest

from auth.models import AuthToken
from chat.models import ChatSettings
from errors import AuthError
from transport.chat_client import ChatTransport
from transport.models import ChatCompletionResponse

NOW = 1_700_000_000

API_HOST = "https://api.test/api/v1"
AUTH_HOST = "https://auth.test/api/v2"


# --- Auth fakes ---


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class MemoryTokenStorage:
    """TokenStorage stand-in keeping the token in memory"""

    def __init__(self, token: Optional[AuthToken] = None):
        self.token = token
        self.saved: List[AuthToken] = []
        self.cleared = 0
        self.token_file = "memory"

    def save(self, token: AuthToken):
        self.token = token
        self.saved.append(token)

    def load(self) -> Optional[AuthToken]:
        return self.token

    def clear(self):
        self.token = None
        self.cleared += 1


class FakeAuthClient:
    """Counts exchanges; each one yields token-<n> valid for an hour"""

    def __init__(self, clock: FakeClock, error: Optional[AuthError] = None, delay: float = 0.01):
        self.clock = clock
        self.error = error
        self.delay = delay
        self.calls = 0

    async def get_access_token(self) -> AuthToken:
        self.calls += 1
        call = self.calls
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AuthToken(access_token=f"token-{call}", expires_at=int(self.clock()) + 3600)


class FakeTokenManager:
    """Token source for orchestration tests"""

    def __init__(self, error: Optional[AuthError] = None, refresh_error: Optional[AuthError] = None):
        self.error = error
        self.refresh_error = refresh_error
        self.token = "token-1"
        self.refresh_calls = 0

    async def get_valid_token(self) -> str:
        if self.error is not None:
            raise self.error
        return self.token

    async def refresh_token(self) -> str:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        self.token = f"token-{self.refresh_calls + 1}"
        return self.token


# --- Transport fakes ---


ScriptedReply = Union[ChatCompletionResponse, Exception]


def completion(content: Optional[str], usage: Optional[dict] = None) -> ChatCompletionResponse:
    body = {
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content or ""}}],
    }
    if usage is not None:
        body["usage"] = usage
    return ChatCompletionResponse.model_validate(body)


class ScriptedTransport:
    """ChatTransport stand-in replaying scripted replies in order

    ``replies`` feeds send(); ``streams`` feeds send_stream(), one event list
    per call. An exception in either list is raised / yielded in place.
    """

    def __init__(self, replies: Optional[List[ScriptedReply]] = None, streams: Optional[List[list]] = None):
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.requests = []
        self.tokens: List[str] = []
        self.stream_requests = []
        self.closed_streams = 0

    async def send(self, request, token):
        self.requests.append(request)
        self.tokens.append(token)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def send_stream(self, request, token):
        self.stream_requests.append(request)
        self.tokens.append(token)
        events = self.streams.pop(0)
        try:
            for event in events:
                yield event
        finally:
            self.closed_streams += 1


class StaticSettings:
    """SettingsStorage stand-in"""

    def __init__(self, chat_settings: Optional[ChatSettings] = None):
        self.chat_settings = chat_settings or ChatSettings()

    def load(self) -> ChatSettings:
        return self.chat_settings

    def save(self, chat_settings: ChatSettings):
        self.chat_settings = chat_settings


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def sse_body(*frames: str) -> bytes:
    return "".join(f"data: {frame}\n\n" for frame in frames).encode("utf-8")


# --- Fixtures ---


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_storage():
    return MemoryTokenStorage()


@pytest.fixture
async def make_transport():
    """Build a ChatTransport whose HTTP calls go to ``handler``"""
    clients = []

    def _make(handler):
        client = mock_client(handler)
        clients.append(client)
        return ChatTransport(API_HOST, client=client, trace_enabled=False)

    yield _make

    for client in clients:
        await client.aclose()
