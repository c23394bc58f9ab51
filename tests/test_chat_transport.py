"""HTTP transport against a mocked completions endpoint."""

import contextlib
import json

import httpx
import pytest

from errors import ApiError, NetworkError
from transport import (
    ChatCompletionRequest,
    ChatMessage,
    StreamContent,
    StreamDone,
    StreamError,
    StreamFinished,
    decode_error_message,
)
from tests.conftest import API_HOST, completion, sse_body

REQUEST = ChatCompletionRequest(
    model="GigaChat",
    messages=[ChatMessage(role="user", content="hi")],
    temperature=0.7,
    max_tokens=64,
)


def frame(content=None, finish_reason=None):
    delta = {} if content is None else {"content": content}
    return json.dumps({"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]})


class TrackingStream(httpx.AsyncByteStream):
    """Response body that records how far it was read and whether it was closed"""

    def __init__(self, *pieces: bytes):
        self.pieces = pieces
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for piece in self.pieces:
            self.sent += 1
            yield piece

    async def aclose(self):
        self.closed = True


async def collect(stream):
    async with contextlib.aclosing(stream) as events:
        return [event async for event in events]


# --- send ---


async def test_send_posts_bearer_request(make_transport):
    captured = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json=completion("hello").model_dump())

    transport = make_transport(handler)
    response = await transport.send(REQUEST.model_copy(update={"stream": True}), "tok")

    request = captured["request"]
    body = json.loads(request.content)
    assert str(request.url) == f"{API_HOST}/chat/completions"
    assert request.headers["Authorization"] == "Bearer tok"
    assert body == {
        "model": "GigaChat",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.7,
        "max_tokens": 64,
    }
    assert response.content == "hello"


async def test_send_decodes_structured_error(make_transport):
    transport = make_transport(
        lambda request: httpx.Response(400, json={"error": {"message": "bad model", "code": 7}})
    )

    with pytest.raises(ApiError) as info:
        await transport.send(REQUEST, "tok")

    assert info.value.status_code == 400
    assert info.value.message == "bad model"


async def test_send_unauthorized(make_transport):
    transport = make_transport(lambda request: httpx.Response(401, text="Unauthorized"))

    with pytest.raises(ApiError) as info:
        await transport.send(REQUEST, "expired")

    assert info.value.is_unauthorized
    assert info.value.message == "API error: 401 - Unauthorized"


async def test_send_malformed_success_body(make_transport):
    transport = make_transport(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(ApiError, match="Malformed response"):
        await transport.send(REQUEST, "tok")


@pytest.mark.parametrize(
    "error, message",
    [
        (httpx.ReadTimeout, "Request timed out"),
        (httpx.ConnectError, "Network error"),
    ],
)
async def test_send_connectivity_failures(make_transport, error, message):
    def handler(request):
        raise error("failed", request=request)

    transport = make_transport(handler)

    with pytest.raises(NetworkError, match=message):
        await transport.send(REQUEST, "tok")


def test_decode_error_message_falls_back_to_raw_body():
    assert decode_error_message(502, "Bad Gateway") == "API error: 502 - Bad Gateway"
    assert decode_error_message(400, '{"error": {"message": "nope"}}') == "nope"


def test_endpoint_accepts_full_url():
    from transport import ChatTransport

    assert ChatTransport(f"{API_HOST}/chat/completions").endpoint == f"{API_HOST}/chat/completions"
    assert ChatTransport(f"{API_HOST}/").endpoint == f"{API_HOST}/chat/completions"


# --- send_stream ---


async def test_stream_yields_events_in_order(make_transport):
    captured = {}

    def handler(request):
        captured["request"] = request
        body = sse_body(frame("Hel"), frame("lo"), frame(finish_reason="stop"), "[DONE]")
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    transport = make_transport(handler)
    events = await collect(transport.send_stream(REQUEST, "tok"))

    assert events == [StreamContent("Hel"), StreamContent("lo"), StreamFinished("stop"), StreamDone()]
    request = captured["request"]
    assert json.loads(request.content)["stream"] is True
    assert request.headers["Accept"] == "text/event-stream"


async def test_stream_frames_split_across_reads(make_transport):
    body = sse_body(frame("abc"), "[DONE]")
    pieces = [body[i:i + 5] for i in range(0, len(body), 5)]
    transport = make_transport(lambda request: httpx.Response(200, stream=TrackingStream(*pieces)))

    events = await collect(transport.send_stream(REQUEST, "tok"))

    assert events == [StreamContent("abc"), StreamDone()]


async def test_stream_non_success_is_single_error(make_transport):
    transport = make_transport(lambda request: httpx.Response(401, text="Unauthorized"))

    events = await collect(transport.send_stream(REQUEST, "tok"))

    assert len(events) == 1
    assert isinstance(events[0], StreamError)
    assert isinstance(events[0].cause, ApiError)
    assert events[0].cause.is_unauthorized


async def test_stream_connection_failure_is_single_error(make_transport):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    transport = make_transport(handler)
    events = await collect(transport.send_stream(REQUEST, "tok"))

    assert len(events) == 1
    assert isinstance(events[0].cause, NetworkError)


async def test_stream_without_done_ends_at_body_end(make_transport):
    body = sse_body(frame("partial")) + f"data: {frame(finish_reason='stop')}".encode()
    transport = make_transport(lambda request: httpx.Response(200, content=body))

    events = await collect(transport.send_stream(REQUEST, "tok"))

    assert events == [StreamContent("partial"), StreamFinished("stop")]


async def test_closing_stream_early_releases_response(make_transport):
    body_stream = TrackingStream(
        sse_body(frame("one")),
        sse_body(frame("two")),
        sse_body("[DONE]"),
    )
    transport = make_transport(lambda request: httpx.Response(200, stream=body_stream))

    stream = transport.send_stream(REQUEST, "tok")
    first = await stream.__anext__()
    await stream.aclose()

    assert first == StreamContent("one")
    assert body_stream.closed
    assert body_stream.sent == 1
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


async def test_stream_trace_written_when_enabled(tmp_path, monkeypatch):
    import settings
    from tests.conftest import mock_client
    from transport import ChatTransport

    monkeypatch.setattr(settings, "STREAM_TRACE_DIR", str(tmp_path))
    client = mock_client(lambda request: httpx.Response(200, content=sse_body(frame("x"), "[DONE]")))
    transport = ChatTransport(API_HOST, client=client, trace_enabled=True)

    await collect(transport.send_stream(REQUEST, "tok", request_id="trace1"))
    await client.aclose()

    traces = list(tmp_path.iterdir())
    assert len(traces) == 1
    assert "trace1" in traces[0].name
    assert "data: [DONE]" in traces[0].read_text(encoding="utf-8")
