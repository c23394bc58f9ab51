"""Send-message orchestration: 401 retry, failure rollback, streaming, persistence."""

import asyncio

import pytest

from chat.models import ChatSettings, MessageRole, MessageStatus, OutputFormat
from chat.orchestrator import NO_RESPONSE_TEXT, ChatOrchestrator
from chat.prompts import JSON_SYSTEM_PROMPT
from context.models import ContextSummary
from errors import ApiError, AuthError, NetworkError
from transport import StreamContent, StreamDone, StreamError, StreamFinished
from transport.models import Usage
from utils.storage import ConversationStorage
from tests.conftest import FakeTokenManager, ScriptedTransport, StaticSettings, completion

USAGE = {"prompt_tokens": 20, "completion_tokens": 5, "total_tokens": 25}


def unauthorized():
    return ApiError("API error: 401 - Unauthorized", status_code=401)


def make_orchestrator(transport, token_manager=None, chat_settings=None, conversation_store=None):
    token_manager = token_manager or FakeTokenManager()
    orchestrator = ChatOrchestrator(
        token_manager,
        transport,
        StaticSettings(chat_settings or ChatSettings(context_compression_enabled=False)),
        conversation_store=conversation_store,
    )
    return orchestrator, token_manager


# --- Happy path ---


async def test_send_returns_reply_and_records_exchange():
    transport = ScriptedTransport(replies=[completion("Hi there", usage=USAGE)])
    orchestrator, _ = make_orchestrator(transport)

    result = await orchestrator.send_message("Hello")

    assert result.message.content == "Hi there"
    assert result.message.role == MessageRole.ASSISTANT
    assert result.compressed_count == 0
    user, assistant = orchestrator.messages
    assert (user.content, user.status) == ("Hello", MessageStatus.SENT)
    assert assistant == result.message
    usage = result.message.token_usage
    assert usage.actual_total == 25
    assert usage.has_actual_data
    assert usage.estimated_prompt > 0


async def test_request_carries_settings_and_history():
    transport = ScriptedTransport(replies=[completion("a1"), completion("a2")])
    chat_settings = ChatSettings(
        model="GigaChat-Max",
        temperature=0.2,
        max_tokens=99,
        system_prompt="Be brief.",
        context_compression_enabled=False,
    )
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings)

    await orchestrator.send_message("q1")
    await orchestrator.send_message("q2")

    request = transport.requests[1]
    assert (request.model, request.temperature, request.max_tokens) == ("GigaChat-Max", 0.2, 99)
    assert [(m.role, m.content) for m in request.messages] == [
        ("system", "Be brief."),
        ("user", "q1"),
        ("assistant", "a1"),
        ("user", "q2"),
    ]


async def test_json_format_overrides_system_prompt():
    transport = ScriptedTransport(replies=[completion("{}")])
    chat_settings = ChatSettings(
        system_prompt="Be brief.",
        output_format=OutputFormat.JSON,
        context_compression_enabled=False,
    )
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings)

    await orchestrator.send_message("q")

    first = transport.requests[0].messages[0]
    assert (first.role, first.content) == ("system", JSON_SYSTEM_PROMPT)


async def test_blank_system_prompt_adds_nothing():
    transport = ScriptedTransport(replies=[completion("a")])
    orchestrator, _ = make_orchestrator(transport)

    await orchestrator.send_message("q")

    assert [m.role for m in transport.requests[0].messages] == ["user"]


async def test_empty_reply_gets_placeholder():
    transport = ScriptedTransport(replies=[completion(None)])
    orchestrator, _ = make_orchestrator(transport)

    result = await orchestrator.send_message("q")

    assert result.message.content == NO_RESPONSE_TEXT


async def test_blank_message_is_rejected():
    orchestrator, _ = make_orchestrator(ScriptedTransport())

    with pytest.raises(ValueError):
        await orchestrator.send_message("   ")
    assert orchestrator.messages == []


# --- 401 retry ---


async def test_unauthorized_refreshes_and_retries_once():
    transport = ScriptedTransport(replies=[unauthorized(), completion("ok")])
    orchestrator, token_manager = make_orchestrator(transport)

    result = await orchestrator.send_message("q")

    assert result.message.content == "ok"
    assert token_manager.refresh_calls == 1
    assert transport.tokens == ["token-1", "token-2"]


async def test_second_unauthorized_is_terminal():
    transport = ScriptedTransport(replies=[unauthorized(), unauthorized()])
    orchestrator, token_manager = make_orchestrator(transport)

    with pytest.raises(ApiError) as info:
        await orchestrator.send_message("q")

    assert info.value.is_unauthorized
    assert token_manager.refresh_calls == 1
    assert len(transport.requests) == 2


async def test_failed_refresh_after_unauthorized_is_auth_error():
    transport = ScriptedTransport(replies=[unauthorized()])
    orchestrator, token_manager = make_orchestrator(
        transport, token_manager=FakeTokenManager(refresh_error=AuthError("Auth failed: 400 - bad"))
    )

    with pytest.raises(AuthError, match="Token refresh failed"):
        await orchestrator.send_message("q")
    assert len(transport.requests) == 1


async def test_other_api_errors_are_not_retried():
    transport = ScriptedTransport(replies=[ApiError("overloaded", status_code=503)])
    orchestrator, token_manager = make_orchestrator(transport)

    with pytest.raises(ApiError, match="overloaded"):
        await orchestrator.send_message("q")
    assert token_manager.refresh_calls == 0


# --- Failure rollback and retry_last ---


async def test_auth_failure_removes_provisional_message():
    transport = ScriptedTransport()
    orchestrator, _ = make_orchestrator(transport, token_manager=FakeTokenManager(error=AuthError("no key")))

    with pytest.raises(AuthError, match="Authentication failed: no key"):
        await orchestrator.send_message("q")

    assert orchestrator.messages == []
    assert transport.requests == []
    failed = orchestrator.last_failed_message
    assert (failed.content, failed.status) == ("q", MessageStatus.ERROR)


async def test_network_failure_keeps_earlier_history():
    transport = ScriptedTransport(replies=[completion("a1"), NetworkError("Request timed out")])
    orchestrator, _ = make_orchestrator(transport)
    await orchestrator.send_message("q1")

    with pytest.raises(NetworkError):
        await orchestrator.send_message("q2")

    assert [m.content for m in orchestrator.messages] == ["q1", "a1"]
    assert orchestrator.last_failed_message.content == "q2"


async def test_retry_last_resends_failed_content():
    transport = ScriptedTransport(replies=[NetworkError("down"), completion("back")])
    orchestrator, _ = make_orchestrator(transport)
    with pytest.raises(NetworkError):
        await orchestrator.send_message("q")

    result = await orchestrator.retry_last()

    assert result.message.content == "back"
    assert [m.content for m in orchestrator.messages] == ["q", "back"]
    assert orchestrator.last_failed_message is None


async def test_retry_last_without_failure():
    orchestrator, _ = make_orchestrator(ScriptedTransport())

    with pytest.raises(ValueError):
        await orchestrator.retry_last()


class StalledTransport(ScriptedTransport):
    """Accepts the request and never answers"""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()

    async def send(self, request, token):
        self.requests.append(request)
        self.started.set()
        await asyncio.Event().wait()


async def test_cancelled_send_removes_provisional_message():
    transport = StalledTransport()
    orchestrator, _ = make_orchestrator(transport)

    task = asyncio.ensure_future(orchestrator.send_message("q"))
    await transport.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert orchestrator.messages == []
    failed = orchestrator.last_failed_message
    assert (failed.content, failed.status) == ("q", MessageStatus.ERROR)


async def test_failing_content_callback_removes_provisional_message():
    transport = ScriptedTransport(streams=[[StreamContent("x"), StreamDone()]])
    orchestrator, _ = make_orchestrator(transport)

    def on_content(text):
        raise RuntimeError("display closed")

    with pytest.raises(RuntimeError, match="display closed"):
        await orchestrator.send_message("q", on_content=on_content)

    assert orchestrator.messages == []
    assert orchestrator.last_failed_message.content == "q"
    assert transport.closed_streams == 1


# --- Streaming ---


async def test_streaming_delivers_fragments_and_joins_reply():
    usage = Usage(**USAGE)
    transport = ScriptedTransport(streams=[[
        StreamContent("Hel"),
        StreamContent("lo"),
        StreamFinished("stop", usage=usage),
        StreamDone(),
    ]])
    orchestrator, _ = make_orchestrator(transport)
    fragments = []

    result = await orchestrator.send_message("q", on_content=fragments.append)

    assert fragments == ["Hel", "lo"]
    assert result.message.content == "Hello"
    assert result.message.token_usage.actual_total == 25
    assert transport.closed_streams == 1


async def test_stream_setting_selects_streaming():
    transport = ScriptedTransport(streams=[[StreamContent("x"), StreamDone()]])
    orchestrator, _ = make_orchestrator(
        transport, chat_settings=ChatSettings(stream=True, context_compression_enabled=False)
    )

    result = await orchestrator.send_message("q")

    assert result.message.content == "x"
    assert transport.requests == []


async def test_stream_unauthorized_retries_once():
    transport = ScriptedTransport(streams=[
        [StreamError(unauthorized())],
        [StreamContent("ok"), StreamDone()],
    ])
    orchestrator, token_manager = make_orchestrator(transport)

    result = await orchestrator.send_message("q", on_content=lambda text: None)

    assert result.message.content == "ok"
    assert token_manager.refresh_calls == 1
    assert transport.closed_streams == 2


async def test_stream_error_midway_fails_send():
    transport = ScriptedTransport(streams=[[StreamContent("par"), StreamError(NetworkError("reset"))]])
    orchestrator, _ = make_orchestrator(transport)

    with pytest.raises(NetworkError, match="reset"):
        await orchestrator.send_message("q", on_content=lambda text: None)

    assert orchestrator.messages == []
    assert transport.closed_streams == 1


# --- Compression during send ---


async def test_compression_runs_before_request():
    transport = ScriptedTransport(replies=[
        completion("a1"),
        completion("They greeted each other."),
        completion("a2"),
    ])
    chat_settings = ChatSettings(compression_threshold=2, recent_messages_count=1)
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings)

    await orchestrator.send_message("q1")
    result = await orchestrator.send_message("q2")

    assert result.compressed_count == 2
    assert [m.content for m in orchestrator.messages] == ["q2", "a2"]
    assert [s.content for s in orchestrator.summaries] == ["They greeted each other."]
    chat_request = transport.requests[2]
    assert chat_request.messages[0].role == "system"
    assert "They greeted each other." in chat_request.messages[0].content
    assert [m.content for m in chat_request.messages[1:]] == ["q2"]
    stats = orchestrator.get_stats()
    assert stats.total_original_messages == 4


async def test_failed_compression_still_sends():
    transport = ScriptedTransport(replies=[
        completion("a1"),
        ApiError("API error: 500 - boom", status_code=500),
        completion("a2"),
    ])
    chat_settings = ChatSettings(compression_threshold=2, recent_messages_count=1)
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings)

    await orchestrator.send_message("q1")
    result = await orchestrator.send_message("q2")

    assert result.compressed_count == 0
    assert orchestrator.summaries == []
    assert [m.content for m in orchestrator.messages] == ["q1", "a1", "q2", "a2"]


async def test_compression_never_folds_the_message_being_sent():
    transport = ScriptedTransport(replies=[
        completion("a1"),
        completion("They said hello."),
        NetworkError("Request timed out"),
    ])
    chat_settings = ChatSettings(compression_threshold=2, recent_messages_count=0)
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings)
    await orchestrator.send_message("q1")

    with pytest.raises(NetworkError):
        await orchestrator.send_message("q2-failed")

    assert [s.original_message_count for s in orchestrator.summaries] == [2]
    transcript = transport.requests[1].messages[1].content
    assert "User: q1" in transcript
    assert "q2-failed" not in transcript
    assert [m.content for m in transport.requests[2].messages[1:]] == ["q2-failed"]
    assert orchestrator.messages == []
    assert orchestrator.last_failed_message.content == "q2-failed"


# --- Persistence ---


async def test_conversation_is_restored_from_store(tmp_path):
    store = ConversationStorage(str(tmp_path / "conversation.json"))
    transport = ScriptedTransport(replies=[
        completion("a1"),
        completion("summary of the start"),
        completion("a2"),
    ])
    chat_settings = ChatSettings(compression_threshold=2, recent_messages_count=1)
    orchestrator, _ = make_orchestrator(transport, chat_settings=chat_settings, conversation_store=store)
    await orchestrator.send_message("q1")
    await orchestrator.send_message("q2")

    restored, _ = make_orchestrator(ScriptedTransport(), conversation_store=store)

    assert [(m.content, m.status) for m in restored.messages] == [
        ("q2", MessageStatus.SENT),
        ("a2", MessageStatus.SENT),
    ]
    assert [s.original_message_count for s in restored.summaries] == [2]


async def test_failed_send_is_not_persisted(tmp_path):
    store = ConversationStorage(str(tmp_path / "conversation.json"))
    transport = ScriptedTransport(replies=[NetworkError("down")])
    orchestrator, _ = make_orchestrator(transport, conversation_store=store)

    with pytest.raises(NetworkError):
        await orchestrator.send_message("q")

    assert store.load_recent() == []


async def test_clear_empties_window_and_store(tmp_path):
    store = ConversationStorage(str(tmp_path / "conversation.json"))
    store.insert_summary(ContextSummary(content="old", original_message_count=3, estimated_tokens=1))
    transport = ScriptedTransport(replies=[completion("a")])
    orchestrator, _ = make_orchestrator(transport, conversation_store=store)
    await orchestrator.send_message("q")

    orchestrator.clear()

    assert orchestrator.messages == []
    assert orchestrator.summaries == []
    assert store.load_recent() == []
    assert store.load_summaries() == []
