"""Send-one-message orchestration

Composes token acquisition, context compression and the chat request into
a single operation and keeps the conversation window consistent when any
stage fails.
"""

import contextlib
import logging
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING

from context.compression import ContextWindowManager
from context.models import ContextStats, ContextSummary, ConversationWindow
from context.token_estimator import estimate_tokens
from errors import ApiError, AuthError, ChatClientError
from transport.events import StreamContent, StreamDone, StreamError, StreamFinished
from transport.models import ChatCompletionRequest, ChatMessage, Usage
from .models import ChatSettings, Message, MessageRole, MessageStatus, SendMessageResult, TokenUsage
from .prompts import resolve_system_prompt

if TYPE_CHECKING:
    from auth.token_manager import TokenLifecycleManager
    from transport.chat_client import ChatTransport
    from utils.storage import ConversationStorage, SettingsStorage

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response received"

ContentCallback = Callable[[str], None]


class ChatOrchestrator:
    """The single "send a user message" operation of a chat session

    One send runs at a time per instance; callers serialize sends.
    """

    def __init__(
        self,
        token_manager: "TokenLifecycleManager",
        transport: "ChatTransport",
        settings_store: "SettingsStorage",
        context_manager: Optional[ContextWindowManager] = None,
        conversation_store: Optional["ConversationStorage"] = None,
    ):
        """
        Args:
            token_manager: Source of bearer tokens
            transport: Executes chat requests
            settings_store: Provides ChatSettings via load()
            context_manager: Compression and prompt assembly (built from
                transport and token_manager if omitted)
            conversation_store: Optional persistence for messages and summaries
        """
        self.token_manager = token_manager
        self.transport = transport
        self.settings_store = settings_store
        self.context = context_manager or ContextWindowManager(transport, token_manager)
        self.conversation_store = conversation_store
        self.window = ConversationWindow()
        self.last_failed_message: Optional[Message] = None
        self._restore()

    def _restore(self):
        if self.conversation_store is None:
            return
        self.window.recent = self.conversation_store.load_recent()
        self.window.summaries = self.conversation_store.load_summaries()
        if self.window.recent or self.window.summaries:
            logger.info(
                f"Restored {len(self.window.recent)} message(s) and "
                f"{len(self.window.summaries)} summary block(s)"
            )

    @property
    def messages(self) -> List[Message]:
        return list(self.window.recent)

    @property
    def summaries(self) -> List[ContextSummary]:
        return list(self.window.summaries)

    def get_stats(self) -> ContextStats:
        return self.context.get_stats(self.window.summaries, self.window.recent)

    async def send_message(self, content: str, on_content: Optional[ContentCallback] = None) -> SendMessageResult:
        """Send a user message and return the assistant reply

        Streams the reply when settings ask for it or ``on_content`` is given;
        ``on_content`` receives each text fragment as it arrives.

        Raises:
            ValueError: If content is blank
            AuthError: If no valid token can be obtained
            ApiError: On a non-success response (after at most one 401 retry)
            NetworkError: On connectivity failures and timeouts
        """
        if not content or not content.strip():
            raise ValueError("Message content is empty")

        settings = self.settings_store.load()
        user_message = Message.user(content)
        self.window.append(user_message)
        self.last_failed_message = None

        compressed_count = 0
        # Any exit without a reply, including cancellation or a failing
        # on_content callback, takes the user message back out of the window
        try:
            if self.context.should_compress(self.window.recent_count, settings):
                folded = list(self.window.recent)
                compressed_count = await self.context.compress(self.window, settings)
                if compressed_count:
                    self._persist_compression(folded[:compressed_count], self.window.summaries[-1])

            reply, usage = await self._complete(settings, on_content)
        except BaseException as e:
            self._discard_provisional(user_message)
            if isinstance(e, ChatClientError):
                logger.error(f"Send failed: {e.message}")
            else:
                logger.warning(f"Send aborted: {e!r}")
            raise

        estimated_prompt = sum(estimate_tokens(m.content) for m in self.window.recent) + sum(
            summary.estimated_tokens for summary in self.window.summaries
        )
        token_usage = TokenUsage(
            estimated_prompt=estimated_prompt,
            estimated_completion=estimate_tokens(reply),
            actual_prompt=usage.prompt_tokens if usage else None,
            actual_completion=usage.completion_tokens if usage else None,
            actual_total=usage.total_tokens if usage else None,
        )

        sent_message = user_message.with_status(MessageStatus.SENT)
        self._replace(user_message.id, sent_message)
        assistant_message = Message.assistant(reply, token_usage=token_usage)
        self.window.append(assistant_message)

        self._persist_messages(sent_message, assistant_message)

        return SendMessageResult(message=assistant_message, compressed_count=compressed_count)

    async def retry_last(self, on_content: Optional[ContentCallback] = None) -> SendMessageResult:
        """Resend the content of the last failed message

        Raises:
            ValueError: If there is no failed message to retry
        """
        if self.last_failed_message is None:
            raise ValueError("Nothing to retry")
        content = self.last_failed_message.content
        return await self.send_message(content, on_content=on_content)

    def clear(self):
        """Forget the conversation in memory and in the store"""
        self.window.clear()
        self.last_failed_message = None
        if self.conversation_store is not None:
            self.conversation_store.clear_all()
        logger.info("Conversation cleared")

    def build_request(self, settings: ChatSettings) -> ChatCompletionRequest:
        """Request for the current window: system prompt, summaries, recent messages"""
        messages = self.context.prepare_context_for_api(self.window.summaries, self.window.recent)
        system_prompt = resolve_system_prompt(settings)
        if system_prompt.strip():
            messages.insert(0, ChatMessage(role=MessageRole.SYSTEM.value, content=system_prompt))
        return ChatCompletionRequest(
            model=settings.model,
            messages=messages,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )

    async def _complete(
        self,
        settings: ChatSettings,
        on_content: Optional[ContentCallback],
    ) -> Tuple[str, Optional[Usage]]:
        request = self.build_request(settings)

        try:
            token = await self.token_manager.get_valid_token()
        except AuthError as e:
            raise AuthError(f"Authentication failed: {e.message}") from e

        if settings.stream or on_content is not None:
            execute = self._execute_stream
        else:
            execute = self._execute

        try:
            return await execute(request, token, on_content)
        except ApiError as e:
            if not e.is_unauthorized:
                raise
            logger.info("Chat request got 401, refreshing token and retrying once")

        try:
            token = await self.token_manager.refresh_token()
        except AuthError as e:
            raise AuthError(f"Token refresh failed: {e.message}") from e

        return await execute(request, token, on_content)

    async def _execute(
        self,
        request: ChatCompletionRequest,
        token: str,
        on_content: Optional[ContentCallback],
    ) -> Tuple[str, Optional[Usage]]:
        response = await self.transport.send(request, token)
        content = response.content
        if content is None:
            content = NO_RESPONSE_TEXT
        if on_content is not None:
            on_content(content)
        return content, response.usage

    async def _execute_stream(
        self,
        request: ChatCompletionRequest,
        token: str,
        on_content: Optional[ContentCallback],
    ) -> Tuple[str, Optional[Usage]]:
        parts: List[str] = []
        usage: Optional[Usage] = None

        async with contextlib.aclosing(self.transport.send_stream(request, token)) as events:
            async for event in events:
                if isinstance(event, StreamContent):
                    parts.append(event.text)
                    if on_content is not None:
                        on_content(event.text)
                elif isinstance(event, StreamFinished):
                    logger.debug(f"Stream finished: {event.reason}")
                    usage = event.usage or usage
                elif isinstance(event, StreamError):
                    raise event.cause
                elif isinstance(event, StreamDone):
                    break

        return "".join(parts) or NO_RESPONSE_TEXT, usage

    def _replace(self, message_id: str, message: Message):
        for index, existing in enumerate(self.window.recent):
            if existing.id == message_id:
                self.window.recent[index] = message
                return

    def _discard_provisional(self, user_message: Message):
        """Drop the failed user message from the transcript, keep it for retry"""
        if not self.window.remove_last(user_message.id):
            logger.warning(f"Failed message {user_message.id} was not the newest in the window")
        self.last_failed_message = user_message.with_status(MessageStatus.ERROR)

    def _persist_compression(self, folded: List[Message], summary: ContextSummary):
        if self.conversation_store is None:
            return
        try:
            self.conversation_store.insert_summary(summary)
            self.conversation_store.mark_compressed([m.id for m in folded], summary.id)
        except OSError as e:
            logger.error(f"Failed to persist summary {summary.id}: {e}")

    def _persist_messages(self, *messages: Message):
        if self.conversation_store is None:
            return
        try:
            for message in messages:
                self.conversation_store.append_message(message)
        except OSError as e:
            logger.error(f"Failed to persist messages: {e}")
