"""Context window compression

Older messages are folded into short summaries produced by the model itself
so the prompt stays bounded while the conversation keeps its history.
"""

import logging
from typing import List, Sequence, TYPE_CHECKING

from chat.models import ChatSettings, Message, MessageRole
from errors import ChatClientError, CompressionError
from transport.models import ChatCompletionRequest, ChatMessage
from .models import ContextStats, ContextSummary, ConversationWindow
from .token_estimator import estimate_tokens

if TYPE_CHECKING:
    from auth.token_manager import TokenLifecycleManager
    from transport.chat_client import ChatTransport

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 200
# Rough prompt cost of one message before it was summarized
TOKENS_PER_FOLDED_MESSAGE = 150

SUMMARIZATION_SYSTEM_PROMPT = """You are an assistant that writes short summaries of dialogues.

TASK: Write a brief summary of the dialogue provided.

REQUIREMENTS:
1. Keep key facts, decisions and important context
2. Use 2-4 sentences (100 words at most)
3. Write in the third person ("The user asked...", "They discussed...")
4. Keep technical terminology if there is any
5. Do not add information that was not in the dialogue

FORMAT: Only the summary text, without headings or formatting."""

ROLE_LABELS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.SYSTEM: "System",
}


def render_transcript(messages: Sequence[Message]) -> str:
    """Role-labelled plain-text transcript, one message per line"""
    return "\n".join(f"{ROLE_LABELS[message.role]}: {message.content}" for message in messages)


def render_summaries(summaries: Sequence[ContextSummary]) -> str:
    """Body of the synthesized system message that carries all summaries"""
    blocks = "\n\n".join(
        f"[Summary of earlier conversation ({summary.original_message_count} messages)]:\n{summary.content}"
        for summary in summaries
    )
    return f"Context of the earlier conversation:\n{blocks}"


class ContextWindowManager:
    """Decides when to compress, performs compression, assembles the prompt"""

    def __init__(self, transport: "ChatTransport", token_manager: "TokenLifecycleManager"):
        self.transport = transport
        self.token_manager = token_manager

    @staticmethod
    def should_compress(recent_count: int, settings: ChatSettings) -> bool:
        return settings.context_compression_enabled and recent_count > settings.compression_threshold

    async def summarize_messages(self, messages: Sequence[Message], settings: ChatSettings) -> ContextSummary:
        """Ask the model for a summary of the given messages

        Raises:
            CompressionError: If there is nothing to summarize or the call fails
        """
        if not messages:
            raise CompressionError("No messages to summarize")

        request = ChatCompletionRequest(
            model=settings.model,
            messages=[
                ChatMessage(role=MessageRole.SYSTEM.value, content=SUMMARIZATION_SYSTEM_PROMPT),
                ChatMessage(
                    role=MessageRole.USER.value,
                    content=f"Dialogue to summarize:\n\n{render_transcript(messages)}",
                ),
            ],
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )

        try:
            token = await self.token_manager.get_valid_token()
            response = await self.transport.send(request, token)
        except ChatClientError as e:
            raise CompressionError(f"Summarization request failed: {e.message}") from e

        content = (response.content or "").strip()
        if not content:
            raise CompressionError("Summarization returned no text")

        return ContextSummary(
            content=content,
            original_message_count=len(messages),
            estimated_tokens=estimate_tokens(content),
        )

    async def compress(self, window: ConversationWindow, settings: ChatSettings) -> int:
        """Fold the oldest messages beyond the recent budget into a summary

        Returns:
            Number of messages folded; 0 when nothing was due or the call failed,
            in which case the window is left untouched
        """
        # The newest message is the one being sent and is never folded
        count = min(window.recent_count - settings.recent_messages_count, window.recent_count - 1)
        if count <= 0:
            return 0

        oldest = list(window.recent[:count])
        logger.info(f"Compressing {count} oldest message(s) of {window.recent_count}")

        try:
            summary = await self.summarize_messages(oldest, settings)
        except CompressionError as e:
            logger.warning(f"Context compression skipped: {e.message}")
            return 0

        window.summaries.append(summary)
        del window.recent[:count]
        logger.info(
            f"Compressed {count} message(s) into summary {summary.id} (~{summary.estimated_tokens} tokens)"
        )
        return count

    @staticmethod
    def prepare_context_for_api(
        summaries: Sequence[ContextSummary],
        recent_messages: Sequence[Message],
    ) -> List[ChatMessage]:
        """Messages to send: one system message with all summaries, then recent messages"""
        context: List[ChatMessage] = []
        if summaries:
            context.append(ChatMessage(role=MessageRole.SYSTEM.value, content=render_summaries(summaries)))
        context.extend(ChatMessage(**message.to_api_dict()) for message in recent_messages)
        return context

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return estimate_tokens(text)

    @staticmethod
    def get_stats(summaries: Sequence[ContextSummary], recent_messages: Sequence[Message]) -> ContextStats:
        summary_tokens = sum(summary.estimated_tokens for summary in summaries)
        recent_tokens = sum(estimate_tokens(message.content) for message in recent_messages)
        current_tokens = summary_tokens + recent_tokens

        folded = sum(summary.original_message_count for summary in summaries)
        original_tokens = folded * TOKENS_PER_FOLDED_MESSAGE + recent_tokens

        return ContextStats(
            recent_count=len(recent_messages),
            summary_block_count=len(summaries),
            total_original_messages=folded + len(recent_messages),
            estimated_tokens_saved=max(0, original_tokens - current_tokens),
            current_context_tokens=current_tokens,
        )
