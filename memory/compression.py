"""Conversation compression strategies for context window management."""

import logging
from typing import Callable, Dict, List, Optional

from llm.base_client import BaseLLMClient, Message
from .budget import conversation_tokens
from .models import (
    CompressionConfig,
    CompressionResult,
    CompressionStrategy,
    Conversation,
    ConversationMessage,
    MessageRole,
)

logger = logging.getLogger(__name__)

SUMMARY_HEADER = "[Conversation Summary]"

# Estimated size of a summarized conversation relative to the original.
# This is a heuristic, not a measurement of the new message list.
SUMMARY_TOKEN_RATIO = 0.3

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 1000

DEFAULT_SUMMARIZATION_PROMPT = """Summarize the following conversation, preserving:
- User preferences and settings mentioned
- Key decisions made
- Ongoing tasks or action items
- Important context needed for future messages

Keep the summary concise but complete."""


def _tail(messages: List[ConversationMessage], count: int) -> List[ConversationMessage]:
    """Last ``count`` messages; empty when count is 0."""
    if count <= 0:
        return []
    return messages[-count:]


class ConversationCompressor:
    """
    Shrinks a conversation's message list with one of three strategies.

    - summarize: older messages are replaced by one backend-written summary
    - truncate: system messages and the most recent messages are kept
    - sliding-window: only the most recent messages are kept

    The compressor never modifies the conversation it is given. The new
    message list is returned on ``CompressionResult.messages`` for the
    caller to apply.
    """

    def __init__(self):
        """Initialize compressor with its strategy dispatch table."""
        self._handlers: Dict[CompressionStrategy, Callable[..., CompressionResult]] = {
            CompressionStrategy.SUMMARIZE: self.summarize,
            CompressionStrategy.TRUNCATE: self.truncate,
            CompressionStrategy.SLIDING_WINDOW: self.sliding_window,
        }

    def compress(
        self,
        conversation: Conversation,
        config: CompressionConfig,
        backend: Optional[BaseLLMClient] = None
    ) -> CompressionResult:
        """
        Compress a conversation using the configured strategy.

        Unknown strategies fall back to truncation.

        Args:
            conversation: Conversation to compress
            config: Compression configuration
            backend: Completion backend used by the summarize strategy

        Returns:
            CompressionResult with the rewritten message list
        """
        try:
            strategy = CompressionStrategy(config.strategy)
        except ValueError:
            logger.warning(f"Unknown compression strategy '{config.strategy}', using truncate")
            strategy = CompressionStrategy.TRUNCATE

        result = self._handlers[strategy](conversation, config, backend=backend)

        logger.info(
            f"Compressed conversation {conversation.id} with {result.strategy.value}: "
            f"{result.original_message_count} -> {len(result.messages)} messages, "
            f"~{result.original_token_count} -> ~{result.compressed_token_count} tokens"
        )
        return result

    def summarize(
        self,
        conversation: Conversation,
        config: CompressionConfig,
        backend: Optional[BaseLLMClient] = None
    ) -> CompressionResult:
        """
        Replace older messages with a backend-generated summary.

        Falls back to truncation when no backend is available or the
        summary request fails.

        Args:
            conversation: Conversation to compress
            config: Compression configuration
            backend: Completion backend for the summary request

        Returns:
            CompressionResult
        """
        messages = list(conversation.messages)
        original_tokens = conversation_tokens(messages)

        recent = _tail(messages, config.preserve_recent_messages)
        older = messages[:len(messages) - len(recent)]

        if not older:
            # Nothing to summarize
            return self._build_result(
                CompressionStrategy.SUMMARIZE,
                original=messages,
                kept=messages,
                new_messages=messages,
                original_tokens=original_tokens,
                compressed_tokens=original_tokens,
            )

        if backend is None:
            logger.warning(
                f"No backend available to summarize conversation {conversation.id}, "
                "falling back to truncation"
            )
            return self.truncate(conversation, config)

        try:
            response = backend.chat(
                messages=[Message(role="user", content=self._build_prompt(older, config))],
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=max(1, min(SUMMARY_MAX_TOKENS, config.target_tokens // 2))
            )
        except Exception as e:
            logger.warning(
                f"Summarization failed for conversation {conversation.id}, "
                f"falling back to truncation: {e}"
            )
            return self.truncate(conversation, config)

        summary_text = response.content.strip()
        summary_message = ConversationMessage(
            role=MessageRole.SYSTEM,
            content=f"{SUMMARY_HEADER}\n{summary_text}",
            metadata={
                "is_summary": True,
                "summarized_messages": len(older),
            }
        )

        return self._build_result(
            CompressionStrategy.SUMMARIZE,
            original=messages,
            kept=recent,
            new_messages=[summary_message] + recent,
            original_tokens=original_tokens,
            compressed_tokens=int(original_tokens * SUMMARY_TOKEN_RATIO),
            summary=summary_text,
            summary_message_id=summary_message.id,
        )

    def truncate(
        self,
        conversation: Conversation,
        config: CompressionConfig,
        backend: Optional[BaseLLMClient] = None
    ) -> CompressionResult:
        """
        Keep system messages (if configured) and the most recent messages.

        Args:
            conversation: Conversation to compress
            config: Compression configuration
            backend: Unused

        Returns:
            CompressionResult
        """
        messages = list(conversation.messages)

        if config.preserve_system_messages:
            system_messages = [m for m in messages if m.role == MessageRole.SYSTEM]
            candidates = [m for m in messages if m.role != MessageRole.SYSTEM]
        else:
            system_messages = []
            candidates = messages

        kept = system_messages + _tail(candidates, config.preserve_recent_messages)
        return self._scaled_result(CompressionStrategy.TRUNCATE, messages, kept)

    def sliding_window(
        self,
        conversation: Conversation,
        config: CompressionConfig,
        backend: Optional[BaseLLMClient] = None
    ) -> CompressionResult:
        """Keep only the most recent messages, whatever their role."""
        messages = list(conversation.messages)
        kept = _tail(messages, config.preserve_recent_messages)
        return self._scaled_result(CompressionStrategy.SLIDING_WINDOW, messages, kept)

    def _build_prompt(self, older: List[ConversationMessage], config: CompressionConfig) -> str:
        """Summarization request: instruction followed by the serialized messages."""
        conversation_text = "\n\n".join(
            f"{m.role.value}: {m.content}" for m in older
        )
        instruction = config.summarization_prompt or DEFAULT_SUMMARIZATION_PROMPT
        return f"{instruction}\n\nConversation:\n{conversation_text}"

    def _scaled_result(
        self,
        strategy: CompressionStrategy,
        original: List[ConversationMessage],
        kept: List[ConversationMessage]
    ) -> CompressionResult:
        """Result whose token estimate scales with the fraction of messages kept."""
        original_tokens = conversation_tokens(original)
        compressed_tokens = 0
        if original:
            compressed_tokens = int(len(kept) / len(original) * original_tokens)

        return self._build_result(
            strategy,
            original=original,
            kept=kept,
            new_messages=kept,
            original_tokens=original_tokens,
            compressed_tokens=compressed_tokens,
        )

    def _build_result(
        self,
        strategy: CompressionStrategy,
        original: List[ConversationMessage],
        kept: List[ConversationMessage],
        new_messages: List[ConversationMessage],
        original_tokens: int,
        compressed_tokens: int,
        summary: Optional[str] = None,
        summary_message_id: Optional[str] = None
    ) -> CompressionResult:
        kept_ids = {m.id for m in kept}
        return CompressionResult(
            strategy=strategy,
            original_message_count=len(original),
            compressed_message_count=len(kept),
            original_token_count=original_tokens,
            compressed_token_count=compressed_tokens,
            summary=summary,
            summary_message_id=summary_message_id,
            preserved_message_ids=[m.id for m in original if m.id in kept_ids],
            removed_message_ids=[m.id for m in original if m.id not in kept_ids],
            messages=new_messages,
        )
