"""Context window tracking for conversations."""

import logging
from datetime import datetime
from typing import Optional

from .budget import conversation_tokens
from .models import CompressionResult, ContextState, Conversation

logger = logging.getLogger(__name__)


class ContextTracker:
    """
    Keeps each conversation's ContextState in step with its messages.

    The ``compression_triggered`` flag is set by ``recompute`` and cleared
    only by ``mark_compressed``, so a compression that became due is still
    pending on the next turn if it did not run.
    """

    DEFAULT_MAX_MESSAGES = 50
    DEFAULT_MAX_TOKEN_PERCENTAGE = 80.0
    DEFAULT_MAX_CONTEXT_TOKENS = 128000

    def __init__(
        self,
        max_message_threshold: int = DEFAULT_MAX_MESSAGES,
        max_token_percentage: float = DEFAULT_MAX_TOKEN_PERCENTAGE,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS
    ):
        """
        Initialize context tracker.

        Args:
            max_message_threshold: Message count at which compression is due
            max_token_percentage: Context window usage (0-100) at which compression is due
            max_context_tokens: Size of the backend's context window
        """
        if max_message_threshold <= 0:
            raise ValueError("max_message_threshold must be positive")
        if max_context_tokens <= 0:
            raise ValueError("max_context_tokens must be positive")

        self.max_message_threshold = max_message_threshold
        self.max_token_percentage = max_token_percentage
        self.max_context_tokens = max_context_tokens

    @classmethod
    def from_settings(cls, settings) -> "ContextTracker":
        """Create a tracker from application settings."""
        return cls(
            max_message_threshold=settings.max_messages_before_compression,
            max_token_percentage=settings.max_token_percentage,
            max_context_tokens=settings.max_context_tokens,
        )

    def initial_state(self) -> ContextState:
        """State of a conversation with no messages."""
        return ContextState(
            max_context_tokens=self.max_context_tokens,
            messages_until_compression=self.max_message_threshold,
        )

    def recompute(self, conversation: Conversation) -> ContextState:
        """
        Rebuild the conversation's ContextState from its message list.

        Args:
            conversation: Conversation to measure

        Returns:
            The new state, also stored on the conversation
        """
        previous = conversation.context_state
        total_messages = len(conversation.messages)
        total_tokens = conversation_tokens(conversation.messages)
        percentage = self._percentage(total_tokens)

        state = ContextState(
            total_messages=total_messages,
            total_tokens=total_tokens,
            estimated_context_tokens=total_tokens,
            max_context_tokens=self.max_context_tokens,
            token_percentage_used=percentage,
            compression_triggered=(
                previous.compression_triggered
                or self._over_threshold(total_messages, percentage)
            ),
            messages_until_compression=max(0, self.max_message_threshold - total_messages),
            last_compression_at=previous.last_compression_at,
            messages_before_compression=previous.messages_before_compression,
            compression_strategy=previous.compression_strategy,
        )

        if state.compression_triggered and not previous.compression_triggered:
            logger.info(
                f"Compression due for conversation {conversation.id}: "
                f"{total_messages} messages, {percentage:.1f}% of context"
            )

        conversation.context_state = state
        return state

    def should_compress(
        self,
        conversation: Conversation,
        max_messages: Optional[int] = None,
        max_token_percentage: Optional[float] = None
    ) -> bool:
        """
        Check whether the conversation is over either compression threshold.

        Reads only the message list; stored state is neither consulted nor
        changed.

        Args:
            conversation: Conversation to check
            max_messages: Message threshold (defaults to the tracker's)
            max_token_percentage: Token percentage threshold (defaults to the tracker's)

        Returns:
            True if compression should run
        """
        total_messages = len(conversation.messages)
        percentage = self._percentage(conversation_tokens(conversation.messages))
        return self._over_threshold(
            total_messages,
            percentage,
            max_messages=max_messages,
            max_token_percentage=max_token_percentage,
        )

    def mark_compressed(
        self,
        conversation: Conversation,
        timestamp: datetime,
        result: Optional[CompressionResult] = None
    ) -> ContextState:
        """
        Record a finished compression and clear the pending flag.

        Args:
            conversation: Conversation that was compressed
            timestamp: When the compression ran
            result: Optional compression receipt for bookkeeping

        Returns:
            The recomputed state
        """
        update = {
            "compression_triggered": False,
            "last_compression_at": timestamp,
        }
        if result is not None:
            update["messages_before_compression"] = result.original_message_count
            update["compression_strategy"] = result.strategy.value

        conversation.context_state = conversation.context_state.model_copy(update=update)
        return self.recompute(conversation)

    def _percentage(self, total_tokens: int) -> float:
        return total_tokens / self.max_context_tokens * 100

    def _over_threshold(
        self,
        total_messages: int,
        percentage: float,
        max_messages: Optional[int] = None,
        max_token_percentage: Optional[float] = None
    ) -> bool:
        if max_messages is None:
            max_messages = self.max_message_threshold
        if max_token_percentage is None:
            max_token_percentage = self.max_token_percentage
        return total_messages >= max_messages or percentage >= max_token_percentage
