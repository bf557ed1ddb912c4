"""Conversation memory with context window budgeting and compression."""

from .models import (
    Agent,
    AgentMetrics,
    CompressionConfig,
    CompressionResult,
    CompressionStrategy,
    ContextState,
    Conversation,
    ConversationMessage,
    MessageRole,
)
from .budget import estimate_tokens, message_tokens, conversation_tokens
from .context_tracker import ContextTracker
from .compression import ConversationCompressor
from .errors import (
    ConversationError,
    NotFoundError,
    ConversationNotFoundError,
    AgentNotFoundError,
    BackendNotFoundError,
    NoAgentSpecifiedError,
)
from .manager import ConversationManager

__all__ = [
    "Agent",
    "AgentMetrics",
    "CompressionConfig",
    "CompressionResult",
    "CompressionStrategy",
    "ContextState",
    "Conversation",
    "ConversationMessage",
    "MessageRole",
    "estimate_tokens",
    "message_tokens",
    "conversation_tokens",
    "ContextTracker",
    "ConversationCompressor",
    "ConversationError",
    "NotFoundError",
    "ConversationNotFoundError",
    "AgentNotFoundError",
    "BackendNotFoundError",
    "NoAgentSpecifiedError",
    "ConversationManager",
]
