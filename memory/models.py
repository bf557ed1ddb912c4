"""Memory data models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from llm.base_client import TokenUsage


def new_id() -> str:
    """Generate a unique record identifier."""
    return str(uuid.uuid4())


class MessageRole(str, Enum):
    """Author of a conversation message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationMessage(BaseModel):
    """A single message in a conversation. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_id: Optional[str] = None
    usage: Optional[TokenUsage] = None  # Exact counts from the backend, when reported
    metadata: Dict[str, Any] = Field(default_factory=dict)  # e.g. is_summary, summarized_messages, model

    @property
    def is_summary(self) -> bool:
        """Whether this message is a compression summary."""
        return bool(self.metadata.get("is_summary"))


class ContextState(BaseModel):
    """Token and message budget of a conversation, derived from its messages."""
    total_messages: int = 0
    total_tokens: int = 0
    estimated_context_tokens: int = 0
    max_context_tokens: int = 128000
    token_percentage_used: float = 0.0

    # Compression state
    compression_triggered: bool = False
    messages_until_compression: int = 50
    last_compression_at: Optional[datetime] = None
    messages_before_compression: Optional[int] = None
    compression_strategy: Optional[str] = None


class Conversation(BaseModel):
    """A complete conversation."""
    id: str = Field(default_factory=new_id)
    title: Optional[str] = None
    agent_id: Optional[str] = None  # Agent bound to the conversation
    messages: List[ConversationMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    last_active_at: datetime = Field(default_factory=datetime.now)
    archived: bool = False
    tags: List[str] = Field(default_factory=list)
    context_state: ContextState = Field(default_factory=ContextState)


class CompressionStrategy(str, Enum):
    """Algorithms available for shrinking a conversation."""
    SUMMARIZE = "summarize"
    TRUNCATE = "truncate"
    SLIDING_WINDOW = "sliding-window"


class CompressionConfig(BaseModel):
    """How a conversation should be compressed."""
    # Plain string: unknown values fall back to truncate instead of failing validation
    strategy: str = CompressionStrategy.SUMMARIZE.value
    target_tokens: int = Field(4000, gt=0, description="Token budget after compression")
    preserve_system_messages: bool = Field(True, description="Never remove system messages (truncate)")
    preserve_recent_messages: int = Field(10, ge=0, description="Most recent messages always kept")
    summarization_prompt: Optional[str] = Field(None, description="Replaces the built-in summary instruction")


class CompressionResult(BaseModel):
    """Receipt of one compression run."""
    model_config = ConfigDict(frozen=True)

    strategy: CompressionStrategy
    original_message_count: int
    compressed_message_count: int  # Original messages that survived
    original_token_count: int
    compressed_token_count: int
    summary: Optional[str] = None
    summary_message_id: Optional[str] = None
    preserved_message_ids: List[str] = Field(default_factory=list)
    removed_message_ids: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)

    # Rewritten message list, applied by the conversation manager
    messages: List[ConversationMessage] = Field(default_factory=list, exclude=True)

    @property
    def messages_removed(self) -> int:
        """Number of original messages dropped."""
        return len(self.removed_message_ids)


class AgentMetrics(BaseModel):
    """Invocation counters for an agent."""
    total_invocations: int = 0  # Includes failed backend calls
    successful_invocations: int = 0
    average_response_time: float = 0.0  # Milliseconds, over successful invocations
    last_updated: Optional[datetime] = None


class Agent(BaseModel):
    """A conversational agent bound to a completion backend."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    system_prompt: str = ""
    provider_id: Optional[str] = None  # Falls back to the manager's default provider
    model_name: Optional[str] = None
    enabled: bool = True
    metrics: Optional[AgentMetrics] = None  # Created on first invocation
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
