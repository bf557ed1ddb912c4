"""Conversation lifecycle management."""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from llm.base_client import BaseLLMClient, Message
from .compression import ConversationCompressor
from .context_tracker import ContextTracker
from .errors import (
    AgentNotFoundError,
    BackendNotFoundError,
    ConversationNotFoundError,
    NoAgentSpecifiedError,
)
from .models import (
    Agent,
    AgentMetrics,
    CompressionConfig,
    CompressionResult,
    Conversation,
    ConversationMessage,
    MessageRole,
)

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50


def generate_title(first_message: str) -> str:
    """Conversation title from the first user message."""
    truncated = first_message[:TITLE_MAX_LENGTH].strip()
    if len(first_message) > TITLE_MAX_LENGTH:
        return truncated + "..."
    return truncated


class ConversationManager:
    """
    Owns conversations and runs each turn against a completion backend.

    Conversations live in memory only; ``load_conversations`` and
    ``export_conversations`` are the hand-off points for whatever persists
    them. Every operation that changes a conversation holds that
    conversation's lock, so at most one turn is in flight per conversation
    while different conversations proceed in parallel.
    """

    def __init__(
        self,
        backends: Dict[str, BaseLLMClient],
        tracker: Optional[ContextTracker] = None,
        compressor: Optional[ConversationCompressor] = None,
        compression_config: Optional[CompressionConfig] = None,
        default_provider: str = "openai",
        temperature: float = 0.7,
        max_tokens: int = 4096,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize conversation manager.

        Args:
            backends: Completion backends keyed by provider id
            tracker: Context tracker (default thresholds if omitted)
            compressor: Compression engine
            compression_config: Config used for every compression run
            default_provider: Provider for agents that do not name one
            temperature: Sampling temperature for turns
            max_tokens: Response token cap for turns
            clock: Source of the current time
        """
        self.backends = dict(backends)
        self.tracker = tracker or ContextTracker()
        self.compressor = compressor or ConversationCompressor()
        self.compression_config = compression_config or CompressionConfig()
        self.default_provider = default_provider
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._clock = clock

        self._agents: Dict[str, Agent] = {}
        self._metrics_guard = threading.Lock()
        self._conversations: Dict[str, Conversation] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings, backends: Dict[str, BaseLLMClient]) -> "ConversationManager":
        """Create a manager configured from application settings."""
        return cls(
            backends=backends,
            tracker=ContextTracker.from_settings(settings),
            compression_config=settings.compression_config(),
            default_provider=settings.llm_provider,
            temperature=settings.turn_temperature,
            max_tokens=settings.turn_max_tokens,
        )

    # Agents

    def register_agent(self, agent: Agent) -> Agent:
        """Add or replace an agent."""
        self._agents[agent.id] = agent
        return agent

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def list_agents(self) -> List[Agent]:
        return list(self._agents.values())

    def remove_agent(self, agent_id: str) -> bool:
        return self._agents.pop(agent_id, None) is not None

    # Conversations

    def create(self, agent_id: Optional[str] = None) -> Conversation:
        """
        Start a new, empty conversation.

        Args:
            agent_id: Optional agent to bind to the conversation

        Returns:
            The new conversation
        """
        now = self._clock()
        conversation = Conversation(
            agent_id=agent_id,
            created_at=now,
            updated_at=now,
            last_active_at=now,
            context_state=self.tracker.initial_state(),
        )
        self._conversations[conversation.id] = conversation
        logger.info(f"Created conversation {conversation.id}")
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def list_all(self) -> List[Conversation]:
        return list(self._conversations.values())

    def list_active(self, days_threshold: int = 30) -> List[Conversation]:
        """
        Non-archived conversations active within the threshold.

        Args:
            days_threshold: How many days back counts as active

        Returns:
            Conversations, most recently active first
        """
        cutoff = self._clock() - timedelta(days=days_threshold)
        active = [
            c for c in self.list_all()
            if not c.archived and c.last_active_at > cutoff
        ]
        return sorted(active, key=lambda c: c.last_active_at, reverse=True)

    def append_turn(
        self,
        conversation_id: str,
        user_text: str,
        agent_id: Optional[str] = None
    ) -> ConversationMessage:
        """
        Send a user message and record the agent's reply.

        The user message is kept even when the backend fails. When the
        conversation goes over budget it is compressed before returning.

        Args:
            conversation_id: Conversation to continue
            user_text: The user's message
            agent_id: Agent to answer (defaults to the conversation's agent)

        Returns:
            The assistant message

        Raises:
            NotFoundError: If the conversation, agent or backend is missing
            NoAgentSpecifiedError: If no agent is given or bound
            LLMError: If the completion request fails
        """
        lock = self._lock_for(conversation_id)
        if lock is None:
            raise ConversationNotFoundError(conversation_id)

        with lock:
            conversation = self._require(conversation_id)

            target_agent_id = agent_id or conversation.agent_id
            if not target_agent_id:
                raise NoAgentSpecifiedError(conversation_id)

            agent = self._agents.get(target_agent_id)
            if agent is None:
                raise AgentNotFoundError(target_agent_id)

            provider_id = agent.provider_id or self.default_provider
            backend = self.backends.get(provider_id)
            if backend is None:
                raise BackendNotFoundError(provider_id)

            self._append(conversation, ConversationMessage(
                role=MessageRole.USER,
                content=user_text,
                timestamp=self._clock(),
            ))

            started = time.perf_counter()
            try:
                response = backend.chat(
                    messages=[Message(role=m.role.value, content=m.content) for m in conversation.messages],
                    system_prompt=agent.system_prompt or None,
                    model=agent.model_name,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens
                )
            except Exception:
                self._track_invocation(agent, None)
                raise
            response_time_ms = round((time.perf_counter() - started) * 1000)
            self._track_invocation(agent, response_time_ms)

            assistant_message = ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=response.content,
                timestamp=self._clock(),
                agent_id=agent.id,
                usage=response.usage,
                metadata={
                    "model": response.model or backend.get_model_name(),
                    "response_time_ms": response_time_ms,
                },
            )
            self._append(conversation, assistant_message)

            if not conversation.agent_id:
                conversation.agent_id = agent.id
            if not conversation.title:
                conversation.title = generate_title(user_text)

            state = self.tracker.recompute(conversation)
            if state.compression_triggered or self.tracker.should_compress(conversation):
                self._compress(conversation)

            return assistant_message

    def compress_conversation(self, conversation_id: str) -> Optional[CompressionResult]:
        """
        Compress a conversation now, outside the per-turn trigger.

        Args:
            conversation_id: Conversation to compress

        Returns:
            CompressionResult, or None if the conversation does not exist
        """
        lock = self._lock_for(conversation_id)
        if lock is None:
            return None

        with lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            return self._compress(conversation)

    def archive(self, conversation_id: str) -> bool:
        """Archive a conversation. Returns False if it does not exist."""
        lock = self._lock_for(conversation_id)
        if lock is None:
            return False

        with lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return False
            conversation.archived = True
            conversation.updated_at = self._clock()
            return True

    def delete(self, conversation_id: str) -> bool:
        """Delete a conversation. Returns False if it does not exist."""
        lock = self._lock_for(conversation_id)
        if lock is None:
            return False

        with lock:
            deleted = self._conversations.pop(conversation_id, None) is not None
        with self._locks_guard:
            self._locks.pop(conversation_id, None)
        if deleted:
            logger.info(f"Deleted conversation {conversation_id}")
        return deleted

    def auto_archive_stale(self, days_threshold: int = 30) -> int:
        """
        Archive conversations inactive for longer than the threshold.

        Conversations with a turn in flight are skipped.

        Args:
            days_threshold: Days of inactivity before archiving

        Returns:
            Number of conversations archived by this call
        """
        cutoff = self._clock() - timedelta(days=days_threshold)
        archived = 0

        for conversation in self.list_all():
            if conversation.archived or conversation.last_active_at >= cutoff:
                continue

            lock = self._lock_for(conversation.id)
            if lock is None or not lock.acquire(blocking=False):
                continue
            try:
                conversation.archived = True
                conversation.updated_at = self._clock()
                archived += 1
            finally:
                lock.release()

        if archived:
            logger.info(f"Auto-archived {archived} conversations inactive for {days_threshold}+ days")
        return archived

    def load_conversations(self, conversations: Iterable[Conversation]):
        """
        Take over conversations handed in by the storage layer.

        Context state is recomputed from each conversation's messages.
        """
        count = 0
        for conversation in conversations:
            self.tracker.recompute(conversation)
            self._conversations[conversation.id] = conversation
            count += 1
        logger.info(f"Loaded {count} conversations")

    def export_conversations(self) -> List[Conversation]:
        """All conversations, for the storage layer to persist."""
        return self.list_all()

    def _lock_for(self, conversation_id: str) -> Optional[threading.Lock]:
        """Lock of a stored conversation, or None if it does not exist."""
        with self._locks_guard:
            # delete() drops the conversation before its lock entry
            if conversation_id not in self._conversations:
                return None
            return self._locks.setdefault(conversation_id, threading.Lock())

    def _track_invocation(self, agent: Agent, response_time_ms: Optional[int]):
        """Count a backend call. ``response_time_ms`` is None when the call failed."""
        with self._metrics_guard:
            metrics = agent.metrics or AgentMetrics()
            metrics.total_invocations += 1
            if response_time_ms is not None:
                total_time = metrics.average_response_time * metrics.successful_invocations
                metrics.successful_invocations += 1
                metrics.average_response_time = (
                    (total_time + response_time_ms) / metrics.successful_invocations
                )
            metrics.last_updated = self._clock()
            agent.metrics = metrics

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def _append(self, conversation: Conversation, message: ConversationMessage):
        conversation.messages.append(message)
        conversation.updated_at = message.timestamp
        conversation.last_active_at = message.timestamp
        self.tracker.recompute(conversation)

    def _compress(self, conversation: Conversation) -> CompressionResult:
        """Compress with the bound agent's backend. Caller holds the lock."""
        agent = self._agents.get(conversation.agent_id) if conversation.agent_id else None
        provider_id = (agent.provider_id if agent else None) or self.default_provider

        result = self.compressor.compress(
            conversation,
            self.compression_config,
            backend=self.backends.get(provider_id)
        )

        result = result.model_copy(update={"timestamp": self._clock()})

        # Single assignment: the conversation is either fully rewritten or untouched
        conversation.messages = list(result.messages)
        self.tracker.mark_compressed(conversation, result.timestamp, result)
        return result
