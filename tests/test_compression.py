"""Tests for conversation compression strategies."""

import pytest
from unittest.mock import Mock
from llm.base_client import BaseLLMClient, LLMError, LLMResponse
from memory.compression import ConversationCompressor, SUMMARY_HEADER
from memory.models import (
    CompressionConfig,
    CompressionStrategy,
    Conversation,
    ConversationMessage,
    MessageRole,
)


def make_conversation(count: int, with_system: bool = True) -> Conversation:
    """System prompt message followed by alternating user/assistant messages."""
    messages = []
    if with_system:
        messages.append(ConversationMessage(role=MessageRole.SYSTEM, content="Be concise."))
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    for i in range(count):
        messages.append(ConversationMessage(role=roles[i % 2], content=f"message {i} " + "x" * 30))
    return Conversation(messages=messages)


def make_backend(content: str = "User prefers Python. Decided on option B.") -> Mock:
    backend = Mock(spec=BaseLLMClient)
    backend.chat.return_value = LLMResponse(content=content, model="summary-model")
    return backend


def ids(messages):
    return [m.id for m in messages]


class TestCompressionInvariants:
    """Test properties shared by every strategy."""

    def setup_method(self):
        """Set up test fixtures."""
        self.compressor = ConversationCompressor()
        self.conversation = make_conversation(20)

    @pytest.mark.parametrize("strategy", [s.value for s in CompressionStrategy])
    def test_ids_partition_original_messages(self, strategy):
        """Test preserved and removed ids split the original set exactly."""
        config = CompressionConfig(strategy=strategy, preserve_recent_messages=6)
        original_ids = ids(self.conversation.messages)

        result = self.compressor.compress(self.conversation, config, backend=make_backend())

        preserved = result.preserved_message_ids
        removed = result.removed_message_ids
        assert len(set(preserved)) == len(preserved)
        assert len(set(removed)) == len(removed)
        assert set(preserved).isdisjoint(removed)
        assert set(preserved) | set(removed) == set(original_ids)
        assert len(preserved) + len(removed) == len(original_ids)

    @pytest.mark.parametrize("strategy", [s.value for s in CompressionStrategy])
    def test_counts_are_consistent(self, strategy):
        """Test the compressed count matches the preserved ids."""
        config = CompressionConfig(strategy=strategy, preserve_recent_messages=6)

        result = self.compressor.compress(self.conversation, config, backend=make_backend())

        assert result.original_message_count == 21
        assert result.compressed_message_count == len(result.preserved_message_ids)

    @pytest.mark.parametrize("strategy", [s.value for s in CompressionStrategy])
    def test_conversation_is_not_modified(self, strategy):
        """Test compression hands back a new list instead of editing in place."""
        config = CompressionConfig(strategy=strategy, preserve_recent_messages=6)
        before = ids(self.conversation.messages)

        self.compressor.compress(self.conversation, config, backend=make_backend())

        assert ids(self.conversation.messages) == before

    def test_unknown_strategy_falls_back_to_truncate(self):
        """Test unrecognized strategies truncate instead of failing."""
        config = CompressionConfig(strategy="semantic-merge", preserve_recent_messages=4)

        result = self.compressor.compress(self.conversation, config)

        assert result.strategy == CompressionStrategy.TRUNCATE
        assert ids(result.messages) == ids(self.conversation.messages[:1] + self.conversation.messages[-4:])


class TestSummarizeStrategy:
    """Test summarization with a completion backend."""

    def setup_method(self):
        """Set up test fixtures."""
        self.compressor = ConversationCompressor()
        self.conversation = make_conversation(20)
        self.config = CompressionConfig(strategy="summarize", preserve_recent_messages=10)

    def test_summary_replaces_older_messages(self):
        """Test the summary message is followed by the preserved tail."""
        backend = make_backend()
        recent = self.conversation.messages[-10:]

        result = self.compressor.compress(self.conversation, self.config, backend=backend)

        summary_message = result.messages[0]
        assert summary_message.role == MessageRole.SYSTEM
        assert summary_message.is_summary
        assert summary_message.metadata["summarized_messages"] == 11
        assert summary_message.content == f"{SUMMARY_HEADER}\nUser prefers Python. Decided on option B."
        assert result.summary_message_id == summary_message.id
        assert ids(result.messages[1:]) == ids(recent)
        assert result.preserved_message_ids == ids(recent)
        assert result.removed_message_ids == ids(self.conversation.messages[:11])
        assert result.summary == "User prefers Python. Decided on option B."
        assert result.strategy == CompressionStrategy.SUMMARIZE

    def test_compressed_tokens_use_fixed_ratio(self):
        """Test the post-summary token count is the 30% estimate."""
        result = self.compressor.compress(self.conversation, self.config, backend=make_backend())

        assert result.compressed_token_count == int(result.original_token_count * 0.3)

    def test_request_parameters(self):
        """Test one low-temperature request capped by the target budget."""
        backend = make_backend()

        self.compressor.compress(self.conversation, self.config, backend=backend)

        backend.chat.assert_called_once()
        kwargs = backend.chat.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000

        prompt = kwargs["messages"][0].content
        assert "Key decisions made" in prompt
        assert "system: Be concise." in prompt
        assert "user: message 0" in prompt
        assert "assistant: message 1" in prompt
        # Preserved messages are not sent for summarization
        assert "message 19" not in prompt

    def test_small_target_caps_summary_length(self):
        """Test the response cap is half the target when that is smaller."""
        backend = make_backend()
        config = CompressionConfig(strategy="summarize", target_tokens=600, preserve_recent_messages=10)

        self.compressor.compress(self.conversation, config, backend=backend)

        assert backend.chat.call_args.kwargs["max_tokens"] == 300

    def test_custom_prompt(self):
        """Test a caller-supplied instruction replaces the built-in one."""
        backend = make_backend()
        config = CompressionConfig(
            strategy="summarize",
            preserve_recent_messages=10,
            summarization_prompt="List every open task."
        )

        self.compressor.compress(self.conversation, config, backend=backend)

        prompt = backend.chat.call_args.kwargs["messages"][0].content
        assert prompt.startswith("List every open task.")
        assert "Key decisions made" not in prompt
        assert "user: message 0" in prompt

    def test_short_history_is_noop(self):
        """Test nothing is summarized when history fits in the preserved tail."""
        backend = make_backend()
        conversation = make_conversation(9)

        result = self.compressor.compress(conversation, self.config, backend=backend)

        backend.chat.assert_not_called()
        assert result.compressed_message_count == result.original_message_count == 10
        assert result.removed_message_ids == []
        assert ids(result.messages) == ids(conversation.messages)
        assert result.compressed_token_count == result.original_token_count

    def test_backend_failure_matches_truncate(self):
        """Test a failed summary gives the same result as truncating."""
        backend = make_backend()
        backend.chat.side_effect = LLMError("rate limited", provider="openai", retryable=True)

        result = self.compressor.compress(self.conversation, self.config, backend=backend)
        expected = self.compressor.truncate(self.conversation, self.config)

        assert result.strategy == CompressionStrategy.TRUNCATE
        assert result.summary is None
        assert result.preserved_message_ids == expected.preserved_message_ids
        assert result.removed_message_ids == expected.removed_message_ids
        assert result.compressed_message_count == expected.compressed_message_count
        assert result.compressed_token_count == expected.compressed_token_count
        assert ids(result.messages) == ids(expected.messages)

    def test_unexpected_backend_error_also_falls_back(self):
        """Test non-LLMError failures are recovered the same way."""
        backend = make_backend()
        backend.chat.side_effect = ConnectionError("socket closed")

        result = self.compressor.compress(self.conversation, self.config, backend=backend)

        assert result.strategy == CompressionStrategy.TRUNCATE

    def test_missing_backend_falls_back(self):
        """Test summarize without a backend truncates."""
        result = self.compressor.compress(self.conversation, self.config, backend=None)

        assert result.strategy == CompressionStrategy.TRUNCATE


class TestTruncateStrategy:
    """Test truncation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.compressor = ConversationCompressor()

    def test_keeps_system_and_recent_messages(self):
        """Test system messages come first, then the recent tail."""
        conversation = make_conversation(20)
        config = CompressionConfig(strategy="truncate", preserve_recent_messages=4)

        result = self.compressor.compress(conversation, config)

        expected = [conversation.messages[0]] + conversation.messages[-4:]
        assert ids(result.messages) == ids(expected)
        assert result.removed_message_ids == ids(conversation.messages[1:-4])

    def test_system_messages_in_middle_are_kept(self):
        """Test every system message survives, not only the first."""
        conversation = make_conversation(10)
        note = ConversationMessage(role=MessageRole.SYSTEM, content="Context note")
        conversation.messages.insert(5, note)
        config = CompressionConfig(strategy="truncate", preserve_recent_messages=2)

        result = self.compressor.compress(conversation, config)

        assert ids(result.messages) == [conversation.messages[0].id, note.id] + ids(conversation.messages[-2:])

    def test_system_messages_not_exempt(self):
        """Test system messages can be dropped when not preserved."""
        conversation = make_conversation(10)
        config = CompressionConfig(
            strategy="truncate",
            preserve_system_messages=False,
            preserve_recent_messages=3
        )

        result = self.compressor.compress(conversation, config)

        assert ids(result.messages) == ids(conversation.messages[-3:])

    def test_removes_at_most_original_minus_preserved(self):
        """Test truncation never drops more than it must."""
        conversation = make_conversation(15, with_system=False)

        for preserve in (0, 1, 5, 15, 30):
            config = CompressionConfig(strategy="truncate", preserve_recent_messages=preserve)
            result = self.compressor.compress(conversation, config)
            assert len(result.removed_message_ids) <= max(0, 15 - preserve)

    def test_token_estimate_scales_with_kept_fraction(self):
        """Test the compressed token count is proportional to messages kept."""
        conversation = Conversation(messages=[
            ConversationMessage(role=MessageRole.USER, content="a" * 40)
            for _ in range(10)
        ])
        config = CompressionConfig(strategy="truncate", preserve_recent_messages=4)

        result = self.compressor.compress(conversation, config)

        assert result.original_token_count == 100
        assert result.compressed_token_count == 40

    def test_empty_conversation(self):
        """Test an empty conversation compresses to nothing without error."""
        result = self.compressor.compress(Conversation(), CompressionConfig(strategy="truncate"))

        assert result.original_message_count == 0
        assert result.compressed_token_count == 0
        assert result.messages == []


class TestSlidingWindowStrategy:
    """Test sliding-window compression."""

    def setup_method(self):
        """Set up test fixtures."""
        self.compressor = ConversationCompressor()

    def test_keeps_last_messages_regardless_of_role(self):
        """Test only the window survives, system messages included."""
        conversation = make_conversation(12)
        config = CompressionConfig(strategy="sliding-window", preserve_recent_messages=5)

        result = self.compressor.compress(conversation, config)

        assert ids(result.messages) == ids(conversation.messages[-5:])
        assert result.removed_message_ids == ids(conversation.messages[:-5])
        assert result.strategy == CompressionStrategy.SLIDING_WINDOW

    def test_zero_window_removes_everything(self):
        """Test a zero-size window keeps no messages."""
        conversation = make_conversation(4)
        config = CompressionConfig(strategy="sliding-window", preserve_recent_messages=0)

        result = self.compressor.compress(conversation, config)

        assert result.messages == []
        assert result.compressed_message_count == 0
        assert len(result.removed_message_ids) == 5

    def test_window_larger_than_history(self):
        """Test nothing is removed when the window covers the history."""
        conversation = make_conversation(4)
        config = CompressionConfig(strategy="sliding-window", preserve_recent_messages=10)

        result = self.compressor.compress(conversation, config)

        assert result.removed_message_ids == []
        assert result.compressed_token_count == result.original_token_count
