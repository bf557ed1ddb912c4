"""Approximate token accounting for conversations.

Token counts here are estimates: four characters count as one token,
rounded up. When a completion backend reports exact usage for a message,
that total is used for the message instead.
"""

import math
from typing import Iterable

from .models import ConversationMessage

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate the token count of a piece of text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def message_tokens(message: ConversationMessage) -> int:
    """Token count of one message, preferring backend-reported usage."""
    if message.usage is not None:
        return message.usage.total_tokens
    return estimate_tokens(message.content)


def conversation_tokens(messages: Iterable[ConversationMessage]) -> int:
    """Total token count of a message list."""
    return sum(message_tokens(message) for message in messages)
