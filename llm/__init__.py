"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, LLMError, LLMErrorCode, TokenUsage
from .factory import create_llm_client, create_backends, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "LLMError",
    "LLMErrorCode",
    "TokenUsage",
    "create_llm_client",
    "create_backends",
    "LLMProvider",
]
