"""Base LLM client interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel


class Message(BaseModel):
    """Chat message sent to a completion backend."""
    role: str  # "system", "user", "assistant"
    content: str


class TokenUsage(BaseModel):
    """Exact token counts reported by a completion backend."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    usage: Optional[TokenUsage] = None
    model: str = ""
    finish_reason: Optional[str] = None


class LLMErrorCode(str, Enum):
    """Failure categories reported by completion backends."""
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMIT = "rate_limit"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST = "invalid_request"
    MODEL_NOT_FOUND = "model_not_found"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class LLMError(Exception):
    """A completion request failed.

    ``retryable`` is the backend's hint to outer callers; nothing in this
    package retries on its own.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        code: LLMErrorCode = LLMErrorCode.UNKNOWN,
        retryable: bool = False
    ):
        super().__init__(message)
        self.provider = provider
        self.code = code
        self.retryable = retryable

    def __str__(self) -> str:
        return f"{self.provider} ({self.code.value}): {self.args[0]}"


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            system_prompt: Optional system prompt sent ahead of the messages
            model: Optional per-request model override
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content, optional usage and the model that answered

        Raises:
            LLMError: If the request fails
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass


def error_from_sdk(provider: str, sdk, error: Exception) -> LLMError:
    """
    Translate an exception raised by a provider SDK into an LLMError.

    The openai and anthropic SDKs share exception class names, so one
    mapping serves both.

    Args:
        provider: Provider name reported on the error
        sdk: The imported SDK module (``openai`` or ``anthropic``)
        error: Exception raised by the SDK call

    Returns:
        LLMError carrying a failure code and a retryability hint
    """
    # Timeout subclasses connection error in both SDKs, so it goes first
    mapping = [
        ("APITimeoutError", LLMErrorCode.TIMEOUT, True),
        ("APIConnectionError", LLMErrorCode.NETWORK_ERROR, True),
        ("RateLimitError", LLMErrorCode.RATE_LIMIT, True),
        ("AuthenticationError", LLMErrorCode.INVALID_API_KEY, False),
        ("NotFoundError", LLMErrorCode.MODEL_NOT_FOUND, False),
        ("InternalServerError", LLMErrorCode.UNKNOWN, True),
    ]
    for class_name, code, retryable in mapping:
        error_class = getattr(sdk, class_name, None)
        if error_class is not None and isinstance(error, error_class):
            return LLMError(str(error), provider=provider, code=code, retryable=retryable)

    bad_request = getattr(sdk, "BadRequestError", None)
    if bad_request is not None and isinstance(error, bad_request):
        if "context_length" in str(error) or "too long" in str(error):
            return LLMError(str(error), provider=provider, code=LLMErrorCode.CONTEXT_LENGTH_EXCEEDED)
        return LLMError(str(error), provider=provider, code=LLMErrorCode.INVALID_REQUEST)

    return LLMError(str(error), provider=provider)
