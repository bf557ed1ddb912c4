"""LLM client factory."""

import logging
from enum import Enum
from typing import Dict, Optional

from config.settings import Settings
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider (openai or anthropic)
        api_key: API key for the provider
        model: Optional model override

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_backends(settings: Settings) -> Dict[str, BaseLLMClient]:
    """
    Build the provider id -> client map for every provider with an API key.

    The configured provider gets ``settings.llm_model``; the others use
    their default model.

    Args:
        settings: Application settings

    Returns:
        Mapping of provider id to LLM client
    """
    backends: Dict[str, BaseLLMClient] = {}
    keys = {
        LLMProvider.OPENAI: settings.openai_api_key,
        LLMProvider.ANTHROPIC: settings.anthropic_api_key,
    }

    for provider, api_key in keys.items():
        if not api_key:
            continue
        model = settings.llm_model if provider.value == settings.llm_provider else None
        backends[provider.value] = create_llm_client(provider, api_key=api_key, model=model)

    if not backends:
        logger.warning("No LLM API keys configured; no completion backends available")

    return backends
