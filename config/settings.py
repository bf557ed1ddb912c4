"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override default model

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Context window budget
    max_context_tokens: int = Field(128000, gt=0)
    max_messages_before_compression: int = Field(50, gt=0)
    max_token_percentage: float = Field(80.0, gt=0, le=100)

    # Compression settings
    compression_strategy: str = "summarize"  # "summarize", "truncate" or "sliding-window"
    compression_target_tokens: int = Field(4000, gt=0)
    preserve_system_messages: bool = True
    preserve_recent_messages: int = Field(10, ge=0)
    summarization_prompt: Optional[str] = None

    # Turn settings
    turn_temperature: float = 0.7
    turn_max_tokens: int = 4096

    # Archival
    auto_archive_days: int = 30

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None

    def compression_config(self):
        """Build the CompressionConfig described by these settings."""
        from memory.models import CompressionConfig

        return CompressionConfig(
            strategy=self.compression_strategy,
            target_tokens=self.compression_target_tokens,
            preserve_system_messages=self.preserve_system_messages,
            preserve_recent_messages=self.preserve_recent_messages,
            summarization_prompt=self.summarization_prompt,
        )
