"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None
    auto_create_tables: bool = True

    # Logging
    log_level: str = "INFO"

    # LLM provider (any OpenAI-compatible chat completions endpoint)
    llm_api_key: SecretStr | None = None
    llm_model: str = "gemini-2.0-flash"
    llm_base_url: str | None = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_temperature: float = 0.7
    llm_max_output_tokens: int = 1000

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Retrieval
    rag_max_chunks: int = 8
    legal_search_max_chunks: int = 15

    # Conversation history (authenticated users)
    history_limit: int = 10

    # Guest sessions
    guest_ttl_seconds: int = 3600
    guest_sweep_interval_seconds: int = 3600
    guest_max_messages: int | None = 50

    # Streaming pacing (milliseconds)
    stream_token_delay_ms: int = 10
    canned_token_delay_ms: int = 50

    # Keyword / pattern knowledge base override
    knowledge_base_path: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
