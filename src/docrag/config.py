"""
Configuration management using Pydantic Settings.

All configuration is loaded from environment variables with sensible defaults.
Use a .env file for local development.

Environment Variables:
    OPENAI_API_KEY: Provider API key (optional; without it retrieval runs in keyword mode)
    OPENAI_BASE_URL: Base URL of the OpenAI-compatible provider
    EMBEDDING_MODEL: Embedding model name
    CHAT_MODEL: Chat completion model name
    CHUNK_SIZE_CHARS: Characters per passage
    OVERLAP_CHARS: Overlap between consecutive passages
    TOP_K: Number of passages handed to the answer synthesizer
    INDEX_BACKEND: Preferred vector index backend (faiss or linear)
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Provider
    # ==========================================================================
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="Provider API key; embeddings and chat are disabled without it",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible provider",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Timeout in seconds for every provider request",
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Initial backoff in seconds before the single transient retry",
    )

    # ==========================================================================
    # Model Configuration
    # ==========================================================================
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used for passages and queries",
    )
    embedding_dimension: int = Field(
        default=1536,
        ge=1,
        description="Dimension of embedding vectors (must match model)",
    )
    embedding_batch_size: int = Field(
        default=64,
        ge=1,
        le=2048,
        description="Maximum number of texts per embedding request",
    )
    chat_model: str = Field(
        default="gpt-4o-mini",
        description="Chat completion model used for answers and titles",
    )
    llm_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Temperature for answer generation",
    )

    # ==========================================================================
    # Chunking Configuration
    # ==========================================================================
    chunk_size_chars: int = Field(
        default=1200,
        ge=2,
        le=20000,
        description="Target size in characters for passages",
    )
    overlap_chars: int = Field(
        default=200,
        ge=1,
        description="Overlap in characters between consecutive passages",
    )

    # ==========================================================================
    # Retrieval Configuration
    # ==========================================================================
    top_k: int = Field(
        default=8,
        ge=1,
        le=50,
        description="Number of passages to retrieve",
    )
    min_similarity: float = Field(
        default=0.2,
        ge=-1.0,
        le=1.0,
        description="Minimum cosine similarity for retrieved passages",
    )
    index_backend: Literal["faiss", "linear"] = Field(
        default="faiss",
        description="Preferred vector index backend; linear is always available",
    )
    max_context_chars: int = Field(
        default=6000,
        ge=200,
        description="Upper bound on the context block sent to the language model",
    )

    # ==========================================================================
    # Keyword Fallback Configuration
    # ==========================================================================
    keyword_sample_limit: int = Field(
        default=500,
        ge=1,
        description="Maximum passages sampled for extractive summaries",
    )
    keyword_result_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum lexical hits returned by the keyword searcher",
    )
    summary_sentences: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of sentences in an extractive summary",
    )
    snippet_radius: int = Field(
        default=160,
        ge=10,
        description="Characters kept on each side of a keyword hit",
    )

    # ==========================================================================
    # Ingestion Configuration
    # ==========================================================================
    ingest_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Documents processed in parallel during bulk ingestion",
    )

    # ==========================================================================
    # Observability Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    enable_tracing: bool = Field(
        default=False,
        description="Emit OpenTelemetry spans around retrieval operations",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================
    @field_validator("overlap_chars")
    @classmethod
    def validate_overlap(cls, v: int, info) -> int:
        """Ensure overlap is less than chunk size."""
        chunk_size = info.data.get("chunk_size_chars", 1200)
        if v >= chunk_size:
            raise ValueError(
                f"overlap_chars ({v}) must be less than chunk_size_chars ({chunk_size})"
            )
        return v

    @field_validator("openai_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.rstrip("/")

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def openai_api_key_value(self) -> Optional[str]:
        """Get the actual API key value (use sparingly)."""
        if self.openai_api_key:
            return self.openai_api_key.get_secret_value()
        return None

    @property
    def has_provider_credentials(self) -> bool:
        """Whether embeddings and chat completions can be attempted at all."""
        return bool(self.openai_api_key_value)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call `get_settings.cache_clear()` to reload settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience alias
settings = get_settings()
