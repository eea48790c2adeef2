"""
Application Configuration

Centralized settings management using Pydantic BaseSettings.
All values are loaded from environment variables or .env file.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable binding.

    Required env vars (no defaults):
        POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB

    Credentials:
        OPENAI_API_KEY is optional at load time. Services that need it
        raise ``ConfigurationError`` on construction when it is missing.
    """

    PROJECT_NAME: str = "docvault"

    # Database
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str
    DB_POOL_SIZE: int = 5

    # OpenAI (embeddings + chat)
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None

    # Embeddings
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_BATCH_SIZE: int = 5
    EMBEDDING_BATCH_DELAY: float = 0.2  # seconds between sequential batches
    EMBEDDING_TRUNCATE_CHARS: int = 6000
    EMBEDDING_TIMEOUT: float = 30.0

    # Generation
    LLM_PROVIDER: str = "openai"  # "openai" | "ollama"
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT: float = 120.0
    OLLAMA_BASE_URL: str = "http://localhost:11434"

    # Retrieval defaults
    SEARCH_LIMIT: int = 10
    SEARCH_THRESHOLD: float = 0.3  # maximum cosine distance
    HYBRID_ALPHA: float = 0.7

    # Ingestion
    PREVIEW_LENGTH: int = 500

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    @property
    def DATABASE_URL(self) -> str:
        """Async PostgreSQL connection string using asyncpg driver."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()  # type: ignore[call-arg]
