from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # LLM provider: "openai" or "anthropic"
    llm_provider: str = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""  # Optional OpenAI-compatible proxy URL
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    llm_temperature: float = 0.2

    # Upper bound on a single perspective call before its fallback is used
    perspective_timeout_seconds: float = 30.0

    # Incident memory store (SQLite file; ":memory:" for throwaway runs)
    memory_db_path: str = "incidents.db"

    # Conversation history (empty string means disabled)
    conversation_history_dir: str = ""

    # Coordination context used by the CLI when --name is not given
    default_context: str = "default"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def active_model(self) -> str:
        return self.anthropic_model if self.llm_provider == "anthropic" else self.openai_model


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
