from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ------------------------------------------------------------------
    # App / database
    # ------------------------------------------------------------------
    DATABASE_URL: str = "sqlite:///./meetai_dev.db"
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Dashboard API key (X-API-Key). Unset means open in dev.
    API_KEY: Optional[str] = None

    # ------------------------------------------------------------------
    # Redis / RQ
    # ------------------------------------------------------------------
    # empty disables the processing queue (health reports it as skipped)
    REDIS_URL: str = "redis://redis:6379/0"
    RQ_QUEUE: str = "default"

    # ------------------------------------------------------------------
    # LLM (OpenAI, or Azure OpenAI when endpoint + key are set)
    # ------------------------------------------------------------------
    OPENAI_API_KEY: Optional[str] = None
    LLM_MODEL: str = "gpt-4o-mini"

    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_DEPLOYMENT: str = "gpt-4o-mini"
    AZURE_OPENAI_API_VERSION: str = "2024-10-21"

    # ------------------------------------------------------------------
    # Stream video / chat
    # ------------------------------------------------------------------
    STREAM_API_KEY: Optional[str] = None
    STREAM_API_SECRET: Optional[str] = None

    # ------------------------------------------------------------------
    # Voice client
    # ------------------------------------------------------------------
    AZURE_SPEECH_KEY: Optional[str] = None
    AZURE_SPEECH_REGION: Optional[str] = None
    SPEECH_LANGUAGE: str = "en-US"
    # e.g. "en-US-JennyNeural"; unset uses the region default voice
    SPEECH_VOICE_NAME: Optional[str] = None
    VOICE_AGENT_URL: str = "http://localhost:8000/api/voice-agent"

    @property
    def use_azure_openai(self) -> bool:
        return bool(self.AZURE_OPENAI_ENDPOINT and self.AZURE_OPENAI_API_KEY)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor so the env is read once per process."""
    return Settings()


settings = get_settings()
