from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Literal, Optional

class Settings(BaseSettings):
    # Any OpenAI-compatible endpoint: Ollama (/v1), OpenRouter, OpenAI itself.
    LLM_BASE_URL: str = Field("http://localhost:11434/v1", description="Chat completions base URL")
    LLM_API_KEY: str = Field("ollama", description="API key for the chat completions endpoint")
    MODEL: str = "llama3.1"
    MODEL_FAST: Optional[str] = Field(None, description="Cheaper model for planning/claim extraction")
    LLM_TIMEOUT_S: float = 60.0
    LLM_MAX_RETRIES: int = 1
    LLM_TEMPERATURE: float = 0.2

    SERPER_API_KEY: Optional[str] = Field(None, description="Serper.dev API key for web search")
    SEARCH_TOP_K: int = 6

    CACHE_BACKEND: Literal["sqlite", "memory"] = "sqlite"
    CACHE_DB_PATH: str = Field("./cache.sqlite", description="Path to SQLite cache database")
    ARTIFACT_TTL_S: int = 2 * 60 * 60
    SEARCH_TTL_S: int = 30 * 60
    FETCH_TTL_S: int = 6 * 60 * 60
    EXTRACT_TTL_S: int = 24 * 60 * 60

    RESEARCH_BUDGET_MS: int = 7000
    RESEARCH_CONCURRENCY: int = 3
    MAX_SOURCES: int = 6
    MAX_VERIFIED_CLAIMS: int = 4

    FETCH_CONNECT_TIMEOUT_S: float = 4.0
    FETCH_READ_TIMEOUT_S: float = 7.0
    FETCH_HARD_TIMEOUT_S: float = 8.0

    LOG_LEVEL: str = "INFO"

    # MLflow settings
    MLFLOW_TRACKING_URI: str = Field("http://127.0.0.1:5000", description="MLflow tracking server URI")
    MLFLOW_ENABLE_TRACING: bool = Field(False, description="Enable MLflow tracing")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def fast_model(self) -> str:
        return self.MODEL_FAST or self.MODEL

@lru_cache()
def get_settings() -> Settings:
    return Settings()
