"""Pipeline configuration. All sensitive config from .env."""
from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings from environment."""

    # Database - default SQLite for easy local dev; use DATABASE_URL for PostgreSQL
    database_url: str = "sqlite:///./signals.db"

    # SQLAlchemy pooling (Postgres only).
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_s: int = 30
    db_pool_recycle_s: int = 1800

    # SQLite concurrency tuning (used when DATABASE_URL starts with sqlite://)
    sqlite_busy_timeout_ms: int = 5000

    # AI - set OPENAI_API_KEY for OpenAI extraction
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.1

    # Local fallback provider (Ollama). Empty base URL disables it.
    ollama_base_url: str = ""
    ollama_model: str = "llama3.1"

    # Providers are tried in this order; first accepted response wins.
    llm_provider_chain: list[str] = ["openai", "ollama"]
    # Deadline for a single LLM call. Exceeding it counts as an extraction failure.
    llm_timeout_s: float = 45.0
    llm_max_tokens: int = 2500

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None  # defaults to redis_url if not set

    # Signals pipeline switches
    signals_decision_execution_enabled: bool = True
    signals_email_facts_extraction_enabled: bool = True
    # Below this extraction confidence only low-risk steps may run.
    signals_min_extraction_confidence: float = 0.6
    # Directory that "gleania://" schema URIs resolve under (defaults to backend/).
    signals_schemas_root: Optional[str] = None

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url


settings = Settings()


@dataclass(frozen=True)
class PipelineConfig:
    """
    Explicit switches for one pipeline invocation.

    Built once at the entry point (task, script, API) and handed down, so the
    decisioning code never reads global settings on its own.
    """

    execution_enabled: bool = True
    facts_extraction_enabled: bool = True
    min_extraction_confidence: float = 0.6
    provider_chain: tuple[str, ...] = ("openai", "ollama")
    llm_timeout_s: float = 45.0
    llm_max_tokens: int = 2500

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "PipelineConfig":
        s = s or settings
        return cls(
            execution_enabled=bool(s.signals_decision_execution_enabled),
            facts_extraction_enabled=bool(s.signals_email_facts_extraction_enabled),
            min_extraction_confidence=float(s.signals_min_extraction_confidence),
            provider_chain=tuple(s.llm_provider_chain or ()),
            llm_timeout_s=float(s.llm_timeout_s),
            llm_max_tokens=int(s.llm_max_tokens),
        )
