from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import Optional, Any
import logging


class Settings(BaseSettings):
    # App
    APP_NAME: str = "LearnFlow"
    ENVIRONMENT: str = "development" # development, production, test
    SECRET_KEY: str = "super-secret-key-change-in-production"

    # Database
    DATABASE_URL: str
    POSTGRES_URL: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def check_database_url(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if not data.get("DATABASE_URL") and data.get("POSTGRES_URL"):
                data["DATABASE_URL"] = data.get("POSTGRES_URL")
        return data

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql://", 1)
        return v

    # AI (any OpenAI-compatible endpoint; OpenRouter by default)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENAI_MODEL: str = "openai/gpt-4o-mini"
    OPENAI_FALLBACK_MODEL: str = "openai/gpt-3.5-turbo"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_TEMPERATURE: float = 0.5
    AI_MAX_TOKENS: int = 1500

    # Progress cascade
    PROGRESS_RETRY_ATTEMPTS: int = 3

    class Config:
        env_file = ".env"
        extra = "ignore" # Prevent crash on extra env vars

settings = Settings()

if not settings.OPENAI_API_KEY:
    logging.getLogger(__name__).warning(
        "OPENAI_API_KEY is missing. Adaptive suggestions will use the rule-based generator."
    )
