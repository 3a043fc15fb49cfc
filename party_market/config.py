import os
from functools import lru_cache

from pydantic_settings import BaseSettings

# Heroku/Render set DATABASE_URL and PORT without a prefix -- map them to
# the PARTY_MARKET_-prefixed names that pydantic-settings expects.
if "DATABASE_URL" in os.environ and "PARTY_MARKET_DATABASE_URL" not in os.environ:
    _url = os.environ["DATABASE_URL"]
    if _url.startswith("postgres://"):
        _url = _url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif _url.startswith("postgresql://"):
        _url = _url.replace("postgresql://", "postgresql+asyncpg://", 1)
    os.environ["PARTY_MARKET_DATABASE_URL"] = _url

if "PORT" in os.environ and "PARTY_MARKET_PORT" not in os.environ:
    os.environ["PARTY_MARKET_PORT"] = os.environ["PORT"]


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./party_market.db"
    JWT_SECRET: str = "dev-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 720
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # Narrative generator: "template" (offline) or "llm"
    EVENT_GENERATOR: str = "template"
    EVENT_GENERATOR_TIMEOUT: float = 20.0
    LLM_API_URL: str = "https://api.openai.com/v1/chat/completions"
    LLM_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    EVENTS_TONE: str = "Write in a casual, friendly tone"
    EVENTS_LANGUAGE: str = "English"

    # Optional timeout-driven advancing; 0 disables the loop.
    AUTO_ADVANCE_SECONDS: int = 0
    AUTO_ADVANCE_TICK: float = 1.0

    model_config = {"env_prefix": "PARTY_MARKET_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
