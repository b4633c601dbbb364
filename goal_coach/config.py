import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel

UNDO_WINDOW_SECONDS = 30


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    proposal_ttl_minutes: int = 15
    coach_cache_ttl_hours: int = 24
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "openai/gpt-4o-mini"
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    client_origin: str = "http://localhost:5173"
    ai_timeout_seconds: float = 12.0
    log_level: str = "INFO"

    @property
    def cache_ttl_hours(self) -> int:
        return max(self.coach_cache_ttl_hours, 1)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            proposal_ttl_minutes=max(_env_int("COACH_PROPOSAL_TTL_MINUTES", 15), 1),
            coach_cache_ttl_hours=_env_int("COACH_CACHE_TTL_HOURS", 24),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            openrouter_model=os.getenv("OPENROUTER_MODEL") or "openai/gpt-4o-mini",
            openrouter_url=os.getenv("OPENROUTER_URL") or "https://openrouter.ai/api/v1/chat/completions",
            client_origin=os.getenv("CLIENT_ORIGIN") or "http://localhost:5173",
            ai_timeout_seconds=_env_float("COACH_AI_TIMEOUT_SECONDS", 12.0),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
