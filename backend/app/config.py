import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGIN = "http://localhost:3000"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ASSISTANT_MODEL = "gpt-4-turbo-preview"
DEFAULT_TREND_CACHE_TTL_SECONDS = 60 * 60  # 1 hour


@dataclass(frozen=True)
class Settings:
    youtube_api_key: str | None
    openai_api_key: str | None
    openai_assistant_id: str | None
    openai_model: str
    openai_assistant_model: str
    supabase_url: str | None
    supabase_service_key: str | None
    cors_allowed_origins: str
    log_level: str
    trend_cache_ttl_seconds: int


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        youtube_api_key=os.getenv("YOUTUBE_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_assistant_id=os.getenv("OPENAI_ASSISTANT_ID"),
        openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        openai_assistant_model=os.getenv("OPENAI_ASSISTANT_MODEL") or DEFAULT_ASSISTANT_MODEL,
        supabase_url=(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "").rstrip("/") or None,
        supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
        cors_allowed_origins=(os.getenv("CORS_ALLOWED_ORIGINS") or "").strip(),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        trend_cache_ttl_seconds=_int_env("TREND_CACHE_TTL_SECONDS", DEFAULT_TREND_CACHE_TTL_SECONDS),
    )


def parse_cors_origins(raw: str) -> tuple[list[str], bool]:
    if not raw:
        return [DEFAULT_CORS_ORIGIN], True
    if raw == "*":
        return ["*"], False
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        return [DEFAULT_CORS_ORIGIN], True
    return origins, True
