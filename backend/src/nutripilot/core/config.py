from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ROOT = Path(__file__).resolve().parents[3]
ENV_PATH = BACKEND_ROOT / ".env"

# Load environment variables as early as possible so Settings picks them up.
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "PhysiquePilot Nutrition API"
    app_version: str = "0.1.0"
    docs_url: str = "/docs"
    log_level: str = "INFO"

    database_url: str = f"sqlite+aiosqlite:///{(BACKEND_ROOT / 'nutripilot.db').as_posix()}"
    database_echo: bool = False

    # Estimation fallback (OpenAI-compatible chat completions endpoint)
    openai_api_key: Optional[str] = None
    estimation_base_url: str = "https://api.openai.com/v1"
    estimation_model: str = "gpt-4o-mini"
    estimation_timeout_s: float = 60.0
    estimate_cache_max_entries: int = 256
    estimate_cache_ttl_s: float = 6 * 60 * 60

    # USDA FoodData Central
    fdc_api_key: Optional[str] = None
    fdc_base_url: str = "https://api.nal.usda.gov/fdc"


@lru_cache
def get_settings() -> Settings:
    return Settings()
