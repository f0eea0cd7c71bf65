"""
config.py: Environment-based configuration using Pydantic Settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent

VALID_REGIONS = {"PH", "US", "EU", "global"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Catalog ──────────────────────────────────────────────────────────
    catalog_path: str = "data/pump_catalog.json"
    own_brand: str = "Grundfos"

    # ── Economics ────────────────────────────────────────────────────────
    region: str = "PH"  # PH | US | EU | global
    lifecycle_years: int = 10

    # ── LLM intent extraction ────────────────────────────────────────────
    llm_enabled: bool = False
    llm_api_url: str = "https://api.groq.com/openai/v1/chat/completions"
    llm_api_key: Optional[str] = None
    llm_model: str = "llama-3.1-8b-instant"
    llm_max_tokens: int = 200
    llm_temperature: float = 0.0
    llm_timeout_seconds: float = 4.0
    llm_history_window: int = 6

    # ── CORS ─────────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ── Server ───────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # ── Computed Properties ──────────────────────────────────────────────

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def catalog_file(self) -> Path:
        """Catalog path, resolved against the project root when relative."""
        path = Path(self.catalog_path)
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        return path

    @property
    def llm_configured(self) -> bool:
        return self.llm_enabled and bool(self.llm_api_key)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        canonical = {r.lower(): r for r in VALID_REGIONS}
        if v.lower() not in canonical:
            raise ValueError(f"region must be one of {VALID_REGIONS}")
        return canonical[v.lower()]

    @field_validator("llm_history_window")
    @classmethod
    def validate_history_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("llm_history_window must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
