"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_OPENROUTER_BASE = "https://openrouter.ai/api/v1"


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    data_dir: Path = Field(..., description="Directory holding the vault and the chat database")
    openrouter_api_key: Optional[str] = Field(
        default=None,
        description="OpenRouter API key (model calls fail with a transport error when unset)",
    )
    openrouter_base_url: str = Field(default=DEFAULT_OPENROUTER_BASE)
    chat_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model for the streamed retrieval-grounded modes",
    )
    copilot_model: str = Field(
        default="google/gemini-2.5-pro",
        description="Model for the tool-calling Copilot mode",
    )
    search_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model used to rank notes for semantic search",
    )
    request_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")
    history_limit: int = Field(default=100, ge=1, description="Messages kept per mode on disk")
    max_tool_iterations: int = Field(
        default=10, ge=1, description="Tool rounds allowed before a Copilot turn is aborted"
    )
    retrieval_limit: int = Field(default=5, ge=1, description="Notes retrieved for grounding")
    excerpt_chars: int = Field(default=2000, ge=1, description="Max characters per source excerpt")

    @field_validator("data_dir", mode="before")
    @classmethod
    def _normalize_data_dir(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("DATA_DIR is required")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("openrouter_api_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def vault_path(self) -> Path:
        return self.data_dir / "vault"

    @property
    def database_path(self) -> Path:
        return self.data_dir / "chat.db"


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    defaults = AppConfig.model_fields
    config = AppConfig(
        data_dir=_read_env("DATA_DIR", str(DEFAULT_DATA_DIR)),
        openrouter_api_key=_read_env("OPENROUTER_API_KEY"),
        openrouter_base_url=_read_env("OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE),
        chat_model=_read_env("CHAT_MODEL", defaults["chat_model"].default),
        copilot_model=_read_env("COPILOT_MODEL", defaults["copilot_model"].default),
        search_model=_read_env("SEARCH_MODEL", defaults["search_model"].default),
        request_timeout=_read_env("REQUEST_TIMEOUT", "60"),
        history_limit=_read_env("CHAT_HISTORY_LIMIT", "100"),
        max_tool_iterations=_read_env("MAX_TOOL_ITERATIONS", "10"),
        retrieval_limit=_read_env("RETRIEVAL_LIMIT", "5"),
        excerpt_chars=_read_env("EXCERPT_CHARS", "2000"),
    )
    # Ensure the data directory exists for downstream services.
    config.data_dir.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = ["AppConfig", "get_config", "reload_config", "PROJECT_ROOT", "DEFAULT_DATA_DIR"]
