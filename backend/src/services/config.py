"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "documents.db"


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    database_path: Path = Field(
        default=DEFAULT_DB_PATH, description="SQLite file backing the document store"
    )
    jwt_secret_key: Optional[str] = Field(
        default=None,
        description="HMAC secret for JWT signing (required for JWT/HTTP auth)",
    )
    enable_local_mode: bool = Field(
        default=True,
        description="Allow local-dev token bypass when running locally",
    )
    local_dev_token: Optional[str] = Field(
        default="local-dev-token",
        description="Static token accepted in local mode for development",
    )
    enable_noauth: bool = Field(
        default=False,
        description="Serve requests without a token as the demo user",
    )
    cors_origins: tuple[str, ...] = Field(
        default=("http://localhost:5173", "http://localhost:3000"),
    )
    snippet_tokens: int = Field(
        default=32, ge=4, le=64, description="Tokens per FTS5 body-text excerpt"
    )
    summary_snippet_length: int = Field(
        default=200, ge=40, description="Max characters of a summary excerpt"
    )
    suggest_max_limit: int = Field(default=50, ge=1, le=500)

    @field_validator("database_path", mode="before")
    @classmethod
    def _normalize_database_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            return DEFAULT_DB_PATH
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("jwt_secret_key", mode="before")
    @classmethod
    def _ensure_secret(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(
                "JWT_SECRET_KEY cannot be empty; unset the variable to disable JWT auth in local mode"
            )
        if len(cleaned) < 16:
            raise ValueError("JWT_SECRET_KEY must be at least 16 characters")
        return cleaned


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _read_flag(key: str, default: str) -> bool:
    return (_read_env(key, default) or "").lower() not in {"0", "false", "no", ""}


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    cors_raw = _read_env("CORS_ORIGINS")
    overrides = {}
    if cors_raw:
        overrides["cors_origins"] = tuple(
            origin.strip() for origin in cors_raw.split(",") if origin.strip()
        )
    for field_name, env_key in (
        ("snippet_tokens", "SEARCH_SNIPPET_TOKENS"),
        ("summary_snippet_length", "SEARCH_SUMMARY_SNIPPET_LENGTH"),
        ("suggest_max_limit", "SEARCH_SUGGEST_MAX_LIMIT"),
    ):
        raw = _read_env(env_key)
        if raw:
            overrides[field_name] = int(raw)

    config = AppConfig(
        database_path=_read_env("DATABASE_PATH", str(DEFAULT_DB_PATH)),
        jwt_secret_key=_read_env("JWT_SECRET_KEY"),
        enable_local_mode=_read_flag("ENABLE_LOCAL_MODE", "true"),
        local_dev_token=_read_env("LOCAL_DEV_TOKEN", "local-dev-token"),
        enable_noauth=_read_flag("ENABLE_NOAUTH", "false"),
        **overrides,
    )
    # Ensure the data directory exists for the document store.
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = ["AppConfig", "get_config", "reload_config", "PROJECT_ROOT", "DEFAULT_DB_PATH"]
