"""Runtime configuration loaded from the process environment."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

from dotenv import load_dotenv

from .errors import ValidationError

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclasses.dataclass(frozen=True)
class Settings:
    """Values the drafting pipeline and security helpers read at startup."""

    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_MODEL
    llm_timeout_seconds: float = 30.0
    knowledge_context_limit: int = 5
    encryption_key: str | None = None
    state_token_ttl_seconds: int = 600
    sweep_interval_seconds: int = 300


def _number(name: str, default: str, cast: type) -> int | float:
    raw = os.getenv(name, default)
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be numeric, got {raw!r}") from exc
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {raw!r}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment (and a ``.env`` file if present)."""

    load_dotenv()
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        anthropic_model=os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL),
        llm_timeout_seconds=float(_number("LLM_TIMEOUT_SECONDS", "30", float)),
        knowledge_context_limit=int(_number("KNOWLEDGE_CONTEXT_LIMIT", "5", int)),
        encryption_key=os.getenv("ENCRYPTION_KEY") or None,
        state_token_ttl_seconds=int(_number("STATE_TOKEN_TTL_SECONDS", "600", int)),
        sweep_interval_seconds=int(_number("SWEEP_INTERVAL_SECONDS", "300", int)),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = ["DEFAULT_MODEL", "Settings", "get_settings", "reset_settings_cache"]
