import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from plan_assistant.utils.errors import ConfigError

load_dotenv()

ALLOWED_MODELS = ("gpt-3.5-turbo", "gpt-4", "gpt-4o", "gpt-4o-mini")

MAX_PHASES = 5
MAX_TASKS_PER_PHASE = 5

TEMPERATURE = 0.7
REQUEST_TIMEOUT_SECONDS = 30.0
MAX_RETRIES = 2

GENERATE_RATE_LIMIT_MAX = 5
GENERATE_RATE_LIMIT_WINDOW_MS = 2 * 60 * 1000
EXPLAIN_RATE_LIMIT_MAX = 10
EXPLAIN_RATE_LIMIT_WINDOW_MS = 5 * 60 * 1000
CLEANUP_INTERVAL_MS = 60 * 1000

EXPLAIN_COOLDOWN_MS = 30 * 1000

SYSTEM_INSTRUCTIONS = "You are a helpful project planner AI."


class RateLimitPolicy(BaseModel):
    max_requests: int = Field(..., gt=0, description="Requests allowed per window.")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds.")


class Settings(BaseModel):
    openai_api_key: str = Field(..., min_length=1)
    openai_model: Literal["gpt-3.5-turbo", "gpt-4", "gpt-4o", "gpt-4o-mini"]
    temperature: float = Field(TEMPERATURE, ge=0, le=2)
    request_timeout: float = Field(REQUEST_TIMEOUT_SECONDS, gt=0)
    max_retries: int = Field(MAX_RETRIES, ge=0)
    max_phases: int = Field(MAX_PHASES, gt=0)
    max_tasks_per_phase: int = Field(MAX_TASKS_PER_PHASE, gt=0)
    generate_rate_limit: RateLimitPolicy = RateLimitPolicy(
        max_requests=GENERATE_RATE_LIMIT_MAX, window_ms=GENERATE_RATE_LIMIT_WINDOW_MS
    )
    explain_rate_limit: RateLimitPolicy = RateLimitPolicy(
        max_requests=EXPLAIN_RATE_LIMIT_MAX, window_ms=EXPLAIN_RATE_LIMIT_WINDOW_MS
    )
    cleanup_interval_ms: int = Field(CLEANUP_INTERVAL_MS, gt=0)
    explain_cooldown_ms: int = Field(EXPLAIN_COOLDOWN_MS, ge=0)
    app_env: str = "development"
    devmode: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def _env(name: str, default=None):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def load_settings() -> Settings:
    """Build settings from the process environment.

    Raises ConfigError when the API key is missing or the model is not one of
    ALLOWED_MODELS, so callers can refuse to start.
    """
    raw = {
        "openai_api_key": _env("OPENAI_API_KEY", ""),
        "openai_model": _env("OPENAI_MODEL"),
        "temperature": _env("OPENAI_TEMPERATURE", TEMPERATURE),
        "request_timeout": _env("OPENAI_TIMEOUT_SECONDS", REQUEST_TIMEOUT_SECONDS),
        "max_retries": _env("OPENAI_MAX_RETRIES", MAX_RETRIES),
        "max_phases": _env("MAX_PHASES", MAX_PHASES),
        "max_tasks_per_phase": _env("MAX_TASKS_PER_PHASE", MAX_TASKS_PER_PHASE),
        "generate_rate_limit": {
            "max_requests": _env("GENERATE_RATE_LIMIT_MAX", GENERATE_RATE_LIMIT_MAX),
            "window_ms": _env("GENERATE_RATE_LIMIT_WINDOW_MS", GENERATE_RATE_LIMIT_WINDOW_MS),
        },
        "explain_rate_limit": {
            "max_requests": _env("EXPLAIN_RATE_LIMIT_MAX", EXPLAIN_RATE_LIMIT_MAX),
            "window_ms": _env("EXPLAIN_RATE_LIMIT_WINDOW_MS", EXPLAIN_RATE_LIMIT_WINDOW_MS),
        },
        "cleanup_interval_ms": _env("RATE_LIMIT_CLEANUP_INTERVAL_MS", CLEANUP_INTERVAL_MS),
        "explain_cooldown_ms": _env("EXPLAIN_COOLDOWN_MS", EXPLAIN_COOLDOWN_MS),
        "app_env": _env("APP_ENV", "development"),
        "devmode": _env("DEVMODE", "false").lower() == "true",
    }
    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigError(
            f"Invalid environment variables: {', '.join(fields)}"
        ) from e


@lru_cache
def get_settings() -> Settings:
    return load_settings()
