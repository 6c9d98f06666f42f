from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import ConfigurationError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "deepseek/deepseek-chat"

# Environment variable -> credential name reported by /credits.
_SCORING_KEY_ENV = (
    ("OPENROUTER_API", "openrouter-default"),
    ("OPENROUTER_API_1", "openrouter-one"),
    ("OPENROUTER_API_2", "openrouter-two"),
)


@dataclass(frozen=True)
class Credential:
    name: str
    key: str = field(repr=False)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.")


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    scoring_credentials: tuple[Credential, ...] = ()
    firecrawl_api_key: str | None = field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    openrouter_base_url: str = OPENROUTER_BASE_URL
    site_url: str = "https://privacyhub.in"
    site_name: str = "PrivacyHub"
    environment: str = "production"
    log_level: str = "INFO"
    pipeline_timeout_s: float = 60.0
    key_status_ttl_hours: float = 4.0
    cron_secret: str | None = field(default=None, repr=False)
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    playwright_concurrency: int = 1
    playwright_acquire_timeout_s: float = 5.0
    rate_limit_max_requests: int = 10
    rate_limit_window_minutes: float = 15.0

    @classmethod
    def from_env(cls) -> Settings:
        credentials = tuple(
            Credential(name=name, key=os.environ[env].strip())
            for env, name in _SCORING_KEY_ENV
            if os.getenv(env, "").strip()
        )
        return cls(
            scoring_credentials=credentials,
            firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY", "").strip() or None,
            model=os.getenv("OPENROUTER_MODEL", DEFAULT_MODEL),
            openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", OPENROUTER_BASE_URL),
            site_url=os.getenv("SITE_URL", "https://privacyhub.in"),
            site_name=os.getenv("SITE_NAME", "PrivacyHub"),
            environment=os.getenv("ENVIRONMENT", "production").strip().lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            pipeline_timeout_s=_env_float("PIPELINE_TIMEOUT_S", 60.0),
            key_status_ttl_hours=_env_float("KEY_STATUS_TTL_HOURS", 4.0),
            cron_secret=os.getenv("CRON_SECRET", "").strip() or None,
            cors_origins=tuple(_env_list("PRIVACYHUB_CORS_ORIGINS", ["http://localhost:3000"])),
            playwright_concurrency=max(1, _env_int("PLAYWRIGHT_CONCURRENCY", 1)),
            playwright_acquire_timeout_s=_env_float("PLAYWRIGHT_ACQUIRE_TIMEOUT_S", 5.0),
            rate_limit_max_requests=max(1, _env_int("RATE_LIMIT_MAX_REQUESTS", 10)),
            rate_limit_window_minutes=_env_float("RATE_LIMIT_WINDOW_MINUTES", 15.0),
        )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def has_firecrawl(self) -> bool:
        return bool(self.firecrawl_api_key)

    def require_scoring_keys(self) -> tuple[Credential, ...]:
        if not self.scoring_credentials:
            raise ConfigurationError(
                "No scoring service key configured. Set OPENROUTER_API "
                "(and optionally OPENROUTER_API_1 / OPENROUTER_API_2)."
            )
        return self.scoring_credentials
