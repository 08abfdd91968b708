import os
from functools import lru_cache


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


class Settings:
    """Application settings loaded from environment variables with validation."""

    # Database settings
    db_user: str = os.getenv("DB_USER", "postgres")
    db_password: str = os.getenv("DB_PASSWORD", "postgres")
    db_host: str = os.getenv("DB_HOST", "postgres")
    db_port: str = os.getenv("DB_PORT", "5432")
    db_name: str = os.getenv("DB_NAME", "devscore")

    @property
    def database_url(self) -> str:
        explicit = os.getenv("DATABASE_URL", "").strip()
        if explicit:
            return explicit
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def environment(self) -> str:
        return os.getenv("ENVIRONMENT", "development")

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    # Text-generation provider
    @property
    def llm_provider(self) -> str:
        """anthropic or openai"""
        return os.getenv("LLM_PROVIDER", "anthropic").lower()

    @property
    def llm_model(self) -> str:
        default = "claude-sonnet-4-20250514" if self.llm_provider == "anthropic" else "gpt-4o-mini"
        return os.getenv("LLM_MODEL", default)

    @property
    def llm_timeout_seconds(self) -> float:
        return _float_env("LLM_TIMEOUT_SECONDS", 120.0)

    @property
    def anthropic_api_key(self) -> str | None:
        return os.getenv("ANTHROPIC_API_KEY")

    @property
    def openai_api_key(self) -> str | None:
        return os.getenv("OPENAI_API_KEY")

    # Source hosting
    @property
    def github_token(self) -> str | None:
        val = os.getenv("GITHUB_TOKEN", "").strip()
        return val or None

    @property
    def github_api_url(self) -> str:
        return os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")

    # Periodic sweeps
    @property
    def enable_scheduler(self) -> bool:
        return os.getenv("ENABLE_SCHEDULER", "false").lower() in {"1", "true", "yes"}

    @property
    def analysis_sweep_interval_seconds(self) -> float:
        return _float_env("ANALYSIS_SWEEP_INTERVAL_SECONDS", 300.0)

    @property
    def report_sweep_interval_seconds(self) -> float:
        return _float_env("REPORT_SWEEP_INTERVAL_SECONDS", 600.0)

    @property
    def analysis_batch_size(self) -> int:
        return _int_env("ANALYSIS_BATCH_SIZE", 5)

    @property
    def analysis_pacing_seconds(self) -> float:
        """Delay between two items of the same sweep (provider rate limits)."""
        return _float_env("ANALYSIS_PACING_SECONDS", 3.0)

    @property
    def analysis_stale_minutes(self) -> int:
        return _int_env("ANALYSIS_STALE_MINUTES", 30)

    @property
    def project_lock_days(self) -> int:
        return _int_env("PROJECT_LOCK_DAYS", 30)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
