"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

# Repository root
_BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "CodeArena"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "codearena_db"
    POSTGRES_USER: str = "codearena"
    POSTGRES_PASSWORD: str = "codearena"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 180

    # Rate Limiting
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50
    SUBMIT_RATE_LIMIT_PER_MINUTE: int = 30
    SUBMIT_RATE_LIMIT_PER_HOUR: int = 300

    # Submissions
    SUPPORTED_LANGUAGES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["javascript", "python", "cpp", "java", "c"]
    )
    MAX_CODE_SIZE: int = 51200
    SCORING_MODE: str = "proportional"  # proportional | points

    # External judge
    JUDGE_URL: str = "http://localhost:2358/execute"
    JUDGE_API_TOKEN: str = ""
    JUDGE_CONNECT_TIMEOUT_SECONDS: float = 3.0
    JUDGE_TIMEOUT_OVERHEAD_SECONDS: float = 5.0
    JUDGE_MAX_RETRIES: int = 2
    JUDGE_RETRY_BACKOFF_SECONDS: float = 0.5

    # Worker queue
    RUN_EMBEDDED_WORKER: bool = True
    WORKER_CONCURRENCY: int = 4
    WORKER_POLL_INTERVAL_SECONDS: float = 1.0
    WORKER_MAX_ATTEMPTS: int = 3

    # Watchdog
    WATCHDOG_INTERVAL_SECONDS: float = 30.0
    WATCHDOG_GRACE_SECONDS: float = 60.0
    WATCHDOG_AUTO_REQUEUE: bool = True

    # Leaderboard
    LEADERBOARD_RECONCILE_INTERVAL_SECONDS: float = 300.0
    LEADERBOARD_MAX_PAGE_SIZE: int = 500

    # File Paths
    EXPORTS_DIR: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:5173"]

    # Admin
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", "SUPPORTED_LANGUAGES", mode="before")
    @classmethod
    def _parse_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            CORS_ORIGINS=["http://localhost:5173","http://example.com"]
            SUPPORTED_LANGUAGES=python,cpp,java
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in raw.split(",") if item.strip()]

    @field_validator("SCORING_MODE")
    @classmethod
    def _check_scoring_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in {"proportional", "points"}:
            raise ValueError("SCORING_MODE must be 'proportional' or 'points'")
        return mode

    def get_exports_dir(self) -> str:
        if not self.EXPORTS_DIR or self.EXPORTS_DIR.startswith(".."):
            return str(_BASE_DIR / "exports")
        return self.EXPORTS_DIR

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            "dev-secret-key-change-in-production-use-openssl-rand-hex-32",
            "change-me",
        }

        if self.SECRET_KEY in insecure_secret_markers or len(self.SECRET_KEY) < 32:
            raise ValueError(
                "Insecure SECRET_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )

        if self.ADMIN_PASSWORD in {"", "admin123"} or len(self.ADMIN_PASSWORD) < 10:
            raise ValueError(
                "Insecure ADMIN_PASSWORD for production. Set a strong admin password before startup."
            )

    def stuck_after_seconds(self, time_limit_ms: int, total_test_cases: int) -> float:
        """Deadline after which a Judging submission is considered stuck."""
        attempts = self.JUDGE_MAX_RETRIES + 1
        per_call = max(1, time_limit_ms) / 1000.0 + self.JUDGE_TIMEOUT_OVERHEAD_SECONDS
        return per_call * max(1, total_test_cases) * attempts + self.WATCHDOG_GRACE_SECONDS


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
