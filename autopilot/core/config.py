"""Application configuration."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Environment
    env: str = os.getenv("APP_ENV", "development")
    api_secret_key: str = os.getenv("API_SECRET_KEY", "dev-secret-key")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    # Default uses local socket connection with trust auth
    database_url: str = os.getenv(
        "DATABASE_URL", "postgresql:///autopilot?user=postgres"
    )

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379")

    # Code generation / summarization
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    llm_timeout: int = int(os.getenv("LLM_TIMEOUT", "120"))  # 2 minutes

    # External log source queried by the error and performance detectors
    log_source_url: str | None = os.getenv("LOG_SOURCE_URL")

    # Cycle
    agent_enabled: bool = _env_flag("AGENT_ENABLED", "true")
    cycle_interval_seconds: int = int(os.getenv("CYCLE_INTERVAL_SECONDS", "300"))
    reclaim_timeout_minutes: int = int(os.getenv("RECLAIM_TIMEOUT_MINUTES", "15"))
    conversion_batch_size: int = int(os.getenv("CONVERSION_BATCH_SIZE", "30"))
    execution_batch_size: int = int(os.getenv("EXECUTION_BATCH_SIZE", "10"))
    default_max_attempts: int = int(os.getenv("DEFAULT_MAX_ATTEMPTS", "3"))
    finding_dedup_minutes: int = int(os.getenv("FINDING_DEDUP_MINUTES", "60"))
    enabled_detectors: list[str] = _env_list(
        "ENABLED_DETECTORS",
        "error_log,performance,dependency,self_inspection,log_analysis",
    )

    # Reporting
    report_interval_hours: int = int(os.getenv("REPORT_INTERVAL_HOURS", "24"))
    log_retention_days: int = int(os.getenv("LOG_RETENTION_DAYS", "30"))

    # Execution environment capabilities
    allow_file_writes: bool = _env_flag("ALLOW_FILE_WRITES")
    allow_command_execution: bool = _env_flag("ALLOW_COMMAND_EXECUTION")
    test_command: str = os.getenv("TEST_COMMAND", "pytest -q")
    audit_command: str = os.getenv("AUDIT_COMMAND", "pip-audit --format json")
    handler_timeout: int = int(os.getenv("HANDLER_TIMEOUT", "300"))  # 5 minutes
    source_root: str = os.getenv("SOURCE_ROOT", ".")
    docs_dir: str = os.getenv("DOCS_DIR", "docs/generated")


settings = Settings()
