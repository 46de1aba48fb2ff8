import os
from typing import Optional
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel


load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # Supabase (tenants + tickets tables)
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_service_role_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    tenants_table: str = os.getenv("TENANTS_TABLE", "tenants")
    tickets_table: str = os.getenv("TICKETS_TABLE", "tickets")

    # Redis
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND", os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    # Scheduler
    sync_enabled: bool = _env_bool("SYNC_ENABLED", "true")
    scheduler_tick_seconds: float = float(os.getenv("SCHEDULER_TICK_SECONDS", "60"))
    tenant_ready_buffer_seconds: int = int(os.getenv("TENANT_READY_BUFFER_SECONDS", "300"))
    stuck_in_flight_minutes: int = int(os.getenv("STUCK_IN_FLIGHT_MINUTES", "5"))

    # Incremental export endpoint budget (10/min, 30 with the high volume add-on)
    incremental_export_max_per_minute: int = int(os.getenv("INCREMENTAL_EXPORT_MAX_PER_MINUTE", "10"))

    # Account-level rate limit handling
    rate_limit_headroom_percent: float = float(os.getenv("RATE_LIMIT_HEADROOM_PERCENT", "40"))
    sync_max_retries: int = int(os.getenv("SYNC_MAX_RETRIES", "3"))

    # Detail fan-out
    comment_job_stagger_seconds: float = float(os.getenv("COMMENT_JOB_STAGGER_SECONDS", "0.2"))
    metrics_job_stagger_seconds: float = float(os.getenv("METRICS_JOB_STAGGER_SECONDS", "0.2"))
    stagger_cycle_max_seconds: float = float(os.getenv("STAGGER_CYCLE_MAX_SECONDS", "5.0"))
    comment_job_delay_seconds: float = float(os.getenv("COMMENT_JOB_DELAY_SECONDS", "0.5"))
    metrics_job_delay_seconds: float = float(os.getenv("METRICS_JOB_DELAY_SECONDS", "0.5"))

    # Helpdesk API
    helpdesk_api_timeout_seconds: float = float(os.getenv("HELPDESK_API_TIMEOUT_SECONDS", "30"))

    # Inbound proxy webhook
    webhooks_proxy_secret: Optional[str] = os.getenv("WEBHOOKS_PROXY_SECRET")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = Settings()
