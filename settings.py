import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_LEAP_BASE_URL = "https://api.jobprogress.com/api/v1"
JOB_RESOURCES = ("estimates", "jobs")


class ConfigError(RuntimeError):
    """Raised when a required setting is missing or invalid."""


def _split_origins(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup."""
    leap_api_key: str
    leap_base_url: str = DEFAULT_LEAP_BASE_URL
    job_resource: str = "estimates"
    no_sale_status: str = "pending"
    webhook_secret: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=list)
    port: int = 8000
    environment: str = "development"
    redis_url: Optional[str] = None
    idempotency_ttl: int = 86400
    log_level: str = "INFO"
    log_file: str = "logs/app.log"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment (and a local .env file).

        Raises:
            ConfigError: if LEAP_API_KEY is missing or a value is malformed
        """
        load_dotenv()

        api_key = os.getenv("LEAP_API_KEY")
        if not api_key:
            raise ConfigError("LEAP_API_KEY is not set")

        job_resource = os.getenv("LEAP_JOB_RESOURCE", "estimates").strip().lower()
        if job_resource not in JOB_RESOURCES:
            raise ConfigError(f"LEAP_JOB_RESOURCE must be one of {JOB_RESOURCES}, got {job_resource!r}")

        try:
            port = int(os.getenv("PORT", "8000"))
            ttl = int(os.getenv("IDEMPOTENCY_TTL", "86400"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        return cls(
            leap_api_key=api_key,
            leap_base_url=os.getenv("LEAP_API_BASE_URL", DEFAULT_LEAP_BASE_URL).rstrip("/"),
            job_resource=job_resource,
            no_sale_status=os.getenv("LEAP_NO_SALE_STATUS", "pending"),
            webhook_secret=os.getenv("SALESPRO_WEBHOOK_SECRET") or None,
            allowed_origins=_split_origins(os.getenv("ALLOWED_ORIGINS")),
            port=port,
            environment=os.getenv("ENVIRONMENT", "development"),
            redis_url=os.getenv("REDIS_URL") or None,
            idempotency_ttl=ttl,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "logs/app.log"),
        )
