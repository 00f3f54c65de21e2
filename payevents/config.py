"""Environment configuration for the event delivery service."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.APPLICATION_NAME: str = os.getenv("APPLICATION_NAME", "b2pix-server")

        # Event processor
        self.EVENT_PROCESSOR_BATCH_SIZE: int = int(
            os.getenv("EVENT_PROCESSOR_BATCH_SIZE", "50")
        )
        self.EVENT_PROCESSOR_POLL_INTERVAL_SECONDS: float = float(
            os.getenv("EVENT_PROCESSOR_POLL_INTERVAL_SECONDS", "5")
        )
        self.EVENT_PROCESSOR_MAX_CONCURRENCY: int = int(
            os.getenv("EVENT_PROCESSOR_MAX_CONCURRENCY", "10")
        )
        self.EVENT_PROCESSOR_MAX_RETRIES: int = int(
            os.getenv("EVENT_PROCESSOR_MAX_RETRIES", "10")
        )

        # Periodic tasks
        self.TASK_STAGGER_DELAY_SECONDS: float = float(
            os.getenv("TASK_STAGGER_DELAY_SECONDS", "15")
        )

        # Built-in handlers
        self.AUDIT_LOG_ENABLED: bool = _env_bool("AUDIT_LOG_ENABLED", True)
        self.METRICS_HANDLER_ENABLED: bool = _env_bool("METRICS_HANDLER_ENABLED", False)

        # Dapr forwarding of stored events
        self.DAPR_FORWARD_ENABLED: bool = _env_bool("DAPR_FORWARD_ENABLED", False)
        self.DAPR_HTTP_PORT: int = int(os.getenv("DAPR_HTTP_PORT", "3500"))
        self.DAPR_PUBSUB_NAME: str = os.getenv("DAPR_PUBSUB_NAME", "eventpubsub")
        self.DAPR_TOPIC_NAME: str = os.getenv("DAPR_TOPIC_NAME", "domain-events")

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if self.EVENT_PROCESSOR_MAX_RETRIES < 1:
            raise ValueError("EVENT_PROCESSOR_MAX_RETRIES must be at least 1")
        if self.EVENT_PROCESSOR_MAX_CONCURRENCY < 1:
            raise ValueError("EVENT_PROCESSOR_MAX_CONCURRENCY must be at least 1")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
