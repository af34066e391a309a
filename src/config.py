"""Configuration for webhook dispatch, loaded from WEBHOOK_* environment variables."""

import logging
from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

from src.models.subscription import RetryPolicy


class RetryPolicySettings(BaseModel):
    """Retry policy applied to subscriptions created without one."""

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, gt=0)
    backoff_multiplier: float = Field(default=2.0, gt=1.0)
    max_delay_ms: int = Field(default=30000, gt=0)

    @model_validator(mode="after")
    def _check_max_delay(self) -> "RetryPolicySettings":
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            max_delay_ms=self.max_delay_ms,
        )


class Settings(BaseSettings):
    """Webhook dispatch settings.

    Every field can be overridden with a WEBHOOK_ prefixed variable, e.g.
    WEBHOOK_REQUEST_TIMEOUT_SECONDS=10 or
    WEBHOOK_DEFAULT_RETRY_POLICY__MAX_RETRIES=5.
    """

    request_timeout_seconds: float = Field(default=30.0, gt=0)
    user_agent: str = "webhook-dispatch/0.1"

    # The reference behavior counted any HTTP response as delivered.
    success_on_any_response: bool = False

    block_private_hosts: bool = True
    max_response_body_chars: int = Field(default=4096, ge=0)
    max_concurrent_deliveries: int = Field(default=1, ge=1)
    default_retry_policy: RetryPolicySettings = Field(default_factory=RetryPolicySettings)

    metrics_window_seconds: float = Field(default=300.0, gt=0)
    health_degraded_failure_rate: float = Field(default=0.10, ge=0.0, le=1.0)
    health_critical_failure_rate: float = Field(default=0.50, ge=0.0, le=1.0)

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "WEBHOOK_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # basicConfig is a no-op once handlers exist
    logging.getLogger().setLevel(level)
