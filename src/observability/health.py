import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from src.config import Settings
from src.observability.metrics import MetricsCollector

if TYPE_CHECKING:
    from src.webhook_dispatch.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ComponentHealth:
    status: HealthStatus
    last_check: datetime
    error_rate: float
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "error_rate": self.error_rate,
            "message": self.message,
        }


def check_health(
    registry: "SubscriptionRegistry",
    metrics: MetricsCollector,
    settings: Settings,
) -> ComponentHealth:
    """Probe the registry and grade the recent delivery failure rate."""
    now = datetime.now(timezone.utc)
    try:
        registry.find(page=1, limit=1)
    except Exception as exc:
        logger.warning("Webhook health probe failed: %s", exc)
        return ComponentHealth(
            status=HealthStatus.CRITICAL,
            last_check=now,
            error_rate=1.0,
            message=f"subscription registry unavailable: {exc}",
        )

    rate = metrics.failure_rate()
    total = metrics.total_in_window()
    failures = metrics.failure_count_in_window()
    message = f"{failures}/{total} deliveries failed"

    if total and rate >= settings.health_critical_failure_rate:
        status = HealthStatus.CRITICAL
    elif total and rate > settings.health_degraded_failure_rate:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    return ComponentHealth(status=status, last_check=now, error_rate=rate, message=message)
