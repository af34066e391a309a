from dataclasses import dataclass, field
from datetime import datetime

from src.errors import InvalidSubscriptionError


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 30000

    def __post_init__(self):
        if self.max_retries < 0:
            raise InvalidSubscriptionError("retry_policy.max_retries", "must be >= 0")
        if self.base_delay_ms <= 0:
            raise InvalidSubscriptionError("retry_policy.base_delay_ms", "must be > 0")
        if self.backoff_multiplier <= 1:
            raise InvalidSubscriptionError("retry_policy.backoff_multiplier", "must be > 1")
        if self.max_delay_ms < self.base_delay_ms:
            raise InvalidSubscriptionError(
                "retry_policy.max_delay_ms", "must be >= base_delay_ms"
            )


@dataclass
class Subscription:
    """An external endpoint and the event types it listens to.

    ``secret`` is the raw signing key and stays inside the service; anything
    handed back to callers goes through ``to_dict()``, which only exposes
    ``secret_hash``.
    """

    id: str
    target: str
    events: frozenset[str]
    secret: str
    secret_hash: str
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    active: bool = True
    failure_count: int = 0
    last_triggered_at: datetime | None = None
    name: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        if isinstance(self.events, (str, bytes)):
            raise InvalidSubscriptionError("events", "must be a collection of event types, not a string")
        self.events = frozenset(self.events)

    def listens_to(self, event_type: str) -> bool:
        return event_type in self.events

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "events": sorted(self.events),
            "secret_hash": self.secret_hash,
            "active": self.active,
            "retry_policy": {
                "max_retries": self.retry_policy.max_retries,
                "base_delay_ms": self.retry_policy.base_delay_ms,
                "backoff_multiplier": self.retry_policy.backoff_multiplier,
                "max_delay_ms": self.retry_policy.max_delay_ms,
            },
            "failure_count": self.failure_count,
            "last_triggered_at": (
                self.last_triggered_at.isoformat() if self.last_triggered_at else None
            ),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class SubscriptionCreated:
    """Result of registering a subscription; the only place the raw secret appears."""

    subscription: Subscription
    secret: str
