from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Event:
    type: str  # "order.created", "payment.failed", etc.
    data: dict[str, Any]
    occurred_at: datetime


@dataclass(frozen=True)
class WebhookPayload:
    """Envelope POSTed to a subscriber for one event."""

    id: str
    event_type: str
    timestamp: str  # ISO 8601, UTC
    subscription_id: str
    data: dict[str, Any] = field(default_factory=dict)
    attempt: int = 1

    def next_attempt(self) -> "WebhookPayload":
        return replace(self, attempt=self.attempt + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type,
            "timestamp": self.timestamp,
            "data": self.data,
            "subscriptionId": self.subscription_id,
            "attempt": self.attempt,
        }

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "WebhookPayload":
        return cls(
            id=body["id"],
            event_type=body["eventType"],
            timestamp=body["timestamp"],
            subscription_id=body["subscriptionId"],
            data=body.get("data") or {},
            attempt=int(body.get("attempt", 1)),
        )
