from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DeliveryStatus(Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    RETRYING = "retrying"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


@dataclass
class DeliveryAttemptChain:
    """One persisted delivery attempt.

    Records sharing (subscription_id, payload_id) make up the attempt chain for
    one event and one subscription, ordered by ``attempt``.
    """

    id: str
    subscription_id: str
    payload_id: str
    event_type: str
    status: DeliveryStatus
    attempt: int
    created_at: datetime
    response_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    response_time_ms: float | None = None
    delivered_at: datetime | None = None
