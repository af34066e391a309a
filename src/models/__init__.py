from .subscription import RetryPolicy, Subscription, SubscriptionCreated
from .webhook import Event, WebhookPayload
from .delivery import DeliveryAttemptChain, DeliveryStatus

__all__ = [
    "RetryPolicy", "Subscription", "SubscriptionCreated",
    "Event", "WebhookPayload",
    "DeliveryAttemptChain", "DeliveryStatus",
]
