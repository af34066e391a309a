from .signer import WebhookSigner
from .registry import InMemorySubscriptionRegistry, Page, SubscriptionFilters, SubscriptionRegistry
from .tracker import DeliveryTracker, InMemoryDeliveryTracker
from .scheduling import ManualScheduler, Scheduler, ThreadingScheduler
from .backoff import BackoffScheduler, compute_delay
from .worker import DeliveryWorker
from .dispatcher import WebhookDispatcher
from .service import WebhookService

__all__ = [
    "WebhookSigner",
    "SubscriptionRegistry", "InMemorySubscriptionRegistry", "SubscriptionFilters", "Page",
    "DeliveryTracker", "InMemoryDeliveryTracker",
    "Scheduler", "ThreadingScheduler", "ManualScheduler",
    "BackoffScheduler", "compute_delay",
    "DeliveryWorker",
    "WebhookDispatcher",
    "WebhookService",
]
