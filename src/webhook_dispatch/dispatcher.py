import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from src.errors import InvalidEventError, SubscriptionLookupError
from src.models.delivery import DeliveryAttemptChain
from src.models.subscription import Subscription
from src.models.webhook import WebhookPayload
from src.webhook_dispatch.registry import SubscriptionRegistry
from src.webhook_dispatch.worker import DeliveryWorker, utcnow

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Fans an event out to every active subscription listening to its type."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        worker: DeliveryWorker,
        max_concurrent_deliveries: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.worker = worker
        self.max_concurrent_deliveries = max_concurrent_deliveries
        self.clock = clock

    def trigger(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        subscription_id: str | None = None,
    ) -> list[DeliveryAttemptChain]:
        """Deliver an event and return the first-attempt record of each delivery.

        With ``subscription_id`` only that subscription is targeted, whatever
        its interest set, and only while it is active. Retries continue in the
        background after this returns.

        Raises:
            InvalidEventError: event_type is empty.
            SubscriptionLookupError: the registry could not be queried.
        """
        if not isinstance(event_type, str) or not event_type.strip():
            raise InvalidEventError("Event type is required")

        subscriptions = self._resolve(event_type, subscription_id)
        if not subscriptions:
            logger.debug("No active subscriptions for event %s", event_type)
            return []

        payloads = [self._build_payload(event_type, data or {}, sub) for sub in subscriptions]
        jobs = list(zip(subscriptions, payloads))

        if self.max_concurrent_deliveries > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_concurrent_deliveries) as pool:
                results = list(pool.map(lambda job: self._deliver_one(*job), jobs))
        else:
            results = [self._deliver_one(sub, payload) for sub, payload in jobs]

        return [r for r in results if r is not None]

    def _resolve(self, event_type: str, subscription_id: str | None) -> list[Subscription]:
        try:
            if subscription_id is not None:
                subscription = self.registry.get_by_id(subscription_id)
                if subscription is None or not subscription.active:
                    logger.info(
                        "Skipping manual trigger of %s: subscription %s missing or inactive",
                        event_type, subscription_id,
                    )
                    return []
                return [subscription]
            return self.registry.list_active(event_type)
        except Exception as exc:
            raise SubscriptionLookupError(f"Failed to fetch subscriptions: {exc}") from exc

    def _build_payload(
        self, event_type: str, data: dict[str, Any], subscription: Subscription
    ) -> WebhookPayload:
        return WebhookPayload(
            id=f"whp_{uuid.uuid4().hex}",
            event_type=event_type,
            timestamp=self.clock().isoformat(),
            subscription_id=subscription.id,
            data=data,
            attempt=1,
        )

    def _deliver_one(
        self, subscription: Subscription, payload: WebhookPayload
    ) -> DeliveryAttemptChain | None:
        try:
            return self.worker.deliver(subscription, payload)
        except Exception:
            logger.exception("Unexpected error delivering to subscription %s", subscription.id)
            return None
