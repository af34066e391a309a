"""Entry point other subsystems use to announce events and manage subscriptions."""

import logging
import uuid
from typing import Any, Iterable

import requests

from src.config import Settings, get_settings
from src.errors import InvalidSubscriptionError, SubscriptionNotFoundError
from src.models.delivery import DeliveryAttemptChain, DeliveryStatus
from src.models.subscription import RetryPolicy, Subscription, SubscriptionCreated
from src.models.webhook import Event
from src.observability.health import ComponentHealth, check_health
from src.observability.metrics import MetricsCollector
from src.utils.crypto import generate_secret, hash_secret
from src.utils.urls import validate_target_url
from src.webhook_dispatch.backoff import BackoffScheduler
from src.webhook_dispatch.dispatcher import WebhookDispatcher
from src.webhook_dispatch.registry import (
    InMemorySubscriptionRegistry,
    Page,
    SubscriptionFilters,
    SubscriptionRegistry,
)
from src.webhook_dispatch.scheduling import Scheduler, ThreadingScheduler
from src.webhook_dispatch.signer import WebhookSigner
from src.webhook_dispatch.tracker import DeliveryTracker, InMemoryDeliveryTracker
from src.webhook_dispatch.worker import DeliveryWorker, utcnow

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(
        self,
        settings: Settings | None = None,
        registry: SubscriptionRegistry | None = None,
        tracker: DeliveryTracker | None = None,
        scheduler: Scheduler | None = None,
        session: requests.Session | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or InMemorySubscriptionRegistry()
        self.tracker = tracker or InMemoryDeliveryTracker()
        self.scheduler = scheduler or ThreadingScheduler()
        self.metrics = metrics or MetricsCollector(self.settings.metrics_window_seconds)

        self.backoff = BackoffScheduler(self.scheduler)
        self.worker = DeliveryWorker(
            signer=WebhookSigner(),
            registry=self.registry,
            tracker=self.tracker,
            backoff=self.backoff,
            session=session,
            metrics=self.metrics,
            timeout_seconds=self.settings.request_timeout_seconds,
            success_on_any_response=self.settings.success_on_any_response,
            max_response_body_chars=self.settings.max_response_body_chars,
            user_agent=self.settings.user_agent,
        )
        self.dispatcher = WebhookDispatcher(
            registry=self.registry,
            worker=self.worker,
            max_concurrent_deliveries=self.settings.max_concurrent_deliveries,
        )

    # -- delivery ---------------------------------------------------------

    def trigger_webhook(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        subscription_id: str | None = None,
    ) -> list[DeliveryAttemptChain]:
        return self.dispatcher.trigger(event_type, data, subscription_id)

    def publish(self, event: Event, subscription_id: str | None = None) -> list[DeliveryAttemptChain]:
        return self.dispatcher.trigger(event.type, event.data, subscription_id)

    def get_deliveries(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | None = None,
    ) -> list[DeliveryAttemptChain]:
        return self.tracker.find(subscription_id=subscription_id, status=status)

    # -- administration ---------------------------------------------------

    def create_subscription(
        self,
        target: str,
        events: Iterable[str],
        name: str | None = None,
        retry_policy: RetryPolicy | None = None,
        created_by: str | None = None,
    ) -> SubscriptionCreated:
        """Register a subscription.

        The raw signing secret is returned here and nowhere else; afterwards
        only its SHA-256 hash is exposed.
        """
        validate_target_url(target, block_private_hosts=self.settings.block_private_hosts)
        if isinstance(events, (str, bytes)):
            raise InvalidSubscriptionError("events", "must be a collection of event types, not a string")
        event_types = frozenset(events)
        if not event_types or not all(isinstance(e, str) and e.strip() for e in event_types):
            raise InvalidSubscriptionError("events", "at least one non-empty event type is required")

        secret = generate_secret()
        subscription = Subscription(
            id=str(uuid.uuid4()),
            target=target,
            events=event_types,
            secret=secret,
            secret_hash=hash_secret(secret),
            retry_policy=retry_policy or self.settings.default_retry_policy.to_policy(),
            name=name,
            created_by=created_by,
            created_at=utcnow(),
        )
        stored = self.registry.add(subscription)
        logger.info("Created subscription %s for %s -> %s", stored.id, sorted(event_types), target)
        return SubscriptionCreated(subscription=stored, secret=secret)

    def deactivate_subscription(self, subscription_id: str) -> int:
        """Deactivate a subscription and cancel its pending retries. Returns retries cancelled."""
        if self.registry.get_by_id(subscription_id) is None:
            raise SubscriptionNotFoundError(subscription_id)
        self.registry.deactivate(subscription_id)
        cancelled = self.backoff.cancel(subscription_id)
        logger.info(
            "Deactivated subscription %s, cancelled %d pending retries", subscription_id, cancelled
        )
        return cancelled

    def list_subscriptions(
        self,
        filters: SubscriptionFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        return self.registry.find(filters, page=page, limit=limit)

    # -- lifecycle ----------------------------------------------------------

    def health(self) -> ComponentHealth:
        return check_health(self.registry, self.metrics, self.settings)

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        self.worker.session.close()
