import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

import requests

from src.models.delivery import DeliveryAttemptChain, DeliveryStatus
from src.models.subscription import Subscription
from src.models.webhook import WebhookPayload
from src.observability.metrics import MetricsCollector
from src.utils.crypto import serialize_payload
from src.webhook_dispatch.backoff import BackoffScheduler
from src.webhook_dispatch.registry import SubscriptionRegistry
from src.webhook_dispatch.signer import WebhookSigner
from src.webhook_dispatch.tracker import DeliveryTracker

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_HEADER = "X-Webhook-Delivery"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryWorker:
    """Performs one delivery attempt and records its outcome.

    ``deliver`` never raises: transport failures become retries or terminal
    failures, and tracker/registry errors are logged and dropped so that one
    subscriber's bookkeeping cannot break delivery to the others.
    """

    def __init__(
        self,
        signer: WebhookSigner,
        registry: SubscriptionRegistry,
        tracker: DeliveryTracker,
        backoff: BackoffScheduler,
        session: requests.Session | None = None,
        metrics: MetricsCollector | None = None,
        timeout_seconds: float = 30,
        success_on_any_response: bool = False,
        max_response_body_chars: int = 4096,
        user_agent: str = "webhook-dispatch/0.1",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.signer = signer
        self.registry = registry
        self.tracker = tracker
        self.backoff = backoff
        self.session = session or requests.Session()
        self.metrics = metrics
        self.timeout_seconds = timeout_seconds
        self.success_on_any_response = success_on_any_response
        self.max_response_body_chars = max_response_body_chars
        self.user_agent = user_agent
        self.clock = clock

    def deliver(self, subscription: Subscription, payload: WebhookPayload) -> DeliveryAttemptChain:
        """Deliver ``payload`` to ``subscription`` once and return the recorded attempt."""
        chain = DeliveryAttemptChain(
            id=f"dlv_{uuid.uuid4().hex}",
            subscription_id=subscription.id,
            payload_id=payload.id,
            event_type=payload.event_type,
            status=DeliveryStatus.PENDING,
            attempt=payload.attempt,
            created_at=self.clock(),
        )

        try:
            body = serialize_payload(payload.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as exc:
            return self._reject_unserializable(subscription, payload, chain, exc)
        signature = self.signer.sign(body, subscription.secret)

        self._bookkeep("record pending delivery", self.tracker.create, chain)

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            SIGNATURE_HEADER: signature,
            EVENT_HEADER: payload.event_type,
            DELIVERY_HEADER: chain.id,
        }

        start = time.monotonic()
        response = None
        error = None

        try:
            response = self.session.post(
                subscription.target,
                data=body,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.Timeout:
            error = "timeout"
        except requests.exceptions.ConnectionError:
            error = "connection_error"
        except requests.exceptions.RequestException as e:
            error = str(e) or e.__class__.__name__

        chain.response_time_ms = (time.monotonic() - start) * 1000

        if response is not None and self._is_success(response.status_code):
            return self._mark_delivered(subscription, payload, chain, response)
        return self._handle_failure(subscription, payload, chain, response, error)

    def _is_success(self, status_code: int) -> bool:
        if self.success_on_any_response:
            return True
        return 200 <= status_code < 300

    def _mark_delivered(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        chain: DeliveryAttemptChain,
        response: requests.Response,
    ) -> DeliveryAttemptChain:
        now = self.clock()
        patch = {
            "status": DeliveryStatus.DELIVERED,
            "response_code": response.status_code,
            "response_body": self._truncate(response.text),
            "response_time_ms": chain.response_time_ms,
            "delivered_at": now,
        }
        self._apply(chain, patch)
        self._bookkeep(
            "mark delivery delivered",
            self.tracker.update_status, subscription.id, payload.id, patch,
        )
        self._bookkeep(
            "update last_triggered_at",
            self.registry.set_last_triggered_at, subscription.id, now,
        )
        if self.metrics:
            self.metrics.record_success(payload.event_type)

        logger.info(
            "Delivered payload %s to subscription %s (attempt %d, HTTP %d)",
            payload.id, subscription.id, payload.attempt, response.status_code,
        )
        return chain

    def _handle_failure(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        chain: DeliveryAttemptChain,
        response: requests.Response | None,
        error: str | None,
    ) -> DeliveryAttemptChain:
        response_code = response.status_code if response is not None else None
        retrying = self.backoff.has_attempts_remaining(subscription.retry_policy, payload.attempt)

        patch = {
            "status": DeliveryStatus.RETRYING if retrying else DeliveryStatus.FAILED,
            "response_code": response_code,
            "response_body": self._truncate(response.text) if response is not None else None,
            "error_message": self._error_message(response, error),
            "response_time_ms": chain.response_time_ms,
        }
        self._apply(chain, patch)
        self._bookkeep(
            "mark delivery failure",
            self.tracker.update_status, subscription.id, payload.id, patch,
        )
        self._bookkeep(
            "increment failure_count",
            self.registry.increment_failure_count, subscription.id,
        )
        if self.metrics:
            self.metrics.record_failure(payload.event_type)

        logger.warning(
            "Delivery of payload %s to subscription %s failed on attempt %d: %s",
            payload.id, subscription.id, payload.attempt, chain.error_message,
        )

        if retrying:
            try:
                self.backoff.schedule(subscription, payload, self._redeliver)
            except Exception as exc:
                logger.exception("Failed to schedule retry of payload %s", payload.id)
                self._mark_failed(
                    subscription, payload, chain, f"retry scheduling failed: {exc}",
                )
        return chain

    def _redeliver(
        self, subscription: Subscription, payload: WebhookPayload
    ) -> DeliveryAttemptChain | None:
        """Retry callback; re-reads the subscription so deactivation wins over queued retries."""
        try:
            current = self.registry.get_by_id(subscription.id)
        except Exception:
            logger.exception(
                "Failed to re-read subscription %s before retry", subscription.id
            )
            current = subscription

        if current is None or not current.active:
            logger.info(
                "Dropping retry of payload %s: subscription %s missing or inactive",
                payload.id, subscription.id,
            )
            # The in-flight record is still the previous attempt
            self._bookkeep(
                "mark delivery failed",
                self.tracker.update_status, subscription.id, payload.id,
                {"status": DeliveryStatus.FAILED, "error_message": "subscription inactive"},
            )
            return None
        return self.deliver(current, payload)

    def _mark_failed(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        chain: DeliveryAttemptChain,
        message: str,
    ) -> None:
        patch = {"status": DeliveryStatus.FAILED, "error_message": message}
        self._apply(chain, patch)
        self._bookkeep(
            "mark delivery failed",
            self.tracker.update_status, subscription.id, payload.id, patch,
        )

    def _reject_unserializable(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        chain: DeliveryAttemptChain,
        exc: Exception,
    ) -> DeliveryAttemptChain:
        # Serialization errors are deterministic, so there is no retry
        chain.status = DeliveryStatus.FAILED
        chain.error_message = f"unserializable payload: {exc}"
        self._bookkeep("record failed delivery", self.tracker.create, chain)
        self._bookkeep(
            "increment failure_count",
            self.registry.increment_failure_count, subscription.id,
        )
        if self.metrics:
            self.metrics.record_failure(payload.event_type)
        logger.error(
            "Cannot serialize payload %s for subscription %s: %s",
            payload.id, subscription.id, exc,
        )
        return chain

    def _error_message(self, response: requests.Response | None, error: str | None) -> str:
        if response is None:
            return error or "Unknown error"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("message", "error"):
                if isinstance(body.get(key), str) and body[key]:
                    return body[key]
        return f"HTTP {response.status_code}"

    def _truncate(self, text: str | None) -> str | None:
        if text is None:
            return None
        return text[: self.max_response_body_chars]

    @staticmethod
    def _apply(chain: DeliveryAttemptChain, patch: dict) -> None:
        for key, value in patch.items():
            setattr(chain, key, value)

    @staticmethod
    def _bookkeep(what: str, operation: Callable, *args) -> None:
        try:
            operation(*args)
        except Exception:
            logger.exception("Failed to %s", what)
