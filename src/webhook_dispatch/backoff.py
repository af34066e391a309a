import logging
from typing import Callable

from src.models.subscription import RetryPolicy, Subscription
from src.models.webhook import WebhookPayload
from src.webhook_dispatch.scheduling import ScheduledJob, Scheduler

logger = logging.getLogger(__name__)


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in milliseconds after ``attempt`` (1-based) has failed.

    The first retry waits base_delay_ms, each following one grows by
    backoff_multiplier, clamped to max_delay_ms.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    delay = policy.base_delay_ms * policy.backoff_multiplier ** (attempt - 1)
    return float(min(delay, policy.max_delay_ms))


class BackoffScheduler:
    """Defers re-attempts of failed deliveries according to a subscription's retry policy."""

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler

    def has_attempts_remaining(self, policy: RetryPolicy, attempt: int) -> bool:
        """Whether a failure of ``attempt`` may be followed by another attempt."""
        return attempt < policy.max_retries

    def schedule(
        self,
        subscription: Subscription,
        payload: WebhookPayload,
        redeliver: Callable[[Subscription, WebhookPayload], object],
    ) -> ScheduledJob:
        delay_ms = compute_delay(subscription.retry_policy, payload.attempt)
        next_payload = payload.next_attempt()

        logger.info(
            "Retrying payload %s for subscription %s in %.0fms (attempt %d)",
            payload.id,
            subscription.id,
            delay_ms,
            next_payload.attempt,
        )
        return self.scheduler.call_later(
            delay_ms,
            lambda: redeliver(subscription, next_payload),
            key=subscription.id,
        )

    def cancel(self, subscription_id: str) -> int:
        return self.scheduler.cancel(subscription_id)
