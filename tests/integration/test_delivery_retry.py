"""Integration tests for webhook delivery retry behavior."""

import time

import pytest
import requests

from src.models.delivery import DeliveryStatus
from src.models.subscription import RetryPolicy
from src.webhook_dispatch.backoff import BackoffScheduler
from src.webhook_dispatch.dispatcher import WebhookDispatcher
from src.webhook_dispatch.scheduling import ThreadingScheduler
from src.webhook_dispatch.worker import DeliveryWorker


pytestmark = pytest.mark.integration


class TestDeliveryRetry:
    """Retry behavior with real HTTP delivery and a virtual clock."""

    @pytest.mark.parametrize("code", [500, 502, 503])
    def test_retries_until_max_attempts(
        self, http_dispatcher, add_subscription, receiver, scheduler, tracker, code,
    ):
        """max_retries=3 means three attempts in total, then failed."""
        sub = add_subscription(target=receiver.url)
        receiver.set_response_code(code)

        results = http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        chain = tracker.get_chain(sub.id, results[0].payload_id)
        assert [r.attempt for r in chain] == [1, 2, 3]
        assert [r.status for r in chain] == [
            DeliveryStatus.RETRYING,
            DeliveryStatus.RETRYING,
            DeliveryStatus.FAILED,
        ]
        assert all(r.response_code == code for r in chain)
        assert receiver.get_received_count() == 3

    def test_backoff_delays(self, http_dispatcher, add_subscription, receiver, scheduler):
        """Retries wait base_delay_ms, then base_delay_ms * multiplier."""
        add_subscription(target=receiver.url)
        receiver.set_response_code(500)

        http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        assert scheduler.delays == [1000.0, 2000.0]

    def test_delays_clamped_to_max(self, http_dispatcher, add_subscription, receiver, scheduler):
        policy = RetryPolicy(max_retries=5, base_delay_ms=1000, backoff_multiplier=3, max_delay_ms=5000)
        add_subscription(target=receiver.url, retry_policy=policy)
        receiver.set_response_code(500)

        http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        assert scheduler.delays == [1000.0, 3000.0, 5000.0, 5000.0]

    def test_retry_waits_for_clock(self, http_dispatcher, add_subscription, receiver, scheduler):
        """Nothing is re-sent before the backoff delay has elapsed."""
        add_subscription(target=receiver.url)
        receiver.set_response_code(500)

        http_dispatcher.trigger("order.created", {})
        assert scheduler.advance(999) == 0
        assert receiver.get_received_count() == 1

        assert scheduler.advance(1) == 1
        assert receiver.get_received_count() == 2

    def test_recovers_after_transient_errors(
        self, http_dispatcher, add_subscription, receiver, scheduler, tracker,
    ):
        """500, 500, 200 ends in a delivered third attempt."""
        sub = add_subscription(target=receiver.url)
        receiver.set_response_sequence([500, 500, 200])

        results = http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        chain = tracker.get_chain(sub.id, results[0].payload_id)
        assert [r.status for r in chain] == [
            DeliveryStatus.RETRYING,
            DeliveryStatus.RETRYING,
            DeliveryStatus.DELIVERED,
        ]
        assert chain[-1].delivered_at is not None

    def test_retries_reuse_payload_id(self, http_dispatcher, add_subscription, receiver, scheduler):
        add_subscription(target=receiver.url)
        receiver.set_response_sequence([500, 200])

        http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        payloads = [r["payload"] for r in receiver.get_received()]
        assert payloads[0]["id"] == payloads[1]["id"]
        assert [p["attempt"] for p in payloads] == [1, 2]

    def test_failure_count_tracked(
        self, http_dispatcher, add_subscription, receiver, scheduler, registry,
    ):
        """Every failed attempt increments the subscription's failure_count."""
        sub = add_subscription(target=receiver.url)
        receiver.set_response_code(500)

        http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        assert registry.get_by_id(sub.id).failure_count == 3

    def test_client_error_is_retried(self, http_dispatcher, add_subscription, receiver, scheduler):
        """A 4xx is not success, so it follows the same retry path."""
        add_subscription(target=receiver.url)
        receiver.set_response_sequence([400, 200])

        results = http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        assert results[0].status == DeliveryStatus.RETRYING
        assert results[0].error_message == "subscriber returned 400"
        assert receiver.get_received_count() == 2

    def test_retry_on_connection_refused(
        self, http_dispatcher, add_subscription, scheduler, tracker,
    ):
        """Delivery to a closed port records connection_error on every attempt."""
        # Use a port that is almost certainly not listening
        sub = add_subscription(target="http://127.0.0.1:19999/webhook")

        results = http_dispatcher.trigger("order.created", {})
        scheduler.run_until_idle()

        chain = tracker.get_chain(sub.id, results[0].payload_id)
        assert len(chain) == 3
        assert all(r.response_code is None for r in chain)
        assert all(r.error_message == "connection_error" for r in chain)
        assert chain[-1].status == DeliveryStatus.FAILED


class TestDeliveryRetryWallClock:
    """Retries driven by real timer threads."""

    def test_threading_scheduler_redelivers(
        self, signer, registry, tracker, add_subscription, receiver,
    ):
        scheduler = ThreadingScheduler()
        session = requests.Session()
        worker = DeliveryWorker(
            signer=signer,
            registry=registry,
            tracker=tracker,
            backoff=BackoffScheduler(scheduler),
            session=session,
            timeout_seconds=5,
        )
        dispatcher = WebhookDispatcher(registry=registry, worker=worker)
        policy = RetryPolicy(max_retries=3, base_delay_ms=20, backoff_multiplier=2, max_delay_ms=100)
        sub = add_subscription(target=receiver.url, retry_policy=policy)
        receiver.set_response_sequence([503, 503, 200])

        try:
            results = dispatcher.trigger("order.created", {})
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                chain = tracker.get_chain(sub.id, results[0].payload_id)
                if chain and chain[-1].status.is_terminal:
                    break
                time.sleep(0.02)
        finally:
            scheduler.shutdown()
            session.close()

        chain = tracker.get_chain(sub.id, results[0].payload_id)
        assert [r.attempt for r in chain] == [1, 2, 3]
        assert chain[-1].status == DeliveryStatus.DELIVERED
