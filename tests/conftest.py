import pytest
import requests

from src.config import RetryPolicySettings, Settings
from src.models.subscription import RetryPolicy
from src.observability.metrics import MetricsCollector
from src.subscriber_receiver.server import SubscriberReceiverServer
from src.utils.factories import SubscriptionFactory, WebhookFactory
from src.webhook_dispatch.backoff import BackoffScheduler
from src.webhook_dispatch.dispatcher import WebhookDispatcher
from src.webhook_dispatch.registry import InMemorySubscriptionRegistry
from src.webhook_dispatch.scheduling import ManualScheduler
from src.webhook_dispatch.service import WebhookService
from src.webhook_dispatch.signer import WebhookSigner
from src.webhook_dispatch.tracker import InMemoryDeliveryTracker
from src.webhook_dispatch.worker import DeliveryWorker


WEBHOOK_SECRET = "test-secret-key-for-hmac"

# maxRetries=3 -> attempts 1, 2, 3; delays 1000ms, 2000ms
TEST_POLICY = RetryPolicy(max_retries=3, base_delay_ms=1000, backoff_multiplier=2, max_delay_ms=5000)


def make_response(status_code: int, body: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


class FakeSession:
    """Stands in for requests.Session; answers POSTs from scripted outcomes.

    An outcome is a status code, a (status code, body) tuple, or an exception
    instance to raise.
    """

    def __init__(self, default=200, by_url: dict | None = None):
        self.default = default
        self.by_url = dict(by_url or {})
        self._scripts: dict[str | None, list] = {}
        self.requests: list[dict] = []
        self.closed = False

    def script(self, *outcomes, url: str | None = None) -> "FakeSession":
        self._scripts.setdefault(url, []).extend(outcomes)
        return self

    def post(self, url, data=None, headers=None, timeout=None):
        self.requests.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        queue = self._scripts.get(url) or self._scripts.get(None)
        if queue:
            outcome = queue.pop(0)
        else:
            outcome = self.by_url.get(url, self.default)

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, tuple):
            return make_response(*outcome)
        return make_response(outcome)

    def requests_to(self, url: str) -> list[dict]:
        return [r for r in self.requests if r["url"] == url]

    def close(self):
        self.closed = True


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def retry_policy():
    return TEST_POLICY


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        request_timeout_seconds=5,
        block_private_hosts=False,
        default_retry_policy=RetryPolicySettings(
            max_retries=3, base_delay_ms=1000, backoff_multiplier=2, max_delay_ms=5000,
        ),
    )


@pytest.fixture
def signer():
    return WebhookSigner()


@pytest.fixture
def registry():
    return InMemorySubscriptionRegistry()


@pytest.fixture
def tracker():
    return InMemoryDeliveryTracker()


@pytest.fixture
def scheduler():
    manual = ManualScheduler()
    yield manual
    manual.shutdown()


@pytest.fixture
def backoff(scheduler):
    return BackoffScheduler(scheduler)


@pytest.fixture
def metrics():
    return MetricsCollector(window_seconds=300)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def worker(signer, registry, tracker, backoff, metrics, fake_session):
    return DeliveryWorker(
        signer=signer,
        registry=registry,
        tracker=tracker,
        backoff=backoff,
        session=fake_session,
        metrics=metrics,
        timeout_seconds=5,
    )


@pytest.fixture
def dispatcher(registry, worker):
    return WebhookDispatcher(registry=registry, worker=worker)


@pytest.fixture
def http_worker(signer, registry, tracker, backoff, metrics):
    session = requests.Session()
    yield DeliveryWorker(
        signer=signer,
        registry=registry,
        tracker=tracker,
        backoff=backoff,
        session=session,
        metrics=metrics,
        timeout_seconds=5,
    )
    session.close()


@pytest.fixture
def http_dispatcher(registry, http_worker):
    return WebhookDispatcher(registry=registry, worker=http_worker)


@pytest.fixture
def service(settings, registry, tracker, scheduler, metrics):
    svc = WebhookService(
        settings=settings,
        registry=registry,
        tracker=tracker,
        scheduler=scheduler,
        metrics=metrics,
    )
    yield svc
    svc.shutdown()


@pytest.fixture
def add_subscription(registry):
    """Store a factory-built subscription and return it."""

    def _add(**overrides):
        overrides.setdefault("retry_policy", TEST_POLICY)
        return registry.add(SubscriptionFactory.create(**overrides))

    return _add


@pytest.fixture
def receiver():
    """Subscriber endpoint without signature verification."""
    server = SubscriberReceiverServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def subscription_factory():
    return SubscriptionFactory


@pytest.fixture
def webhook_factory():
    return WebhookFactory
