import threading
from abc import ABC, abstractmethod
from dataclasses import replace

from src.models.delivery import DeliveryAttemptChain, DeliveryStatus


class DeliveryTracker(ABC):
    """Durable store of delivery attempt records.

    ``update_status`` addresses the in-flight record of a chain, i.e. the one
    with the highest attempt for (subscription_id, payload_id).
    """

    @abstractmethod
    def create(self, chain: DeliveryAttemptChain) -> str: ...

    @abstractmethod
    def update_status(
        self, subscription_id: str, payload_id: str, patch: dict
    ) -> DeliveryAttemptChain | None: ...

    @abstractmethod
    def get(self, chain_id: str) -> DeliveryAttemptChain | None: ...

    @abstractmethod
    def get_chain(self, subscription_id: str, payload_id: str) -> list[DeliveryAttemptChain]: ...

    @abstractmethod
    def find(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | None = None,
    ) -> list[DeliveryAttemptChain]: ...


class InMemoryDeliveryTracker(DeliveryTracker):
    """Thread-safe tracker for webhook delivery attempts."""

    def __init__(self):
        self._records: list[DeliveryAttemptChain] = []
        self._lock = threading.Lock()

    def create(self, chain: DeliveryAttemptChain) -> str:
        with self._lock:
            self._records.append(replace(chain))
        return chain.id

    def update_status(
        self, subscription_id: str, payload_id: str, patch: dict
    ) -> DeliveryAttemptChain | None:
        with self._lock:
            matching = [
                i for i, r in enumerate(self._records)
                if r.subscription_id == subscription_id and r.payload_id == payload_id
            ]
            if not matching:
                return None
            index = max(matching, key=lambda i: self._records[i].attempt)
            self._records[index] = replace(self._records[index], **patch)
            return replace(self._records[index])

    def get(self, chain_id: str) -> DeliveryAttemptChain | None:
        with self._lock:
            for record in self._records:
                if record.id == chain_id:
                    return replace(record)
        return None

    def get_chain(self, subscription_id: str, payload_id: str) -> list[DeliveryAttemptChain]:
        with self._lock:
            chain = [
                replace(r) for r in self._records
                if r.subscription_id == subscription_id and r.payload_id == payload_id
            ]
        return sorted(chain, key=lambda r: r.attempt)

    def find(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | None = None,
    ) -> list[DeliveryAttemptChain]:
        with self._lock:
            return [
                replace(r) for r in self._records
                if (subscription_id is None or r.subscription_id == subscription_id)
                and (status is None or r.status == status)
            ]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
