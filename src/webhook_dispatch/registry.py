"""Subscription registry: the record store the dispatcher resolves subscribers from."""

import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime

from src.errors import SubscriptionNotFoundError
from src.models.subscription import Subscription


@dataclass
class SubscriptionFilters:
    is_active: bool | None = None
    event_type: str | None = None
    created_by: str | None = None
    failure_count_min: int | None = None
    search: str | None = None

    def matches(self, subscription: Subscription) -> bool:
        if self.is_active is not None and subscription.active != self.is_active:
            return False
        if self.event_type is not None and not subscription.listens_to(self.event_type):
            return False
        if self.created_by is not None and subscription.created_by != self.created_by:
            return False
        if self.failure_count_min is not None and subscription.failure_count < self.failure_count_min:
            return False
        if self.search:
            if not subscription.name or self.search.lower() not in subscription.name.lower():
                return False
        return True


@dataclass
class Page:
    items: list[Subscription]
    page: int
    limit: int
    total: int
    total_pages: int = field(init=False)
    has_next: bool = field(init=False)
    has_prev: bool = field(init=False)

    def __post_init__(self):
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0
        self.has_next = self.page < self.total_pages
        self.has_prev = self.page > 1


class SubscriptionRegistry(ABC):
    """Durable store of webhook subscriptions.

    Implementations raise StorageError when the backend is unavailable.
    ``increment_failure_count`` must be an atomic increment on the stored
    record, never a write-back of a caller's snapshot.
    """

    @abstractmethod
    def add(self, subscription: Subscription) -> Subscription: ...

    @abstractmethod
    def get_by_id(self, subscription_id: str) -> Subscription | None: ...

    @abstractmethod
    def list_active(self, event_type: str) -> list[Subscription]: ...

    @abstractmethod
    def increment_failure_count(self, subscription_id: str) -> int: ...

    @abstractmethod
    def set_last_triggered_at(self, subscription_id: str, timestamp: datetime) -> None: ...

    @abstractmethod
    def deactivate(self, subscription_id: str) -> Subscription: ...

    @abstractmethod
    def find(
        self,
        filters: SubscriptionFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page: ...


class InMemorySubscriptionRegistry(SubscriptionRegistry):
    """Thread-safe in-process registry. Returns copies so callers never share state."""

    def __init__(self):
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def add(self, subscription: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions[subscription.id] = replace(subscription)
            return replace(subscription)

    def get_by_id(self, subscription_id: str) -> Subscription | None:
        with self._lock:
            sub = self._subscriptions.get(subscription_id)
            return replace(sub) if sub else None

    def list_active(self, event_type: str) -> list[Subscription]:
        with self._lock:
            return [
                replace(s) for s in self._subscriptions.values()
                if s.active and s.listens_to(event_type)
            ]

    def increment_failure_count(self, subscription_id: str) -> int:
        with self._lock:
            sub = self._require(subscription_id)
            sub.failure_count += 1
            return sub.failure_count

    def set_last_triggered_at(self, subscription_id: str, timestamp: datetime) -> None:
        with self._lock:
            self._require(subscription_id).last_triggered_at = timestamp

    def deactivate(self, subscription_id: str) -> Subscription:
        with self._lock:
            sub = self._require(subscription_id)
            sub.active = False
            return replace(sub)

    def find(
        self,
        filters: SubscriptionFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        filters = filters or SubscriptionFilters()
        with self._lock:
            matched = [s for s in self._subscriptions.values() if filters.matches(s)]
        # Newest first; subscriptions without created_at sort last.
        matched.sort(
            key=lambda s: s.created_at.timestamp() if s.created_at else float("-inf"),
            reverse=True,
        )
        offset = (page - 1) * limit
        return Page(
            items=[replace(s) for s in matched[offset:offset + limit]],
            page=page,
            limit=limit,
            total=len(matched),
        )

    def _require(self, subscription_id: str) -> Subscription:
        sub = self._subscriptions.get(subscription_id)
        if sub is None:
            raise SubscriptionNotFoundError(subscription_id)
        return sub
