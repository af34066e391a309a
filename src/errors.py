"""Exception hierarchy for webhook dispatch.

Everything raised on purpose by this package inherits from WebhookDispatchError,
so callers can catch the whole family with one except clause.
"""


class WebhookDispatchError(Exception):
    """Base class for webhook dispatch errors."""

    code: str = "webhook_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidEventError(WebhookDispatchError, ValueError):
    code = "invalid_event"


class InvalidSubscriptionError(WebhookDispatchError, ValueError):
    """Raised when a subscription or its retry policy fails validation."""

    code = "invalid_subscription"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "field": self.field, "message": self.message}}


class SubscriptionNotFoundError(WebhookDispatchError, LookupError):
    code = "subscription_not_found"

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id} not found")


class StorageError(WebhookDispatchError):
    """A registry or tracker backend could not complete an operation."""

    code = "storage_error"


class SubscriptionLookupError(WebhookDispatchError):
    """Active subscriptions could not be resolved for a trigger."""

    code = "subscription_lookup_failed"
