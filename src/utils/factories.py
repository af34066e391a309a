import uuid
from datetime import datetime, timezone

from src.models.subscription import RetryPolicy, Subscription
from src.models.webhook import Event, WebhookPayload
from src.utils.crypto import generate_secret, hash_secret


class SubscriptionFactory:
    """Factory for creating Subscription instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> Subscription:
        secret = overrides.pop("secret", generate_secret())
        defaults = {
            "id": f"sub_{uuid.uuid4().hex[:16]}",
            "target": "https://hooks.example.com/webhook",
            "events": frozenset({"order.created"}),
            "secret": secret,
            "secret_hash": hash_secret(secret),
            "retry_policy": RetryPolicy(),
            "active": True,
            "failure_count": 0,
            "name": "test subscription",
            "created_by": "admin_test",
            "created_at": datetime.now(timezone.utc),
        }
        defaults.update(overrides)
        return Subscription(**defaults)


class WebhookFactory:
    """Factory for creating Event and WebhookPayload instances."""

    @staticmethod
    def create_event(event_type: str = "order.created", **overrides) -> Event:
        data = WebhookFactory._build_data(event_type, **overrides)
        data_overrides = overrides.pop("data", None)
        if data_overrides:
            data.update(data_overrides)

        return Event(
            type=event_type,
            data=data,
            occurred_at=overrides.get("occurred_at", datetime.now(timezone.utc)),
        )

    @staticmethod
    def create_payload(
        subscription_id: str = "sub_test",
        event_type: str = "order.created",
        **overrides,
    ) -> WebhookPayload:
        defaults = {
            "id": f"whp_{uuid.uuid4().hex[:16]}",
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "subscription_id": subscription_id,
            "data": WebhookFactory._build_data(event_type),
            "attempt": 1,
        }
        defaults.update(overrides)
        return WebhookPayload(**defaults)

    @staticmethod
    def _build_data(event_type: str, **kwargs) -> dict:
        order_id = kwargs.get("order_id", f"ord_{uuid.uuid4().hex[:12]}")
        base = {"orderId": order_id}

        if event_type == "order.created":
            base["amount"] = str(kwargs.get("amount", "100.00"))
            base["currency"] = kwargs.get("currency", "USD")
        elif event_type == "order.shipped":
            base["carrier"] = kwargs.get("carrier", "ups")
            base["trackingNumber"] = kwargs.get("tracking_number", "1Z999AA10123456784")
        elif event_type == "payment.failed":
            base["reason"] = kwargs.get("reason", "insufficient_funds")
        elif event_type.endswith(".revoked"):
            base["revokedBy"] = kwargs.get("revoked_by", "admin_test")

        return base
