from .crypto import (
    generate_secret,
    generate_signature,
    hash_secret,
    serialize_payload,
    verify_signature,
)
from .factories import SubscriptionFactory, WebhookFactory
from .urls import validate_target_url

__all__ = [
    "generate_secret", "generate_signature", "hash_secret",
    "serialize_payload", "verify_signature",
    "SubscriptionFactory", "WebhookFactory",
    "validate_target_url",
]
