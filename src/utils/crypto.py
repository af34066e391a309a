import hashlib
import hmac
import json
import secrets


def serialize_payload(payload: dict) -> str:
    """Canonical JSON used both as the request body and as the signed message."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _message(payload: dict | str | bytes) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return serialize_payload(payload).encode("utf-8")


def generate_signature(payload: dict | str | bytes, secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload or raw body."""
    return hmac.new(
        secret.encode("utf-8"),
        _message(payload),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: dict | str | bytes, secret: str, signature: str) -> bool:
    """Verify HMAC-SHA256 signature against a webhook payload or raw body."""
    expected = generate_signature(payload, secret)
    return hmac.compare_digest(expected, signature)


def generate_secret() -> str:
    return secrets.token_hex(32)


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
