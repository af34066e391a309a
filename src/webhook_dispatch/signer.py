from src.utils.crypto import generate_signature, verify_signature


class WebhookSigner:
    """Signs and verifies webhook payloads using HMAC-SHA256.

    The secret is passed per call since every subscription has its own.
    """

    def sign(self, payload: dict | str | bytes, secret: str) -> str:
        return generate_signature(payload, secret)

    def verify(self, payload: dict | str | bytes, secret: str, signature: str) -> bool:
        return verify_signature(payload, secret, signature)
