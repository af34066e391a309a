import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self

from src.utils.crypto import verify_signature

REQUIRED_FIELDS = ["id", "eventType", "timestamp", "data", "subscriptionId", "attempt"]


class _WebhookHandler(BaseHTTPRequestHandler):
    """Receives webhook deliveries the way a subscriber endpoint would."""

    def _reply(self, code: int, body: dict | None = None) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        if body is not None:
            self.wfile.write(json.dumps(body).encode())

    def do_POST(self):
        content_length = int(self.headers.get("Content-Length", 0))
        raw_body = self.rfile.read(content_length)

        config = self.server.config  # type: ignore[attr-defined]

        with config["lock"]:
            config["request_count"] += 1

        if config["response_delay"] > 0:
            time.sleep(config["response_delay"])

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, ValueError):
            self._reply(400, {"error": "invalid JSON"})
            return

        missing = [f for f in REQUIRED_FIELDS if f not in payload]
        if missing:
            self._reply(400, {"error": f"missing fields: {missing}"})
            return

        # Signature covers the exact bytes received
        if config["signature_secret"]:
            sig = self.headers.get("X-Webhook-Signature", "")
            if not sig:
                self._reply(401, {"error": "missing signature"})
                return
            if not verify_signature(raw_body, config["signature_secret"], sig):
                self._reply(401, {"error": "invalid signature"})
                return

        payload_id = payload["id"]
        if config["idempotency_enabled"]:
            with config["lock"]:
                if payload_id in config["processed_payload_ids"]:
                    self._reply(200, {"status": "already_processed"})
                    return

        with config["lock"]:
            config["received"].append({
                "payload": payload,
                "headers": dict(self.headers),
                "raw_body": raw_body,
            })
            if config["response_sequence"]:
                code = config["response_sequence"].pop(0)
            else:
                code = config["response_code"]
            if 200 <= code < 300:
                config["processed_payload_ids"].add(payload_id)

        if 200 <= code < 300:
            self._reply(code, {"status": "ok"} if code != 204 else None)
        else:
            self._reply(code, {"message": f"subscriber returned {code}"})

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class SubscriberReceiverServer:
    """Configurable HTTP server that plays the part of a webhook subscriber."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0, secret: str | None = None):
        self._host = host
        self._port = port
        self._config = {
            "response_code": 200,
            "response_sequence": [],
            "response_delay": 0,
            "signature_secret": secret,
            "idempotency_enabled": False,
            "received": [],
            "processed_payload_ids": set(),
            "request_count": 0,
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_response_code(self, code: int) -> Self:
        self._config["response_code"] = code
        return self

    def set_response_sequence(self, codes: list[int]) -> Self:
        """Answer the next requests with ``codes`` in order, then fall back to response_code."""
        with self._config["lock"]:
            self._config["response_sequence"] = list(codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._config["response_delay"] = seconds
        return self

    def enable_signature_verification(self, secret: str) -> Self:
        self._config["signature_secret"] = secret
        return self

    def enable_idempotency(self) -> Self:
        self._config["idempotency_enabled"] = True
        return self

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _WebhookHandler)
        self._server.config = self._config  # type: ignore[attr-defined]
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/webhook"

    @property
    def port(self) -> int:
        return self._port

    def get_received(self) -> list[dict]:
        with self._config["lock"]:
            return list(self._config["received"])

    def get_received_count(self) -> int:
        with self._config["lock"]:
            return len(self._config["received"])

    def get_request_count(self) -> int:
        """All POSTs seen, including rejected and timed-out ones."""
        with self._config["lock"]:
            return self._config["request_count"]

    def was_payload_processed(self, payload_id: str) -> bool:
        with self._config["lock"]:
            return payload_id in self._config["processed_payload_ids"]

    def clear(self) -> None:
        with self._config["lock"]:
            self._config["received"].clear()
            self._config["processed_payload_ids"].clear()
            self._config["request_count"] = 0
