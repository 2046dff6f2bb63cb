"""
Generic HMAC webhook verification.

Header: `X-Webhook-Signature: t=<unix seconds>,v1=<hex>` where
`v1 = HMAC-SHA256(secret, "<t>." + raw body)`. Several `v1` entries may be
present during secret rotation; any match is accepted.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable, Mapping, Optional

from core.logging_config import get_logger
from domain.common.exceptions import UnauthenticatedWebhookError
from application.ports.webhooks import VerifiedWebhook
from .base import header_value, parse_event


logger = get_logger(__name__)

SCHEME = "v1"


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    message = f"{timestamp}.".encode("utf-8") + (body or b"")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_payload(secret: str, body: bytes, timestamp: Optional[int] = None) -> str:
    """Build a signature header value for `body` (used by senders and tests)."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return f"t={ts},{SCHEME}={compute_signature(secret, ts, body)}"


class HmacWebhookVerifier:
    def __init__(
        self,
        provider: str,
        secret: Optional[str],
        *,
        header_name: str = "X-Webhook-Signature",
        tolerance_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self._secret = secret
        self._header_name = header_name
        self._tolerance = tolerance_seconds
        self._clock = clock

    def _reject(self, reason: str) -> UnauthenticatedWebhookError:
        return UnauthenticatedWebhookError(f"Webhook signature rejected: {reason}", provider=self.provider)

    def _parse_header(self, value: str) -> tuple[int, list[str]]:
        timestamp: Optional[int] = None
        signatures: list[str] = []
        for part in value.split(","):
            key, sep, item = part.strip().partition("=")
            if not sep:
                continue
            if key == "t":
                try:
                    timestamp = int(item)
                except ValueError:
                    raise self._reject("malformed timestamp")
            elif key == SCHEME:
                signatures.append(item.strip())
        if timestamp is None:
            raise self._reject("missing timestamp")
        if not signatures:
            raise self._reject(f"missing {SCHEME} signature")
        return timestamp, signatures

    def verify(self, headers: Mapping[str, str], body: bytes) -> VerifiedWebhook:
        if not self._secret:
            raise self._reject("no signing secret configured")
        value = header_value(headers, self._header_name)
        if not value:
            raise self._reject(f"missing {self._header_name} header")

        timestamp, signatures = self._parse_header(value)
        if abs(self._clock() - timestamp) > self._tolerance:
            raise self._reject("timestamp outside tolerance")

        expected = compute_signature(self._secret, timestamp, body)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise self._reject("signature mismatch")

        return parse_event(self.provider, body)
