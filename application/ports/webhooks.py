"""
Webhook verifier port (application/ports).

Infrastructure provides one verifier per provider; the ingestor only sees
the verified, parsed event.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable


@dataclass(frozen=True)
class VerifiedWebhook:
    provider: str
    event_id: str
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def data_object(self) -> dict[str, Any]:
        data = self.payload.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None
        return obj if isinstance(obj, dict) else {}


@runtime_checkable
class WebhookVerifier(Protocol):
    """Raises UnauthenticatedWebhookError when the delivery cannot be trusted."""

    provider: str

    def verify(self, headers: Mapping[str, str], body: bytes) -> VerifiedWebhook: ...
