"""
Shared helpers for webhook verifiers.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from domain.common.exceptions import DomainValidationException
from application.ports.webhooks import VerifiedWebhook


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup over a plain mapping."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_event(provider: str, body: bytes) -> VerifiedWebhook:
    """Parse an authenticated body into a VerifiedWebhook; shape errors are 422."""
    try:
        payload: Any = json.loads(body or b"")
    except ValueError as exc:
        raise DomainValidationException("webhook body is not valid JSON", field="body") from exc
    if not isinstance(payload, dict):
        raise DomainValidationException("webhook body must be a JSON object", field="body")
    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise DomainValidationException("webhook event needs 'id' and 'type'", field="body")
    return VerifiedWebhook(provider=provider, event_id=str(event_id), event_type=str(event_type), payload=payload)
