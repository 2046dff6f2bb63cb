"""
Notification service client (email/SMS gateway behind one HTTP API).
"""
from __future__ import annotations

from typing import Any, Optional

from core.settings import NotificationSettings
from .base import BaseServiceClient


class NotificationClient(BaseServiceClient):
    service = "notifications"

    def __init__(self, *, sender: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.sender = sender

    @classmethod
    def from_settings(cls, cfg: NotificationSettings, **kwargs) -> "NotificationClient":
        return cls(
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            sender=cfg.sender,
            timeouts=cfg.timeouts.model_dump(),
            retry=cfg.retry.model_dump(),
            **kwargs,
        )

    async def send(
        self,
        *,
        template: str,
        recipient_ref: str,
        context: dict[str, Any],
        idempotency_key: str,
        channel: Optional[str] = None,
    ) -> dict[str, Any]:
        body = {
            "template": template,
            "recipient_ref": recipient_ref,
            "sender": self.sender,
            "context": context,
        }
        if channel:
            body["channel"] = channel
        result = await self._post("/v1/notifications", body, idempotency_key=idempotency_key)
        self._log("notification_sent", template=template, recipient_ref=recipient_ref, idempotency_key=idempotency_key)
        return result
