"""
Webhook acknowledgement DTO
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    accepted: bool
    duplicate: bool = False
    event_id: Optional[str] = None
    outcome: Optional[str] = None
