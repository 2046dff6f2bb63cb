"""
Settlement pipeline settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so workers and the webhook path can be
tuned without touching the web application settings, e.g.
`JOBS__MAX_ATTEMPTS=10` or `WEBHOOK__SECRETS='{"acme": "whsec_..."}'`.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class WebhookSettings(BaseModel):
    # Shared secrets for the generic HMAC scheme, keyed by provider name
    secrets: dict[str, str] = Field(default_factory=dict)
    signature_header: str = "X-Webhook-Signature"
    tolerance_seconds: int = 300
    processing_budget_seconds: float = 10.0
    concurrency_retries: int = 3
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class StripeSettings(BaseModel):
    webhook_secret: Optional[str] = None


class IdempotencySettings(BaseModel):
    lease_seconds: int = 60
    retention_hours: int = 72


class JobSettings(BaseModel):
    base_backoff_seconds: float = 5.0
    max_backoff_seconds: float = 3600.0
    max_attempts: int = 8
    lease_seconds: int = 300
    drain_batch_size: int = 20
    poll_interval_seconds: float = 5.0


class HttpTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class HttpRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class NotificationSettings(BaseModel):
    base_url: str = "http://localhost:8025"
    api_key: Optional[str] = None
    sender: str = "orders@marketplace.local"
    timeouts: HttpTimeouts = Field(default_factory=HttpTimeouts)
    retry: HttpRetry = Field(default_factory=HttpRetry)


class InventorySettings(BaseModel):
    base_url: str = "http://localhost:8100"
    api_key: Optional[str] = None
    timeouts: HttpTimeouts = Field(default_factory=HttpTimeouts)
    retry: HttpRetry = Field(default_factory=HttpRetry)


class InvoiceSettings(BaseModel):
    output_dir: str = "/tmp/invoices"
    issuer_name: str = "Marketplace Ltd."


class SettlementSettings(BaseSettings):
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    idempotency: IdempotencySettings = Field(default_factory=IdempotencySettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    inventory: InventorySettings = Field(default_factory=InventorySettings)
    invoice: InvoiceSettings = Field(default_factory=InvoiceSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settlement_settings = SettlementSettings()
