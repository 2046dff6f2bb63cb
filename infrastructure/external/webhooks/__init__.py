"""
Factory for webhook verifiers.
"""
from __future__ import annotations

from application.ports.webhooks import WebhookVerifier
from core.settings import settlement_settings
from domain.common.exceptions import UnauthenticatedWebhookError
from .hmac_verifier import HmacWebhookVerifier, sign_payload
from .stripe_verifier import StripeWebhookVerifier


def get_webhook_verifier(provider: str) -> WebhookVerifier:
    name = (provider or "").lower()
    webhook = settlement_settings.webhook
    if name == "stripe":
        return StripeWebhookVerifier(
            settlement_settings.stripe.webhook_secret,
            tolerance_seconds=webhook.tolerance_seconds,
        )
    secrets = {k.lower(): v for k, v in webhook.secrets.items()}
    if name in secrets:
        return HmacWebhookVerifier(
            name,
            secrets[name],
            header_name=webhook.signature_header,
            tolerance_seconds=webhook.tolerance_seconds,
        )
    raise UnauthenticatedWebhookError(f"Unknown webhook provider: {provider}", provider=name)


__all__ = ["get_webhook_verifier", "HmacWebhookVerifier", "StripeWebhookVerifier", "sign_payload"]
