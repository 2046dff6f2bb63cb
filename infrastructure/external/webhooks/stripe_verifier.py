"""
Stripe webhook verification through the official SDK (`Stripe-Signature`).
"""
from __future__ import annotations

from typing import Mapping, Optional

import stripe

from domain.common.exceptions import UnauthenticatedWebhookError
from application.ports.webhooks import VerifiedWebhook
from .base import header_value, parse_event


class StripeWebhookVerifier:
    provider = "stripe"

    def __init__(self, secret: Optional[str], *, tolerance_seconds: int = 300) -> None:
        self._secret = secret
        self._tolerance = tolerance_seconds

    def verify(self, headers: Mapping[str, str], body: bytes) -> VerifiedWebhook:
        if not self._secret:
            raise UnauthenticatedWebhookError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = header_value(headers, "Stripe-Signature")
        if not sig:
            raise UnauthenticatedWebhookError("Missing Stripe-Signature header", provider=self.provider)
        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self._secret,
                tolerance=self._tolerance,
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise UnauthenticatedWebhookError(str(exc), provider=self.provider) from exc
        # the signature covers the raw body, so the parsed body is the event
        return parse_event(self.provider, body)
