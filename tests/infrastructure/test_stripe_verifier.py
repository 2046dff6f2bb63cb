import json
import time

import pytest

from domain.common.exceptions import UnauthenticatedWebhookError


stripe = pytest.importorskip("stripe")

from infrastructure.external.webhooks.hmac_verifier import sign_payload  # noqa: E402
from infrastructure.external.webhooks.stripe_verifier import StripeWebhookVerifier  # noqa: E402


SECRET = "whsec_stripe_test"
BODY = json.dumps(
    {
        "id": "evt_1",
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_1", "amount_received": 11300, "currency": "usd"}},
    }
).encode()


def _header(body=BODY, secret=SECRET, timestamp=None):
    # Stripe-Signature uses the same t=<ts>,v1=<hmac> layout
    return {"Stripe-Signature": sign_payload(secret, body, timestamp=timestamp)}


def test_stripe_signature_is_verified_by_the_sdk():
    event = StripeWebhookVerifier(SECRET).verify(_header(), BODY)
    assert event.provider == "stripe"
    assert event.event_id == "evt_1"
    assert event.event_type == "payment_intent.succeeded"
    assert event.data_object["amount_received"] == 11300


def test_stripe_header_lookup_ignores_case():
    headers = {"stripe-signature": _header()["Stripe-Signature"]}
    assert StripeWebhookVerifier(SECRET).verify(headers, BODY).event_id == "evt_1"


def test_stripe_wrong_secret_is_rejected():
    with pytest.raises(UnauthenticatedWebhookError):
        StripeWebhookVerifier(SECRET).verify(_header(secret="whsec_other"), BODY)


def test_stripe_tampered_body_is_rejected():
    with pytest.raises(UnauthenticatedWebhookError):
        StripeWebhookVerifier(SECRET).verify(_header(), BODY.replace(b"11300", b"1"))


def test_stripe_stale_timestamp_is_rejected():
    headers = _header(timestamp=int(time.time()) - 3600)
    with pytest.raises(UnauthenticatedWebhookError):
        StripeWebhookVerifier(SECRET, tolerance_seconds=300).verify(headers, BODY)


@pytest.mark.parametrize(
    "secret, headers",
    [
        (None, {"Stripe-Signature": "t=1,v1=abc"}),
        (SECRET, {}),
    ],
)
def test_stripe_missing_secret_or_header_is_rejected(secret, headers):
    with pytest.raises(UnauthenticatedWebhookError):
        StripeWebhookVerifier(secret).verify(headers, BODY)
