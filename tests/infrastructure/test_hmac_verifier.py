import json

import pytest

from domain.common.exceptions import DomainValidationException, UnauthenticatedWebhookError
from infrastructure.external.webhooks.hmac_verifier import (
    HmacWebhookVerifier,
    compute_signature,
    sign_payload,
)


NOW = 1_772_366_400
BODY = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}).encode()


def _verifier(secret="whsec_test", **kwargs):
    return HmacWebhookVerifier("acme", secret, clock=lambda: NOW, **kwargs)


def test_valid_signature_yields_parsed_event():
    headers = {"x-webhook-signature": sign_payload("whsec_test", BODY, timestamp=NOW)}
    event = _verifier().verify(headers, BODY)
    assert event.provider == "acme"
    assert event.event_id == "evt_1"
    assert event.event_type == "payment_intent.succeeded"
    assert event.data_object == {"id": "pi_1"}


def test_tampered_body_is_rejected():
    headers = {"X-Webhook-Signature": sign_payload("whsec_test", BODY, timestamp=NOW)}
    with pytest.raises(UnauthenticatedWebhookError):
        _verifier().verify(headers, BODY + b" ")


def test_old_timestamp_is_rejected():
    headers = {"X-Webhook-Signature": sign_payload("whsec_test", BODY, timestamp=NOW - 301)}
    with pytest.raises(UnauthenticatedWebhookError):
        _verifier().verify(headers, BODY)


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-Webhook-Signature": "v1=abc"},
        {"X-Webhook-Signature": f"t={NOW}"},
        {"X-Webhook-Signature": "t=yesterday,v1=abc"},
    ],
)
def test_missing_or_malformed_header_is_rejected(headers):
    with pytest.raises(UnauthenticatedWebhookError):
        _verifier().verify(headers, BODY)


def test_any_listed_signature_is_accepted_during_rotation():
    old = compute_signature("whsec_old", NOW, BODY)
    new = compute_signature("whsec_test", NOW, BODY)
    headers = {"X-Webhook-Signature": f"t={NOW},v1={old},v1={new}"}
    assert _verifier().verify(headers, BODY).event_id == "evt_1"


def test_unconfigured_secret_rejects_everything():
    headers = {"X-Webhook-Signature": sign_payload("", BODY, timestamp=NOW)}
    with pytest.raises(UnauthenticatedWebhookError):
        _verifier(secret=None).verify(headers, BODY)


def test_authentic_body_without_event_id_is_a_validation_error():
    body = json.dumps({"type": "payment_intent.succeeded"}).encode()
    headers = {"X-Webhook-Signature": sign_payload("whsec_test", body, timestamp=NOW)}
    with pytest.raises(DomainValidationException):
        _verifier().verify(headers, body)
