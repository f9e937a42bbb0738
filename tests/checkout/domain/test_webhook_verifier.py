"""Tests for WebhookVerifier signature checks and event parsing."""

import json

import pytest
from checkout.webhook.verifier import (
    PAYMENT_SUCCEEDED,
    PaymentEvent,
    SignatureError,
    WebhookVerifier,
    canonicalize,
)

SECRET = "whsec_test"

PAYLOAD = {
    "id": "evt_001",
    "type": PAYMENT_SUCCEEDED,
    "data": {"id": "pi_1", "status": "SUCCEEDED", "amount": 245.0},
}


def _raw(payload=PAYLOAD, **dumps_kwargs):
    return json.dumps(payload, **dumps_kwargs).encode("utf-8")


class TestVerify:
    def test_valid_signature(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        assert WebhookVerifier.verify(_raw(), signature, SECRET) is True

    def test_sign_accepts_raw_body(self):
        assert WebhookVerifier.sign(_raw(), SECRET) == WebhookVerifier.sign(PAYLOAD, SECRET)

    def test_whitespace_differences_still_verify(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        assert WebhookVerifier.verify(_raw(indent=4), signature, SECRET) is True

    def test_uppercase_hex_signature_verifies(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET).upper()
        assert WebhookVerifier.verify(_raw(), signature, SECRET) is True

    def test_non_ascii_payload(self):
        payload = {"type": PAYMENT_SUCCEEDED, "data": {"id": "pi_1", "note": "支付成功"}}
        signature = WebhookVerifier.sign(payload, SECRET)
        assert WebhookVerifier.verify(_raw(payload, ensure_ascii=False), signature, SECRET) is True
        assert WebhookVerifier.verify(_raw(payload), signature, SECRET) is True

    def test_tampered_payload_rejected(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        tampered = dict(PAYLOAD, data={"id": "pi_2", "status": "SUCCEEDED", "amount": 245.0})
        assert WebhookVerifier.verify(_raw(tampered), signature, SECRET) is False

    def test_key_order_matters(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        reordered = {"type": PAYLOAD["type"], "id": PAYLOAD["id"], "data": PAYLOAD["data"]}
        assert WebhookVerifier.verify(_raw(reordered), signature, SECRET) is False

    def test_wrong_secret_rejected(self):
        signature = WebhookVerifier.sign(PAYLOAD, "other-secret")
        assert WebhookVerifier.verify(_raw(), signature, SECRET) is False

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature_rejected(self, signature):
        assert WebhookVerifier.verify(_raw(), signature, SECRET) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret_rejected(self, secret):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        assert WebhookVerifier.verify(_raw(), signature, secret) is False

    def test_non_ascii_signature_rejected(self):
        assert WebhookVerifier.verify(_raw(), "é" * 64, SECRET) is False

    def test_malformed_payload_rejected(self):
        assert WebhookVerifier.verify(b"{not json", "abc123", SECRET) is False

    def test_empty_payload_rejected(self):
        assert WebhookVerifier.verify(b"", "abc123", SECRET) is False

    def test_canonical_form_is_compact(self):
        assert canonicalize({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'


class TestParseEvent:
    def test_parse(self):
        event = WebhookVerifier.parse_event(_raw())
        assert isinstance(event, PaymentEvent)
        assert event.type == PAYMENT_SUCCEEDED
        assert event.intent_id == "pi_1"
        assert event.is_reconciled is True

    def test_extra_fields_are_kept(self):
        event = WebhookVerifier.parse_event(_raw())
        assert event.data.model_extra["amount"] == 245.0

    def test_unreconciled_type(self):
        event = WebhookVerifier.parse_event(_raw({"type": "payment_intent.created", "data": {"id": "pi_1"}}))
        assert event.is_reconciled is False

    def test_missing_data_raises(self):
        with pytest.raises(SignatureError):
            WebhookVerifier.parse_event(_raw({"type": PAYMENT_SUCCEEDED}))

    def test_authenticate_rejects_bad_signature(self):
        with pytest.raises(SignatureError):
            WebhookVerifier().authenticate(_raw(), "deadbeef", SECRET)

    def test_authenticate_returns_event(self):
        signature = WebhookVerifier.sign(PAYLOAD, SECRET)
        event = WebhookVerifier().authenticate(_raw(), signature, SECRET)
        assert event.id == "evt_001"
