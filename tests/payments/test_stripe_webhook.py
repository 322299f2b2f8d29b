import pytest


stripe = pytest.importorskip("stripe")

from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from infrastructure.external.payments.stripe_client import StripeClient


EVENT = {
    "id": "evt_1",
    "type": "checkout.session.completed",
    "livemode": False,
    "data": {"object": {"id": "cs_1", "metadata": {"order_id": "o"}}},
}


def _fake_webhook(accepted_secret, seen=None):
    # Fake construct_event to bypass cryptography
    class _FakeWebhook:
        @staticmethod
        def construct_event(payload, sig_header, secret, tolerance=None):
            if seen is not None:
                seen.append(secret)
            if secret != accepted_secret:
                raise stripe.SignatureVerificationError("No signatures found matching the expected signature", sig_header)
            return EVENT

    return _FakeWebhook


def test_stripe_parse_webhook(monkeypatch):
    monkeypatch.setattr(stripe, "Webhook", _fake_webhook("whsec_test"))

    gw = get_payment_gateway("stripe")
    assert isinstance(gw, StripeClient)
    evt = gw.parse_webhook({"stripe-signature": "t=1,v1=abc"}, b"{}")
    assert evt.id == "evt_1"
    assert evt.type == "checkout.session.completed"
    assert evt.provider == "stripe"
    assert evt.object["id"] == "cs_1"


def test_rotated_secret_is_tried_after_current(monkeypatch):
    seen = []
    monkeypatch.setattr(stripe, "Webhook", _fake_webhook("whsec_old", seen))

    gw = StripeClient(webhook_secrets=["whsec_new", "whsec_old"])
    evt = gw.parse_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")
    assert evt.id == "evt_1"
    assert seen == ["whsec_new", "whsec_old"]


def test_no_matching_secret_is_signature_error(monkeypatch):
    monkeypatch.setattr(stripe, "Webhook", _fake_webhook("whsec_other"))

    gw = StripeClient(webhook_secrets=["whsec_a", "whsec_b"])
    with pytest.raises(PaymentSignatureError) as ei:
        gw.parse_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")
    assert ei.value.details["secrets_tried"] == 2


def test_missing_header_or_secret_is_signature_error():
    with pytest.raises(PaymentSignatureError):
        StripeClient(webhook_secrets=["whsec_a"]).parse_webhook({}, b"{}")
    with pytest.raises(PaymentSignatureError):
        StripeClient(webhook_secrets=[]).parse_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")


def test_invalid_payload_is_signature_error(monkeypatch):
    class _BadPayload:
        @staticmethod
        def construct_event(payload, sig_header, secret, tolerance=None):
            raise ValueError("Expecting value")

    monkeypatch.setattr(stripe, "Webhook", _BadPayload)
    with pytest.raises(PaymentSignatureError):
        StripeClient(webhook_secrets=["whsec_a"]).parse_webhook({"Stripe-Signature": "x"}, b"not json")


@pytest.mark.asyncio
async def test_retrieve_passes_expand_and_returns_dict(monkeypatch):
    captured = {}

    async def _retrieve(object_id, **params):
        captured["id"] = object_id
        captured["params"] = params
        return {"id": object_id, "status": "succeeded"}

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve_async", _retrieve)

    intent = await StripeClient(webhook_secrets=["whsec_a"]).retrieve_payment_intent("pi_1", expand=("latest_charge",))
    assert intent == {"id": "pi_1", "status": "succeeded"}
    assert captured == {"id": "pi_1", "params": {"expand": ["latest_charge"]}}


@pytest.mark.asyncio
async def test_connection_errors_are_retried_then_raised(monkeypatch):
    calls = []

    async def _retrieve(object_id, **params):
        calls.append(object_id)
        raise stripe.APIConnectionError("Network error")

    monkeypatch.setattr(stripe.checkout.Session, "retrieve_async", _retrieve)

    client = StripeClient(webhook_secrets=["whsec_a"])
    client._retry_cfg = {"max": 1, "base": 0}
    with pytest.raises(PaymentRecoverableError):
        await client.retrieve_checkout_session("cs_1")
    assert calls == ["cs_1", "cs_1"]


@pytest.mark.asyncio
async def test_invalid_request_is_not_retried(monkeypatch):
    calls = []

    async def _retrieve(object_id, **params):
        calls.append(object_id)
        raise stripe.InvalidRequestError("No such charge: 'ch_x'", "id", code="resource_missing", http_status=404)

    monkeypatch.setattr(stripe.Charge, "retrieve_async", _retrieve)

    with pytest.raises(PaymentProviderError) as ei:
        await StripeClient(webhook_secrets=["whsec_a"]).retrieve_charge("ch_x")
    assert calls == ["ch_x"]
    assert ei.value.details["provider_code"] == "resource_missing"
    assert ei.value.details["http_status"] == 404
