import pytest

from application.services.order_resolver import (
    OrderIdentityResolver,
    ProviderObjectKind,
    ResolutionSource,
)
from shared.codes.payment_codes import ReconcileReason


OTHER_ID = "22222222-2222-2222-2222-222222222222"


@pytest.mark.asyncio
async def test_metadata_wins_over_client_reference(store, order_id):
    resolver = OrderIdentityResolver(store.uow_factory)
    obj = {"id": "cs_1", "metadata": {"order_id": order_id}, "client_reference_id": OTHER_ID}
    res = await resolver.resolve(obj, kind=ProviderObjectKind.CHECKOUT_SESSION)
    assert res.order_id == order_id
    assert res.source is ResolutionSource.METADATA
    assert store.lookups == 0


@pytest.mark.asyncio
async def test_camel_case_metadata_key_is_accepted(store, order_id):
    resolver = OrderIdentityResolver(store.uow_factory)
    res = await resolver.resolve({"metadata": {"orderId": order_id}}, kind=ProviderObjectKind.PAYMENT_INTENT)
    assert res.order_id == order_id


@pytest.mark.asyncio
async def test_client_reference_only_applies_to_sessions(store, order_id):
    resolver = OrderIdentityResolver(store.uow_factory)
    session = await resolver.resolve({"client_reference_id": order_id}, kind=ProviderObjectKind.CHECKOUT_SESSION)
    assert session.source is ResolutionSource.CLIENT_REFERENCE
    intent = await resolver.resolve({"client_reference_id": order_id}, kind=ProviderObjectKind.PAYMENT_INTENT)
    assert not intent.resolved
    assert intent.reason is ReconcileReason.MISSING_ORDER_ID


@pytest.mark.asyncio
async def test_invalid_winning_candidate_does_not_fall_through(store, order_id):
    store.add_order(order_id, checkout_session_id="cs_1")
    resolver = OrderIdentityResolver(store.uow_factory)
    res = await resolver.resolve(
        {"id": "cs_1", "metadata": {"order_id": "not-a-uuid"}, "client_reference_id": order_id},
        kind=ProviderObjectKind.CHECKOUT_SESSION,
    )
    assert not res.resolved
    assert res.reason is ReconcileReason.INVALID_ORDER_ID
    assert store.order_accesses == 0


@pytest.mark.asyncio
async def test_hint_is_used_after_payload_sources(store, order_id):
    resolver = OrderIdentityResolver(store.uow_factory)
    res = await resolver.resolve({"id": "cs_1"}, kind=ProviderObjectKind.CHECKOUT_SESSION, hinted_order_id=f" {order_id} ")
    assert res.order_id == order_id
    assert res.source is ResolutionSource.HINT


@pytest.mark.asyncio
async def test_reverse_lookup_by_session_then_intent(store, order_id):
    store.add_order(order_id, payment_intent_id="pi_1")
    resolver = OrderIdentityResolver(store.uow_factory)
    res = await resolver.resolve({"id": "cs_1", "payment_intent": {"id": "pi_1"}}, kind=ProviderObjectKind.CHECKOUT_SESSION)
    assert res.order_id == order_id
    assert res.source is ResolutionSource.PAYMENT_INTENT_LOOKUP
    assert store.lookups == 2


@pytest.mark.asyncio
async def test_lookup_failure_degrades_to_missing(store):
    store.fail_lookup = True
    resolver = OrderIdentityResolver(store.uow_factory)
    res = await resolver.resolve({"id": "pi_1"}, kind=ProviderObjectKind.PAYMENT_INTENT)
    assert not res.resolved
    assert res.reason is ReconcileReason.MISSING_ORDER_ID


@pytest.mark.asyncio
async def test_custom_metadata_keys():
    resolver = OrderIdentityResolver(metadata_keys=("orderRef",))
    res = await resolver.resolve(
        {"metadata": {"order_id": "ignored", "orderRef": OTHER_ID}},
        kind=ProviderObjectKind.PAYMENT_INTENT,
    )
    assert res.order_id == OTHER_ID
