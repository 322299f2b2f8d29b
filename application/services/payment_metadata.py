"""Pure extraction of card/wallet details and order updates from provider objects."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from application.dtos.payments import PaymentMetadata
from domain.order.entity import OrderPaymentUpdate, TransitionTarget


# Payment-method-details sub-objects that carry no last4 (redirects, wallets, bank transfers)
REDIRECT_METHOD_TYPES = (
    "grabpay",
    "paynow",
    "alipay",
    "wechat_pay",
    "link",
    "paypal",
    "promptpay",
    "fpx",
    "ideal",
    "bancontact",
    "eps",
    "giropay",
    "p24",
    "sofort",
    "klarna",
    "affirm",
    "afterpay_clearpay",
    "cashapp",
    "revolut_pay",
    "amazon_pay",
)


def as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    s = str(value).strip()
    return s or None


def object_id(value: Any) -> Optional[str]:
    """Id of an expandable field, whether it holds an id string or an expanded object."""
    if isinstance(value, Mapping):
        return _text(value.get("id"))
    return _text(value)


def primary_charge(intent: Any) -> Optional[Mapping[str, Any]]:
    """The intent's latest charge when expanded, else the first legacy `charges.data` entry."""
    intent = as_mapping(intent)
    latest = intent.get("latest_charge")
    if isinstance(latest, Mapping):
        return latest
    data = as_mapping(intent.get("charges")).get("data")
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        return data[0]
    return None


def _from_method_details(details: Mapping[str, Any]) -> tuple[Optional[str], Optional[str]]:
    card = details.get("card")
    if isinstance(card, Mapping):
        return _text(card.get("brand")), _text(card.get("last4"))
    for method_type in REDIRECT_METHOD_TYPES:
        if method_type in details:
            return method_type, None
    return _text(details.get("type")), None


def extract_payment_metadata(charge: Any = None, intent: Any = None) -> PaymentMetadata:
    """Map a charge (or, failing that, an intent) to brand/last4/charge id.

    Never raises: absent or malformed nested fields degrade to None.
    """
    charge_obj = charge if isinstance(charge, Mapping) else primary_charge(intent)

    brand: Optional[str] = None
    last4: Optional[str] = None
    charge_id: Optional[str] = None

    if charge_obj is not None:
        charge_id = _text(charge_obj.get("id"))
        brand, last4 = _from_method_details(as_mapping(charge_obj.get("payment_method_details")))
    else:
        # latest_charge may be an unexpanded id
        charge_id = object_id(as_mapping(intent).get("latest_charge"))

    if brand is None or last4 is None:
        method = as_mapping(as_mapping(intent).get("payment_method"))
        card = method.get("card")
        if isinstance(card, Mapping):
            brand = brand or _text(card.get("brand"))
            last4 = last4 or _text(card.get("last4"))
        elif brand is None:
            brand = _text(method.get("type"))

    return PaymentMetadata(brand=brand, last4=last4, charge_id=charge_id)


def to_cents(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        cents = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    # Minor units are whole; 12.5 is rejected rather than truncated
    if not isinstance(value, str) and cents != value:
        return None
    return cents


def paid_update_from_intent(intent: Any, provider: str, *, charge: Any = None) -> OrderPaymentUpdate:
    intent = as_mapping(intent)
    meta = extract_payment_metadata(charge=charge, intent=intent)
    amount = intent.get("amount_received") or intent.get("amount")
    return OrderPaymentUpdate(
        target=TransitionTarget.PAID,
        payment_provider=provider,
        payment_intent_id=_text(intent.get("id")),
        charge_id=meta.charge_id,
        payment_method_brand=meta.brand,
        payment_last4=meta.last4,
        total_cents=to_cents(amount),
        currency=_text(intent.get("currency")),
    )


def paid_update_from_session(session: Any, provider: str) -> OrderPaymentUpdate:
    """Session amounts win over the intent's; the intent only contributes card details."""
    session = as_mapping(session)
    intent = session.get("payment_intent")
    update = paid_update_from_intent(intent, provider)
    update.checkout_session_id = _text(session.get("id"))
    update.payment_intent_id = update.payment_intent_id or object_id(intent)
    update.total_cents = to_cents(session.get("amount_total")) if session.get("amount_total") is not None else update.total_cents
    update.currency = _text(session.get("currency")) or update.currency
    return update
