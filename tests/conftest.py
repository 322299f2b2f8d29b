"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported,
because settings are read once at import time. The in-memory order store and
gateway below stand in for the database and Stripe in service-level tests.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("CONFIRM__RETRY_DELAYS", "0,0,0")

from typing import Any, Callable, Optional

import pytest

from application.dtos.payments import WebhookEvent
from domain.common.exceptions import EventLogUnavailableError, OrderStoreError, RefundUnsupportedError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    REFUND_BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    OrderPaymentState,
    OrderPaymentStatus,
    OrderPaymentUpdate,
    TransitionTarget,
)
from domain.order.repository import OrderRepository, PaymentEventLogRepository
from infrastructure.external.payments.exceptions import PaymentSignatureError


ORDER_ID = "11111111-1111-1111-1111-111111111111"


class OrderStore:
    """Shared state behind the in-memory repositories, with failure switches."""

    def __init__(self) -> None:
        self.orders: dict[str, dict[str, Any]] = {}
        self.events: set[str] = set()
        self.reads = 0
        self.writes = 0
        self.lookups = 0
        self.event_log_calls = 0
        self.recalcs: list[str] = []
        self.fail_read = False
        self.fail_write = False
        self.fail_lookup = False
        self.fail_recalc = False
        self.event_log_error = False
        self.refund_unsupported = False
        self.before_write: Optional[Callable[[str], None]] = None

    def add_order(self, order_id: str = ORDER_ID, **fields: Any) -> dict[str, Any]:
        row = {"id": order_id, "status": "pending", "payment_status": "unpaid", **fields}
        self.orders[order_id] = row
        return row

    @property
    def order_accesses(self) -> int:
        return self.reads + self.writes + self.lookups

    def uow_factory(self, readonly: bool = False) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self, readonly=readonly)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: OrderStore) -> None:
        self.store = store

    async def get_payment_state(self, order_id: str) -> Optional[OrderPaymentState]:
        self.store.reads += 1
        if self.store.fail_read:
            raise OrderStoreError("read", order_id=order_id, error="connection reset")
        row = self.store.orders.get(order_id)
        if row is None:
            return None
        return OrderPaymentState(order_id=order_id, status=row.get("status"), payment_status=row.get("payment_status"))

    async def find_id_by_checkout_session(self, checkout_session_id: str) -> Optional[str]:
        return self._find("checkout_session_id", checkout_session_id)

    async def find_id_by_payment_intent(self, payment_intent_id: str) -> Optional[str]:
        return self._find("payment_intent_id", payment_intent_id)

    def _find(self, column: str, value: str) -> Optional[str]:
        self.store.lookups += 1
        if self.store.fail_lookup:
            raise OrderStoreError("lookup", error="timeout")
        for order_id, row in self.store.orders.items():
            if row.get(column) == value:
                return order_id
        return None

    async def apply_payment_update(self, order_id: str, update: OrderPaymentUpdate) -> int:
        self.store.writes += 1
        if self.store.fail_write:
            raise OrderStoreError("update", order_id=order_id, error="deadlock detected")
        if update.target is TransitionTarget.REFUNDED and self.store.refund_unsupported:
            raise RefundUnsupportedError(order_id)
        if self.store.before_write is not None:
            self.store.before_write(order_id)
        row = self.store.orders.get(order_id)
        if row is None:
            return 0
        if update.target is TransitionTarget.REFUNDED:
            if row.get("status") in REFUND_BLOCKING_STATUSES:
                return 0
        elif row.get("status") in TERMINAL_STATUSES or row.get("payment_status") == OrderPaymentStatus.PAID.value:
            return 0
        row.update(update.to_values())
        return 1

    async def recalc_totals(self, order_id: str) -> None:
        if self.store.fail_recalc:
            raise OrderStoreError("recalc", order_id=order_id, error="function does not exist")
        self.store.recalcs.append(order_id)


class InMemoryEventLogRepository(PaymentEventLogRepository):
    def __init__(self, store: OrderStore) -> None:
        self.store = store

    async def record(self, event_id: str, event_type: str, provider: str) -> bool:
        self.store.event_log_calls += 1
        if self.store.event_log_error:
            raise EventLogUnavailableError('relation "payment_events" does not exist')
        if event_id in self.store.events:
            return False
        self.store.events.add(event_id)
        return True

    async def release(self, event_id: str) -> None:
        self.store.events.discard(event_id)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: OrderStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.order_repository = InMemoryOrderRepository(store)
        self.event_log_repository = InMemoryEventLogRepository(store)

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


class FakeGateway:
    """Scripted provider: each id maps to one object or a list returned in order."""

    provider = "stripe"

    def __init__(self) -> None:
        self.event: Optional[WebhookEvent] = None
        self.signature_ok = True
        self.sessions: dict[str, Any] = {}
        self.intents: dict[str, Any] = {}
        self.charges: dict[str, Any] = {}
        self.calls: list[tuple[str, str, tuple]] = []
        self.fail: Optional[Exception] = None

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        if not self.signature_ok:
            raise PaymentSignatureError("No signatures found matching the expected signature", provider=self.provider)
        return self.event

    async def retrieve_checkout_session(self, session_id: str, *, expand=None) -> dict:
        return self._next("session", self.sessions, session_id, expand)

    async def retrieve_payment_intent(self, intent_id: str, *, expand=None) -> dict:
        return self._next("intent", self.intents, intent_id, expand)

    async def retrieve_charge(self, charge_id: str, *, expand=None) -> dict:
        return self._next("charge", self.charges, charge_id, expand)

    def _next(self, kind: str, objects: dict, object_id: str, expand) -> dict:
        self.calls.append((kind, object_id, tuple(expand or ())))
        if self.fail is not None:
            raise self.fail
        value = objects[object_id]
        if isinstance(value, list):
            return value.pop(0) if len(value) > 1 else value[0]
        return value


@pytest.fixture
def order_id() -> str:
    return ORDER_ID


@pytest.fixture
def store() -> OrderStore:
    return OrderStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_event():
    def _make(event_type: str, obj: dict, event_id: str = "evt_1") -> WebhookEvent:
        return WebhookEvent(id=event_id, type=event_type, provider="stripe", data={"object": obj})
    return _make


@pytest.fixture
def paid_session():
    """A completed, paid checkout session as returned with expanded intent and charge."""
    def _session(session_id: str = "cs_test_1", *, metadata: Optional[dict] = None, **overrides: Any) -> dict:
        session = {
            "id": session_id,
            "object": "checkout.session",
            "status": "complete",
            "payment_status": "paid",
            "amount_total": 2500,
            "currency": "usd",
            "metadata": metadata if metadata is not None else {"order_id": ORDER_ID},
            "client_reference_id": None,
            "payment_intent": {
                "id": "pi_test_1",
                "status": "succeeded",
                "amount": 2500,
                "amount_received": 2500,
                "currency": "usd",
                "latest_charge": {
                    "id": "ch_test_1",
                    "payment_method_details": {"type": "card", "card": {"brand": "visa", "last4": "4242"}},
                },
            },
        }
        session.update(overrides)
        return session
    return _session
