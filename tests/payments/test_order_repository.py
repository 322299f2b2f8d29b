from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


pytest.importorskip("aiosqlite")

from domain.common.exceptions import OrderStoreError, RefundUnsupportedError
from domain.order.entity import OrderPaymentUpdate, TransitionTarget
from infrastructure.models import Base, OrderModel, PaymentEventModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


ORDER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_ID = "22222222-2222-2222-2222-222222222222"


async def _engine(create_schema=True):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    if create_schema:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(bind=engine, expire_on_commit=False)


async def _insert(maker, *orders):
    async with maker() as session:
        session.add_all(orders)
        await session.commit()


async def _load(maker, order_id):
    async with maker() as session:
        return await session.get(OrderModel, order_id)


@pytest.mark.asyncio
async def test_paid_update_is_written_and_canceled_rows_excluded():
    engine, maker = await _engine()
    try:
        await _insert(
            maker,
            OrderModel(id=ORDER_ID, status="pending", payment_status="unpaid"),
            OrderModel(id=OTHER_ID, status="canceled", payment_status="unpaid"),
        )
        update = OrderPaymentUpdate(
            payment_provider="stripe",
            payment_intent_id="pi_1",
            payment_method_brand="visa",
            payment_last4="4242",
            total_cents=2500,
            currency="USD",
        )

        async with SQLAlchemyUnitOfWork(maker) as uow:
            assert await uow.order_repository.apply_payment_update(ORDER_ID, update) == 1
            assert await uow.order_repository.apply_payment_update(OTHER_ID, update) == 0

        row = await _load(maker, ORDER_ID)
        assert (row.status, row.payment_status, row.payment_last4, row.currency) == ("paid", "paid", "4242", "usd")
        assert row.paid_at is not None
        assert (await _load(maker, OTHER_ID)).status == "canceled"

        async with SQLAlchemyUnitOfWork(maker, readonly=True) as uow:
            state = await uow.order_repository.get_payment_state(ORDER_ID)
            missing = await uow.order_repository.get_payment_state("33333333-3333-3333-3333-333333333333")
        assert state.is_terminal()
        assert missing is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_paid_update_skips_refunded_and_already_paid_rows():
    engine, maker = await _engine()
    try:
        await _insert(
            maker,
            OrderModel(id=ORDER_ID, status="refunded", payment_status="refunded", refunded_cents=500),
            OrderModel(id=OTHER_ID, status="pending", payment_status="paid"),
        )
        update = OrderPaymentUpdate(payment_provider="stripe", payment_intent_id="pi_late", total_cents=2500)

        async with SQLAlchemyUnitOfWork(maker) as uow:
            assert await uow.order_repository.apply_payment_update(ORDER_ID, update) == 0
            assert await uow.order_repository.apply_payment_update(OTHER_ID, update) == 0

        refunded = await _load(maker, ORDER_ID)
        assert (refunded.status, refunded.payment_status, refunded.refunded_cents) == ("refunded", "refunded", 500)
        assert refunded.payment_intent_id is None
        already_paid = await _load(maker, OTHER_ID)
        assert (already_paid.status, already_paid.payment_intent_id) == ("pending", None)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_failed_unit_of_work_rolls_back():
    engine, maker = await _engine()
    try:
        await _insert(maker, OrderModel(id=ORDER_ID, status="pending"))
        with pytest.raises(RuntimeError):
            async with SQLAlchemyUnitOfWork(maker) as uow:
                await uow.order_repository.apply_payment_update(ORDER_ID, OrderPaymentUpdate(total_cents=1))
                raise RuntimeError("boom")
        assert (await _load(maker, ORDER_ID)).status == "pending"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_reverse_lookup_prefers_most_recent_order():
    engine, maker = await _engine()
    now = datetime.now(timezone.utc)
    try:
        await _insert(
            maker,
            OrderModel(id=ORDER_ID, status="pending", payment_intent_id="pi_1", created_at=now - timedelta(days=1)),
            OrderModel(id=OTHER_ID, status="pending", payment_intent_id="pi_1", checkout_session_id="cs_1", created_at=now),
        )
        async with SQLAlchemyUnitOfWork(maker, readonly=True) as uow:
            assert await uow.order_repository.find_id_by_payment_intent("pi_1") == OTHER_ID
            assert await uow.order_repository.find_id_by_checkout_session("cs_1") == OTHER_ID
            assert await uow.order_repository.find_id_by_checkout_session("cs_missing") is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_event_log_detects_duplicates_and_releases():
    engine, maker = await _engine()
    try:
        async with SQLAlchemyUnitOfWork(maker) as uow:
            assert await uow.event_log_repository.record("evt_1", "charge.refunded", "stripe") is True
        async with SQLAlchemyUnitOfWork(maker) as uow:
            assert await uow.event_log_repository.record("evt_1", "charge.refunded", "stripe") is False

        async with maker() as session:
            assert len((await session.execute(PaymentEventModel.__table__.select())).all()) == 1

        async with SQLAlchemyUnitOfWork(maker) as uow:
            await uow.event_log_repository.release("evt_1")
        async with SQLAlchemyUnitOfWork(maker) as uow:
            assert await uow.event_log_repository.record("evt_1", "charge.refunded", "stripe") is True
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_refund_without_refund_columns_is_unsupported():
    engine, maker = await _engine(create_schema=False)
    try:
        async with engine.begin() as conn:
            await conn.exec_driver_sql(
                "CREATE TABLE orders (id VARCHAR(36) PRIMARY KEY, status VARCHAR(32) NOT NULL, "
                "payment_status VARCHAR(32), updated_at DATETIME)"
            )
            await conn.exec_driver_sql("INSERT INTO orders (id, status) VALUES ('%s', 'paid')" % ORDER_ID)

        update = OrderPaymentUpdate(target=TransitionTarget.REFUNDED, refunded_cents=500, full_refund=False)
        with pytest.raises(RefundUnsupportedError):
            async with SQLAlchemyUnitOfWork(maker) as uow:
                await uow.order_repository.apply_payment_update(ORDER_ID, update)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_recalc_function_errors_surface_as_store_errors():
    engine, maker = await _engine()
    try:
        async with SQLAlchemyUnitOfWork(maker, recalc_function="recalc_order_totals") as uow:
            with pytest.raises(OrderStoreError):
                await uow.order_repository.recalc_totals(ORDER_ID)
            await uow.rollback()

        async with SQLAlchemyUnitOfWork(maker, recalc_function="bad name; drop table orders") as uow:
            assert await uow.order_repository.recalc_totals(ORDER_ID) is None
    finally:
        await engine.dispose()
