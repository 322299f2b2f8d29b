"""Abstract Unit of Work."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository, PaymentEventLogRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer."""

    order_repository: OrderRepository
    event_log_repository: PaymentEventLogRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.event_log_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # commit automatically unless readonly or already committed
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
