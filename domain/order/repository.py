"""
Order repository interfaces - what the reconciliation core needs from the store.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import OrderPaymentState, OrderPaymentUpdate


class OrderRepository(ABC):
    """Order store abstraction; implementations raise OrderStoreError on I/O failure."""

    @abstractmethod
    async def get_payment_state(self, order_id: str) -> Optional[OrderPaymentState]:
        """Read status/payment_status by primary id, None when absent."""
        pass

    @abstractmethod
    async def find_id_by_checkout_session(self, checkout_session_id: str) -> Optional[str]:
        """Reverse lookup by a previously stored checkout session id."""
        pass

    @abstractmethod
    async def find_id_by_payment_intent(self, payment_intent_id: str) -> Optional[str]:
        """Reverse lookup by a previously stored payment intent id."""
        pass

    @abstractmethod
    async def apply_payment_update(self, order_id: str, update: OrderPaymentUpdate) -> int:
        """Conditional update excluding canceled rows; returns affected row count."""
        pass

    async def recalc_totals(self, order_id: str) -> None:
        """Optional downstream recompute; no-op unless the store supports it."""
        return None


class PaymentEventLogRepository(ABC):
    """Append-only log of processed provider event ids."""

    @abstractmethod
    async def record(self, event_id: str, event_type: str, provider: str) -> bool:
        """Insert-if-absent. True when newly recorded, False on a uniqueness conflict.

        Raises EventLogUnavailableError for any other failure.
        """
        pass

    @abstractmethod
    async def release(self, event_id: str) -> None:
        """Forget an event id so a provider retry is processed again."""
        pass
