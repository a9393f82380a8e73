"""
Ephemeral Order Store

Keeps orders in process memory. Used when no persistent store is
configured; everything is lost on restart.

Supports every optional column, so checkout flags orders as paid and
served toggling works.
"""

import logging
from dataclasses import replace
from typing import Optional, Sequence

from qrmenu.core.exceptions import OrderNotFoundError
from qrmenu.services.orders.base import (
    BaseOrderStore,
    OrderDraft,
    OrderId,
    OrderRecord,
    StoreCapabilities,
    coerce_order_id,
    utcnow,
)

logger = logging.getLogger(__name__)


def _newest_first(record: OrderRecord):
    return (record.timestamp, record.id)


class EphemeralOrderStore(BaseOrderStore):
    """
    In-memory order store.

    Each instance owns its own list and id counter, so tests and the app
    never share state by accident.

    Example:
        >>> store = EphemeralOrderStore()
        >>> record = await store.insert(OrderDraft("table1", "Tiramisu", "table1", 650))
        >>> record.id
        1
    """

    def __init__(self):
        self._orders: list[OrderRecord] = []
        self._next_id = 1
        self._capabilities = StoreCapabilities()

        logger.info("EphemeralOrderStore initialized (orders are not persisted)")

    @property
    def provider_name(self) -> str:
        return "Memory"

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def insert(self, draft: OrderDraft) -> OrderRecord:
        record = OrderRecord(
            id=self._next_id,
            qr_id=draft.qr_id,
            menu_id=draft.menu_id,
            timestamp=utcnow(),
            table_id=draft.table_id,
            price=draft.price,
            paid=draft.paid,
            served=draft.served,
        )
        self._next_id += 1
        self._orders.append(record)

        logger.debug(f"Memory: stored order #{record.id} for {record.qr_id}")
        return replace(record)

    async def get(self, order_id: OrderId) -> Optional[OrderRecord]:
        record = self._find(order_id)
        return replace(record) if record is not None else None

    async def list_by_table(
        self,
        qr_id: str,
        limit: int = 50,
        unpaid_only: bool = True,
    ) -> Sequence[OrderRecord]:
        matches = [
            o for o in self._orders
            if o.qr_id == qr_id and not (unpaid_only and o.paid)
        ]
        return self._newest(matches, limit)

    async def list_all(self, limit: int = 100) -> Sequence[OrderRecord]:
        return self._newest(self._orders, limit)

    async def list_unpaid(self) -> Sequence[OrderRecord]:
        return self._newest([o for o in self._orders if not o.paid], None)

    async def mark_paid(self, table_id: str) -> int:
        now = utcnow()
        updated = 0
        for order in self._orders:
            if order.table_id == table_id and not order.paid:
                order.paid = True
                order.paid_at = now
                updated += 1

        logger.info(f"Memory: marked {updated} orders paid for table {table_id}")
        return updated

    async def delete_by_qr_id(self, qr_id: str) -> int:
        before = len(self._orders)
        self._orders = [o for o in self._orders if o.qr_id != qr_id]
        return before - len(self._orders)

    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderRecord:
        order = self._find(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        order.served = served
        order.served_at = utcnow() if served else None
        return replace(order)

    async def count(self) -> int:
        return len(self._orders)

    def _find(self, order_id: OrderId) -> Optional[OrderRecord]:
        wanted = coerce_order_id(order_id)
        for order in self._orders:
            if order.id == wanted:
                return order
        return None

    @staticmethod
    def _newest(records: list[OrderRecord], limit: Optional[int]) -> list[OrderRecord]:
        ordered = sorted(records, key=_newest_first, reverse=True)
        if limit is not None:
            ordered = ordered[:limit]
        return [replace(o) for o in ordered]
