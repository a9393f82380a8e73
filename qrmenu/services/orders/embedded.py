"""
Embedded Order Store

Persists orders to a local SQLite file through SQLAlchemy's async engine.
The table keeps the first-generation layout (id, qr_id, menu_id,
timestamp), so:

    - every order is surfaced as unpaid
    - checkout cannot flag orders paid (ColumnUnavailableError)
    - served toggling is unavailable (ColumnUnavailableError)
"""

import logging
from datetime import timezone
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from qrmenu.core.exceptions import (
    ColumnUnavailableError,
    OrderNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from qrmenu.database import create_engine, create_session_maker, init_db
from qrmenu.models import LegacyOrder
from qrmenu.services.orders.base import (
    BaseOrderStore,
    OrderDraft,
    OrderId,
    OrderRecord,
    StoreCapabilities,
    coerce_order_id,
)

logger = logging.getLogger(__name__)


def _to_record(row: LegacyOrder) -> OrderRecord:
    timestamp = row.timestamp
    # SQLite hands back naive datetimes
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return OrderRecord(
        id=row.id,
        qr_id=row.qr_id,
        menu_id=row.menu_id,
        timestamp=timestamp,
    )


class EmbeddedOrderStore(BaseOrderStore):
    """
    SQLite-backed order store with the legacy schema.

    Args:
        database_url: SQLAlchemy async URL (e.g. sqlite+aiosqlite:///data/orders.db)
        engine: Pre-built engine, mainly for tests
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[AsyncEngine] = None):
        if engine is None:
            if database_url is None:
                raise ValueError("EmbeddedOrderStore needs a database_url or an engine")
            engine = create_engine(database_url)
        self._engine = engine
        self._session_maker = create_session_maker(engine)
        self._capabilities = StoreCapabilities.legacy()

        logger.info(f"EmbeddedOrderStore initialized ({engine.url})")

    @property
    def provider_name(self) -> str:
        return "SQLite"

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def startup(self) -> None:
        await init_db(self._engine)
        logger.info("Embedded order table ready")

    async def shutdown(self) -> None:
        await self._engine.dispose()

    async def insert(self, draft: OrderDraft) -> OrderRecord:
        row = LegacyOrder(qr_id=draft.qr_id, menu_id=draft.menu_id)
        try:
            async with self._session_maker() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"SQLite insert failed: {e}")
            raise StoreWriteError(detail=str(e)) from e

        logger.debug(f"SQLite: stored order #{row.id} for {row.qr_id}")
        return _to_record(row)

    async def get(self, order_id: OrderId) -> Optional[OrderRecord]:
        wanted = coerce_order_id(order_id)
        if wanted is None:
            return None

        try:
            async with self._session_maker() as session:
                row = await session.get(LegacyOrder, wanted)
        except SQLAlchemyError as e:
            logger.error(f"SQLite lookup failed: {e}")
            raise StoreReadError(detail=str(e)) from e

        return _to_record(row) if row is not None else None

    async def list_by_table(
        self,
        qr_id: str,
        limit: int = 50,
        unpaid_only: bool = True,
    ) -> Sequence[OrderRecord]:
        # No paid column: unpaid_only cannot narrow anything
        query = (
            select(LegacyOrder)
            .where(LegacyOrder.qr_id == qr_id)
            .order_by(LegacyOrder.timestamp.desc(), LegacyOrder.id.desc())
            .limit(limit)
        )
        return await self._fetch(query)

    async def list_all(self, limit: int = 100) -> Sequence[OrderRecord]:
        query = (
            select(LegacyOrder)
            .order_by(LegacyOrder.timestamp.desc(), LegacyOrder.id.desc())
            .limit(limit)
        )
        return await self._fetch(query)

    async def list_unpaid(self) -> Sequence[OrderRecord]:
        query = select(LegacyOrder).order_by(LegacyOrder.timestamp.desc(), LegacyOrder.id.desc())
        return await self._fetch(query)

    async def mark_paid(self, table_id: str) -> int:
        raise ColumnUnavailableError("paid", "table_id")

    async def delete_by_qr_id(self, qr_id: str) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(LegacyOrder).where(LegacyOrder.qr_id == qr_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"SQLite delete failed: {e}")
            raise StoreWriteError(detail=str(e)) from e

        return result.rowcount or 0

    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderRecord:
        if await self.get(order_id) is None:
            raise OrderNotFoundError(order_id)
        raise ColumnUnavailableError("served")

    async def count(self) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(func.count(LegacyOrder.id)))
        except SQLAlchemyError as e:
            raise StoreReadError(detail=str(e)) from e
        return result.scalar() or 0

    async def _fetch(self, query) -> list[OrderRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"SQLite query failed: {e}")
            raise StoreReadError(detail=str(e)) from e

        return [_to_record(row) for row in rows]
