"""
Schema-Adaptive Query Layer

Wraps RemoteOrderStore for deployments whose order table predates some of
the optional columns (paid/paid_at, served/served_at, table_id, price).

Each call first runs at the fidelity the current capabilities allow. When
the remote answers with a missing-column error (42703 / PGRST204) the
offending capability is switched off and the call is re-issued without it.
Capabilities are tracked per column group: losing paid says nothing about
served.

Records read back are backfilled with safe defaults:
    paid -> False, served -> False, table_id -> qr_id,
    price -> catalog price of menu_id (only when the price column is missing)

Read paths never surface the degraded state. Writes that have no degraded
form raise ColumnUnavailableError for the reconciliation service to handle.
"""

import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from qrmenu.core.exceptions import StoreError, StoreReadError, StoreWriteError
from qrmenu.services.orders.base import (
    OPTIONAL_COLUMNS,
    BaseOrderStore,
    OrderDraft,
    OrderId,
    OrderRecord,
    StoreCapabilities,
)
from qrmenu.services.orders.remote import (
    RemoteOrderStore,
    RemoteQueryError,
    capability_for_column,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_OPTIONAL = tuple(OPTIONAL_COLUMNS)


class SchemaAdaptiveOrderStore(BaseOrderStore):
    """
    Degrade-and-retry wrapper around the remote store.

    Args:
        remote: The store issuing the actual queries
        price_lookup: Resolves a menu name to its price when the schema has
            no price column
    """

    def __init__(
        self,
        remote: RemoteOrderStore,
        price_lookup: Optional[Callable[[str], int]] = None,
    ):
        self._remote = remote
        self._price_lookup = price_lookup
        self.probed = False

    @property
    def provider_name(self) -> str:
        return self._remote.provider_name

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._remote.capabilities

    async def startup(self) -> None:
        try:
            await self.probe()
        except StoreError as e:
            # Unreachable at boot: stay optimistic and learn from live errors
            logger.warning(f"Schema probe skipped, remote store unavailable: {e.detail or e}")

    async def shutdown(self) -> None:
        await self._remote.shutdown()

    async def probe(self) -> StoreCapabilities:
        """
        Check each optional column group once against the live schema.

        Raises:
            StoreReadError: The remote failed for a reason other than a
                missing column
        """
        for capability, columns in OPTIONAL_COLUMNS.items():
            if not self.capabilities.supports(capability):
                continue
            try:
                await self._remote.fetch_columns(columns, limit=0)
            except RemoteQueryError as e:
                if not e.is_missing_column:
                    raise StoreReadError(detail=str(e)) from e
                self._downgrade(capability, e)

        self.probed = True
        logger.info(f"Remote schema capabilities: {self.capabilities.to_dict()}")
        return self.capabilities

    # =========================================================================
    # DEGRADE AND RETRY
    # =========================================================================

    def _downgrade(self, capability: str, error: RemoteQueryError) -> None:
        self.capabilities.disable(capability)
        logger.warning(
            f"Remote schema has no '{capability}' column ({error.code}: {error.message}); "
            f"continuing without it"
        )

    async def _confirm_missing(self, touches: Sequence[str]) -> list[str]:
        """Re-probe the groups an operation touches; return the ones really absent."""
        missing = []
        for capability in touches:
            if not self.capabilities.supports(capability):
                continue
            try:
                await self._remote.fetch_columns(OPTIONAL_COLUMNS[capability], limit=0)
            except RemoteQueryError as e:
                if not e.is_missing_column:
                    raise StoreReadError(detail=str(e)) from e
                missing.append(capability)
        return missing

    async def _run(
        self,
        operation: Callable[[], Awaitable[T]],
        touches: Sequence[str],
        write: bool = False,
    ) -> T:
        """
        Run an operation, dropping unsupported column groups until it succeeds.

        Only a group whose column is named in the error, or confirmed absent
        by a re-probe when the error names no column, is dropped. An error
        naming any other column is raised without downgrading.
        """
        error_cls = StoreWriteError if write else StoreReadError
        while True:
            try:
                return await operation()
            except RemoteQueryError as e:
                if not e.is_missing_column:
                    logger.error(f"Supabase error ({e.code}): {e.message}")
                    raise error_cls(detail=str(e)) from e

                column = e.missing_column
                if column is not None:
                    named = capability_for_column(column)
                    candidates = [named] if named and self.capabilities.supports(named) else []
                else:
                    candidates = await self._confirm_missing(touches)

                if not candidates:
                    logger.error(f"Missing column error with nothing to drop: {e.message}")
                    raise error_cls(detail=str(e)) from e

                for capability in candidates:
                    self._downgrade(capability, e)

    def _backfill(self, record: OrderRecord) -> OrderRecord:
        if not record.table_id:
            record.table_id = record.qr_id
        if record.paid is None:
            record.paid = False
        if record.served is None:
            record.served = False
        if record.price is None and not self.capabilities.has_price and self._price_lookup:
            record.price = self._price_lookup(record.menu_id)
        return record

    def _backfill_all(self, records: Sequence[OrderRecord]) -> list[OrderRecord]:
        return [self._backfill(r) for r in records]

    # =========================================================================
    # STORE CONTRACT
    # =========================================================================

    async def insert(self, draft: OrderDraft) -> OrderRecord:
        record = await self._run(lambda: self._remote.insert(draft), ALL_OPTIONAL, write=True)
        return self._backfill(record)

    async def get(self, order_id: OrderId) -> Optional[OrderRecord]:
        record = await self._run(lambda: self._remote.get(order_id), ALL_OPTIONAL)
        return self._backfill(record) if record is not None else None

    async def list_by_table(
        self,
        qr_id: str,
        limit: int = 50,
        unpaid_only: bool = True,
    ) -> Sequence[OrderRecord]:
        records = await self._run(
            lambda: self._remote.list_by_table(qr_id, limit=limit, unpaid_only=unpaid_only),
            ALL_OPTIONAL,
        )
        return self._backfill_all(records)

    async def list_all(self, limit: int = 100) -> Sequence[OrderRecord]:
        records = await self._run(lambda: self._remote.list_all(limit=limit), ALL_OPTIONAL)
        return self._backfill_all(records)

    async def list_unpaid(self) -> Sequence[OrderRecord]:
        records = await self._run(self._remote.list_unpaid, ALL_OPTIONAL)
        return self._backfill_all(records)

    async def mark_paid(self, table_id: str) -> int:
        return await self._run(
            lambda: self._remote.mark_paid(table_id),
            ("paid", "table_id"),
            write=True,
        )

    async def delete_by_qr_id(self, qr_id: str) -> int:
        return await self._run(lambda: self._remote.delete_by_qr_id(qr_id), (), write=True)

    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderRecord:
        record = await self._run(
            lambda: self._remote.toggle_served(order_id, served),
            ("served",),
            write=True,
        )
        return self._backfill(record)

    async def count(self) -> int:
        return await self._run(self._remote.count, ())
