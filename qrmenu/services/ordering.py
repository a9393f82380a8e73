"""
Order Reconciliation Service

The facade the API talks to. It validates input, snapshots menu prices
onto new orders, and turns store records into the normalized order shape
(price, table_id, paid and served always populated) whatever schema the
store runs on.

Checkout and served toggling pick the full or degraded path from the
store's capabilities:

    - checkout on a schema without paid/table_id deletes the table's orders
      instead when LOSSY_CHECKOUT_FALLBACK is enabled, otherwise it raises
      MigrationRequiredError
    - served toggling has no degraded form and raises MigrationRequiredError
"""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Sequence

from qrmenu.core.config import get_settings
from qrmenu.core.exceptions import (
    CatalogLoadError,
    ColumnUnavailableError,
    MigrationRequiredError,
    OrderValidationError,
    ForbiddenError,
    StoreError,
)
from qrmenu.schemas import (
    MENU_ID_MAX_LENGTH,
    QR_ID_MAX_LENGTH,
    MenuItem,
    OrderResponse,
)
from qrmenu.services.catalog import CatalogProvider, get_catalog
from qrmenu.services.orders import get_order_store
from qrmenu.services.orders.base import BaseOrderStore, OrderDraft, OrderId, OrderRecord

logger = logging.getLogger(__name__)


TABLE_HISTORY_LIMIT = 50
ALL_ORDERS_LIMIT = 100

LOSSY_CHECKOUT_WARNING = (
    "Orders were removed instead of being marked paid. "
    "Upgrade the database schema to keep paid orders."
)


@dataclass
class CheckoutResult:
    """
    Outcome of settling a table.

    Attributes:
        table_id: The table that was settled
        affected: Orders marked paid (or deleted, when degraded)
        degraded: True when the delete fallback ran
        warning: Message for staff when the fallback ran
    """
    table_id: str
    affected: int
    degraded: bool = False
    warning: Optional[str] = None

    @property
    def message(self) -> str:
        if self.degraded:
            return f"Processed {self.affected} orders for table {self.table_id} (migration recommended)"
        return f"Checked out {self.affected} orders for table {self.table_id}"


def coerce_price(value: Any) -> int:
    """Coerce a stored price to a non-negative int; null, NaN and junk give 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return max(int(number), 0)


def _require_text(value: Any, field: str, max_length: int) -> str:
    if value is None or value == "":
        raise OrderValidationError(f"{field} is required")
    if not isinstance(value, str):
        raise OrderValidationError(f"{field} must be a string")
    if not value.strip():
        raise OrderValidationError(f"{field} is required")
    if len(value) > max_length:
        raise OrderValidationError(f"{field} must be at most {max_length} characters")
    return value


class OrderService:
    """
    Places, lists, checks out and serves orders over any order store.

    Args:
        store: Injected order store
        catalog: Menu catalog used for price resolution
        restricted_mode: Disable the global order listing
        lossy_checkout_fallback: Allow checkout to delete orders when the
            schema cannot flag them paid (off unless configured)
    """

    def __init__(
        self,
        store: BaseOrderStore,
        catalog: CatalogProvider,
        restricted_mode: bool = False,
        lossy_checkout_fallback: bool = False,
    ):
        self.store = store
        self.catalog = catalog
        self.restricted_mode = restricted_mode
        self.lossy_checkout_fallback = lossy_checkout_fallback

    # =========================================================================
    # MENU
    # =========================================================================

    async def get_menu(self) -> Sequence[MenuItem]:
        """Raises CatalogLoadError when the menu file cannot be read."""
        return await self.catalog.load()

    async def _ensure_catalog(self) -> None:
        try:
            await self.catalog.load()
        except CatalogLoadError as e:
            logger.warning(f"Menu unavailable, prices resolve to 0: {e.detail or e}")

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def place_order(self, qr_id: Any, menu_id: Any) -> OrderResponse:
        """
        Record one item ordered from a table.

        Unknown menu names are accepted with price 0.

        Raises:
            OrderValidationError: Missing, non-string or too long input
            StoreWriteError: The store could not save the order
        """
        qr_id = _require_text(qr_id, "qr_id", QR_ID_MAX_LENGTH)
        menu_id = _require_text(menu_id, "menu_id", MENU_ID_MAX_LENGTH)

        await self._ensure_catalog()
        item = self.catalog.find_by_name(menu_id)
        price = item.price if item is not None else 0
        if item is None:
            logger.info(f"Order for unknown menu item {menu_id!r} accepted with price 0")

        record = await self.store.insert(
            OrderDraft(qr_id=qr_id, menu_id=menu_id, table_id=qr_id, price=price)
        )
        if record.price is None:
            record.price = price
        record.paid = False
        record.served = False

        logger.info(f"Order #{record.id} placed: {qr_id} → {menu_id} ({price})")
        return self._normalize(record)

    async def list_for_table(self, qr_id: Any) -> list[OrderResponse]:
        """Up to 50 most recent unpaid orders of a table (all, when paid is unsupported)."""
        qr_id = _require_text(qr_id, "qr_id", QR_ID_MAX_LENGTH)
        await self._ensure_catalog()
        records = await self.store.list_by_table(qr_id, limit=TABLE_HISTORY_LIMIT, unpaid_only=True)
        return self._present(self._unpaid(records))

    async def list_admin_view(self) -> list[OrderResponse]:
        """Every unpaid order across tables, newest first."""
        await self._ensure_catalog()
        records = await self.store.list_unpaid()
        return self._present(self._unpaid(records))

    async def list_all_orders(self) -> list[OrderResponse]:
        """
        The 100 most recent orders in any state.

        Raises:
            ForbiddenError: Restricted mode is on
        """
        if self.restricted_mode:
            raise ForbiddenError("Listing all orders is disabled in restricted mode")
        await self._ensure_catalog()
        records = await self.store.list_all(limit=ALL_ORDERS_LIMIT)
        return self._present(records)

    # =========================================================================
    # ADMIN ACTIONS
    # =========================================================================

    async def checkout(self, table_id: Any) -> CheckoutResult:
        """
        Settle a table: flag its unpaid orders paid.

        Falls back to deleting the table's orders when the schema has no
        paid/table_id column, when the lossy fallback is enabled. The fallback
        is not atomic: an order placed while it runs may or may not be swept.

        Raises:
            OrderValidationError: Missing table_id
            MigrationRequiredError: No paid column and no usable fallback
        """
        table_id = _require_text(table_id, "table_id", QR_ID_MAX_LENGTH)

        try:
            affected = await self.store.mark_paid(table_id)
        except ColumnUnavailableError as e:
            logger.warning(f"Checkout of {table_id} cannot mark orders paid: {e}")
            return await self._checkout_by_delete(table_id, e.columns)

        logger.info(f"Table {table_id} checked out ({affected} orders)")
        return CheckoutResult(table_id=table_id, affected=affected)

    async def _checkout_by_delete(self, table_id: str, columns: Sequence[str]) -> CheckoutResult:
        if not self.lossy_checkout_fallback:
            raise MigrationRequiredError(columns)

        try:
            deleted = await self.store.delete_by_qr_id(table_id)
        except StoreError as e:
            logger.error(f"Checkout fallback delete failed for {table_id}: {e.detail or e}")
            raise MigrationRequiredError(columns) from e

        logger.warning(f"Table {table_id} checked out by deleting {deleted} orders (schema lacks {', '.join(columns)})")
        return CheckoutResult(
            table_id=table_id,
            affected=deleted,
            degraded=True,
            warning=LOSSY_CHECKOUT_WARNING,
        )

    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderResponse:
        """
        Mark an order served (or not served).

        Raises:
            OrderValidationError: Missing order_id or non-boolean served
            MigrationRequiredError: The schema has no served column
            OrderNotFoundError: No order with this id
        """
        if order_id is None or order_id == "" or isinstance(order_id, bool):
            raise OrderValidationError("order_id is required")
        if not isinstance(served, bool):
            raise OrderValidationError("served must be a boolean")
        await self._ensure_catalog()

        try:
            record = await self.store.toggle_served(order_id, served)
        except ColumnUnavailableError as e:
            logger.warning(f"Cannot toggle served on order {order_id}: {e}")
            raise MigrationRequiredError(e.columns) from e

        return self._normalize(record)

    # =========================================================================
    # NORMALIZATION
    # =========================================================================

    def _unpaid(self, records: Sequence[OrderRecord]) -> list[OrderRecord]:
        if not self.store.capabilities.has_paid:
            return list(records)
        return [r for r in records if not r.paid]

    def _present(self, records: Sequence[OrderRecord]) -> list[OrderResponse]:
        return [self._normalize(r) for r in records]

    def _normalize(self, record: OrderRecord) -> OrderResponse:
        price = record.price
        if price is None and not self.store.capabilities.has_price:
            price = self.catalog.price_for(record.menu_id)

        return OrderResponse(
            id=record.id,
            qr_id=record.qr_id,
            menu_id=record.menu_id,
            table_id=record.table_id or record.qr_id or "unknown",
            price=coerce_price(price),
            timestamp=record.timestamp,
            paid=bool(record.paid),
            paid_at=record.paid_at,
            served=bool(record.served),
            served_at=record.served_at,
        )


@lru_cache()
def get_order_service() -> OrderService:
    """Get the application-wide order service."""
    settings = get_settings()
    return OrderService(
        store=get_order_store(),
        catalog=get_catalog(),
        restricted_mode=settings.is_restricted,
        lossy_checkout_fallback=settings.lossy_checkout_fallback,
    )


def reset_order_service() -> None:
    get_order_service.cache_clear()
