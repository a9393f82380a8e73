"""
Order Store Abstract Base Class

Defines the contract shared by every order store implementation:

    - EphemeralOrderStore: in-process lists, lost on restart
    - EmbeddedOrderStore: local SQLite file with the legacy schema
    - RemoteOrderStore: hosted Supabase (PostgREST) table, always used
      through SchemaAdaptiveOrderStore

Stores return raw OrderRecord values. Optional columns the backing schema
does not have come back as None; the reconciliation service turns records
into the normalized client representation.

Design Pattern: Strategy Pattern
    - The store is chosen once at startup and injected
    - Tests construct isolated instances
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Optional, Sequence, Union


OrderId = Union[int, str]

# Optional columns, grouped by the capability that provides them
OPTIONAL_COLUMNS = {
    "paid": ("paid", "paid_at"),
    "served": ("served", "served_at"),
    "table_id": ("table_id",),
    "price": ("price",),
}
BASE_COLUMNS = ("id", "qr_id", "menu_id", "timestamp")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_order_id(order_id: OrderId) -> Optional[int]:
    """Integer id for lookups; None when the value cannot name an order."""
    if isinstance(order_id, bool):
        return None
    try:
        return int(order_id)
    except (TypeError, ValueError):
        return None


@dataclass
class StoreCapabilities:
    """
    Which optional columns the backing schema supports.

    Attributes:
        has_paid: paid / paid_at columns exist
        has_served: served / served_at columns exist
        has_table_id: table_id column exists
        has_price: price column exists
    """
    has_paid: bool = True
    has_served: bool = True
    has_table_id: bool = True
    has_price: bool = True

    @classmethod
    def legacy(cls) -> "StoreCapabilities":
        """Capabilities of the first-generation schema (no optional columns)."""
        return cls(has_paid=False, has_served=False, has_table_id=False, has_price=False)

    def supports(self, capability: str) -> bool:
        return getattr(self, f"has_{capability}")

    def disable(self, capability: str) -> None:
        setattr(self, f"has_{capability}", False)

    def columns(self) -> tuple[str, ...]:
        """Columns a full-fidelity select can ask for under these capabilities."""
        cols = list(BASE_COLUMNS)
        for capability, names in OPTIONAL_COLUMNS.items():
            if self.supports(capability):
                cols.extend(names)
        return tuple(cols)

    @property
    def can_mark_paid(self) -> bool:
        return self.has_paid and self.has_table_id

    @property
    def is_degraded(self) -> bool:
        return not all((self.has_paid, self.has_served, self.has_table_id, self.has_price))

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass
class OrderDraft:
    """An order about to be inserted; the store assigns id and timestamp."""
    qr_id: str
    menu_id: str
    table_id: str
    price: int = 0
    paid: bool = False
    served: bool = False


@dataclass
class OrderRecord:
    """
    An order as stored.

    Fields backed by optional columns are None when the schema lacks them
    (or the stored value is null).
    """
    id: OrderId
    qr_id: str
    menu_id: str
    timestamp: Optional[datetime] = None
    table_id: Optional[str] = None
    price: Optional[Any] = None
    paid: Optional[bool] = None
    paid_at: Optional[datetime] = None
    served: Optional[bool] = None
    served_at: Optional[datetime] = None


class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    All store implementations must inherit from this class and implement
    all abstract methods. Reads return records newest first.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the store name shown in health output (e.g. "Memory")."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> StoreCapabilities:
        """Optional columns this store can persist."""
        pass

    async def startup(self) -> None:
        """Prepare the store (create tables, probe schema). Default: nothing."""

    async def shutdown(self) -> None:
        """Release connections. Default: nothing."""

    @abstractmethod
    async def insert(self, draft: OrderDraft) -> OrderRecord:
        """
        Persist a new order.

        Raises:
            StoreWriteError: The store could not save the record
        """
        pass

    @abstractmethod
    async def get(self, order_id: OrderId) -> Optional[OrderRecord]:
        """Fetch one order by id, None when unknown."""
        pass

    @abstractmethod
    async def list_by_table(
        self,
        qr_id: str,
        limit: int = 50,
        unpaid_only: bool = True,
    ) -> Sequence[OrderRecord]:
        """
        Orders placed with the given table token, newest first.

        unpaid_only is honored only when the store can express "paid";
        otherwise every order is returned.
        """
        pass

    @abstractmethod
    async def list_all(self, limit: int = 100) -> Sequence[OrderRecord]:
        """All orders regardless of state, newest first."""
        pass

    @abstractmethod
    async def list_unpaid(self) -> Sequence[OrderRecord]:
        """Every unpaid order across tables (all orders when paid is unsupported)."""
        pass

    @abstractmethod
    async def mark_paid(self, table_id: str) -> int:
        """
        Flag every unpaid order of a table as paid.

        Returns:
            int: Number of orders updated

        Raises:
            ColumnUnavailableError: The schema cannot express paid/table_id
        """
        pass

    @abstractmethod
    async def delete_by_qr_id(self, qr_id: str) -> int:
        """Physically remove every order of a table token. Returns the count."""
        pass

    @abstractmethod
    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderRecord:
        """
        Set the served flag and served_at of one order.

        Raises:
            ColumnUnavailableError: The schema has no served column
            OrderNotFoundError: No order with this id
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Total number of stored orders."""
        pass
