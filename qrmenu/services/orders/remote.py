"""
Remote Order Store (Supabase / PostgREST)

Talks to a hosted Supabase table through the postgrest client, the same
query builder the Supabase SDK exposes as ``supabase.table(...)``.

Queries are built from the store's StoreCapabilities: optional columns the
capabilities rule out are left out of selects, filters and writes. The
store itself never guesses: a query naming a column the schema lacks fails
with RemoteQueryError, and SchemaAdaptiveOrderStore decides what to drop.

API Documentation:
    https://postgrest-py.readthedocs.io/
    https://postgrest.org/en/stable/references/api.html
"""

import logging
import re
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

import httpx
from postgrest import AsyncPostgrestClient
from postgrest.exceptions import APIError
from postgrest.types import CountMethod

from qrmenu.core.exceptions import (
    ColumnUnavailableError,
    OrderNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from qrmenu.services.orders.base import (
    OPTIONAL_COLUMNS,
    BaseOrderStore,
    OrderDraft,
    OrderId,
    OrderRecord,
    StoreCapabilities,
    coerce_order_id,
    utcnow,
)

logger = logging.getLogger(__name__)


# "column does not exist" (PostgreSQL) and "column not in schema cache" (PostgREST)
MISSING_COLUMN_CODES = frozenset({"42703", "PGRST204"})

_MISSING_COLUMN_PATTERNS = (
    re.compile(r"column \"?(?:\w+\.)?(\w+)\"? (?:of relation \"?\w+\"? )?does not exist"),
    re.compile(r"Could not find the '(\w+)' column"),
)

_CAPABILITY_BY_COLUMN = {
    column: capability
    for capability, columns in OPTIONAL_COLUMNS.items()
    for column in columns
}


def capability_for_column(column: str) -> Optional[str]:
    """Capability providing an optional column; None for any other column."""
    return _CAPABILITY_BY_COLUMN.get(column)


class RemoteQueryError(Exception):
    """A query rejected by PostgREST (wraps postgrest's APIError)."""

    def __init__(
        self,
        code: Optional[str],
        message: str,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.hint = hint
        super().__init__(f"[{code}] {message}")

    @classmethod
    def from_api_error(cls, error: APIError) -> "RemoteQueryError":
        return cls(
            code=str(error.code) if error.code is not None else None,
            message=error.message or str(error),
            details=error.details,
            hint=error.hint,
        )

    @property
    def is_missing_column(self) -> bool:
        return self.code in MISSING_COLUMN_CODES

    @property
    def missing_column(self) -> Optional[str]:
        """Column named in the error message, when it can be read."""
        for pattern in _MISSING_COLUMN_PATTERNS:
            match = pattern.search(self.message or "")
            if match:
                return match.group(1)
        return None

    @property
    def missing_capability(self) -> Optional[str]:
        column = self.missing_column
        return capability_for_column(column) if column else None


def _parse_instant(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Unparseable timestamp from remote store: {value!r}")
        return None


def _row_to_record(row: dict) -> OrderRecord:
    return OrderRecord(
        id=row.get("id"),
        qr_id=row.get("qr_id") or "",
        menu_id=row.get("menu_id") or "",
        timestamp=_parse_instant(row.get("timestamp")),
        table_id=row.get("table_id"),
        price=row.get("price"),
        paid=row.get("paid"),
        paid_at=_parse_instant(row.get("paid_at")),
        served=row.get("served"),
        served_at=_parse_instant(row.get("served_at")),
    )


class RemoteOrderStore(BaseOrderStore):
    """
    Supabase order store.

    Configuration:
        Requires the project URL and an API key (SUPABASE_URL,
        SUPABASE_ANON_KEY).

    Args:
        url: Supabase project URL
        api_key: Supabase API key, sent as apikey and bearer token
        table: Table name (default: "orders")
        timeout: Request timeout in seconds
        transport: Custom httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "orders",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not api_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_ANON_KEY are required for the remote store. "
                "Set them in your .env file or environment variables."
            )

        rest_url = f"{url.rstrip('/')}/rest/v1"
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        self.table = table
        self._client = AsyncPostgrestClient(rest_url, headers=headers, timeout=timeout)
        if transport is not None:
            # Same base URL and headers, answered in-process
            self._client.session = httpx.AsyncClient(
                base_url=rest_url,
                headers=self._client.session.headers,
                timeout=timeout,
                transport=transport,
            )
        self._capabilities = StoreCapabilities()

        logger.info(f"RemoteOrderStore initialized ({url}, table={table})")

    @property
    def provider_name(self) -> str:
        return "Supabase"

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def shutdown(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _table(self):
        return self._client.from_(self.table)

    async def _execute(self, query, write: bool = False):
        try:
            return await query.execute()
        except APIError as e:
            raise RemoteQueryError.from_api_error(e) from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase request failed: {e}")
            error_cls = StoreWriteError if write else StoreReadError
            raise error_cls(detail=str(e)) from e

    def _select(self):
        return self._table().select(*self._capabilities.columns())

    def _unpaid(self, query):
        if self._capabilities.has_paid:
            query = query.not_.is_("paid", "true")
        return query

    async def _records(self, query) -> list[OrderRecord]:
        response = await self._execute(query)
        return [_row_to_record(row) for row in response.data]

    async def fetch_columns(self, columns: Iterable[str], limit: int = 0) -> list[dict]:
        """Select raw rows with an explicit column list (used to probe the schema)."""
        response = await self._execute(self._table().select(*columns).limit(limit))
        return response.data

    # =========================================================================
    # STORE CONTRACT
    # =========================================================================

    async def insert(self, draft: OrderDraft) -> OrderRecord:
        caps = self._capabilities
        row: dict[str, Any] = {
            "qr_id": draft.qr_id,
            "menu_id": draft.menu_id,
            "timestamp": utcnow().isoformat(),
        }
        if caps.has_table_id:
            row["table_id"] = draft.table_id
        if caps.has_price:
            row["price"] = draft.price
        if caps.has_paid:
            row["paid"] = draft.paid
        if caps.has_served:
            row["served"] = draft.served

        response = await self._execute(self._table().insert(row), write=True)
        if not response.data:
            raise StoreWriteError(detail="insert returned no rows")
        return _row_to_record(response.data[0])

    async def get(self, order_id: OrderId) -> Optional[OrderRecord]:
        wanted = coerce_order_id(order_id)
        if wanted is None:
            return None
        records = await self._records(self._select().eq("id", wanted).limit(1))
        return records[0] if records else None

    async def list_by_table(
        self,
        qr_id: str,
        limit: int = 50,
        unpaid_only: bool = True,
    ) -> Sequence[OrderRecord]:
        query = self._select().eq("qr_id", qr_id)
        if unpaid_only:
            query = self._unpaid(query)
        return await self._records(query.order("timestamp", desc=True).limit(limit))

    async def list_all(self, limit: int = 100) -> Sequence[OrderRecord]:
        return await self._records(self._select().order("timestamp", desc=True).limit(limit))

    async def list_unpaid(self) -> Sequence[OrderRecord]:
        query = self._unpaid(self._select())
        return await self._records(query.order("timestamp", desc=True))

    async def mark_paid(self, table_id: str) -> int:
        caps = self._capabilities
        if not caps.can_mark_paid:
            missing = [c for c in ("paid", "table_id") if not caps.supports(c)]
            raise ColumnUnavailableError(*missing)

        query = (
            self._table()
            .update({"paid": True, "paid_at": utcnow().isoformat()})
            .eq("table_id", table_id)
            .not_.is_("paid", "true")
        )
        response = await self._execute(query, write=True)
        updated = len(response.data)
        logger.info(f"Supabase: marked {updated} orders paid for table {table_id}")
        return updated

    async def delete_by_qr_id(self, qr_id: str) -> int:
        response = await self._execute(self._table().delete().eq("qr_id", qr_id), write=True)
        return len(response.data)

    async def toggle_served(self, order_id: OrderId, served: bool) -> OrderRecord:
        if not self._capabilities.has_served:
            raise ColumnUnavailableError("served")

        wanted = coerce_order_id(order_id)
        if wanted is None:
            raise OrderNotFoundError(order_id)

        query = (
            self._table()
            .update({"served": served, "served_at": utcnow().isoformat() if served else None})
            .eq("id", wanted)
        )
        response = await self._execute(query, write=True)
        if not response.data:
            raise OrderNotFoundError(order_id)
        return _row_to_record(response.data[0])

    async def count(self) -> int:
        response = await self._execute(
            self._table().select("id", count=CountMethod.exact).limit(1)
        )
        return response.count or 0
