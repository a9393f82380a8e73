"""Tests for the SQLite order store (legacy schema)."""

import pytest

from qrmenu.core.exceptions import ColumnUnavailableError, OrderNotFoundError
from qrmenu.services.orders import EmbeddedOrderStore, OrderDraft


@pytest.fixture
async def embedded_store(tmp_path):
    store = EmbeddedOrderStore(f"sqlite+aiosqlite:///{tmp_path / 'data' / 'orders.db'}")
    await store.startup()
    yield store
    await store.shutdown()


def draft(qr_id="table1", menu_id="チーズケーキ"):
    return OrderDraft(qr_id=qr_id, menu_id=menu_id, table_id=qr_id, price=500)


class TestEmbeddedStore:

    async def test_database_directory_is_created(self, tmp_path, embedded_store):
        assert (tmp_path / "data" / "orders.db").exists()

    async def test_capabilities_are_legacy(self, embedded_store):
        caps = embedded_store.capabilities
        assert caps.is_degraded
        assert not any(caps.to_dict().values())
        assert embedded_store.provider_name == "SQLite"

    async def test_insert_keeps_only_base_columns(self, embedded_store):
        record = await embedded_store.insert(draft())
        assert record.id == 1
        assert record.qr_id == "table1"
        assert record.menu_id == "チーズケーキ"
        assert record.timestamp.tzinfo is not None
        assert record.price is None
        assert record.paid is None

    async def test_list_by_table_ignores_unpaid_only(self, embedded_store):
        await embedded_store.insert(draft(menu_id="A"))
        await embedded_store.insert(draft(menu_id="B"))
        await embedded_store.insert(draft(qr_id="table2"))

        records = await embedded_store.list_by_table("table1", unpaid_only=True)
        assert [r.menu_id for r in records] == ["B", "A"]

    async def test_list_unpaid_returns_everything(self, embedded_store):
        await embedded_store.insert(draft("table1"))
        await embedded_store.insert(draft("table2"))
        assert len(await embedded_store.list_unpaid()) == 2
        assert len(await embedded_store.list_all(limit=1)) == 1

    async def test_mark_paid_is_unavailable(self, embedded_store):
        await embedded_store.insert(draft())
        with pytest.raises(ColumnUnavailableError) as exc_info:
            await embedded_store.mark_paid("table1")
        assert "paid" in exc_info.value.columns

    async def test_delete_by_qr_id(self, embedded_store):
        await embedded_store.insert(draft("table1"))
        await embedded_store.insert(draft("table1"))
        await embedded_store.insert(draft("table2"))

        assert await embedded_store.delete_by_qr_id("table1") == 2
        assert await embedded_store.count() == 1

    async def test_toggle_served_unavailable(self, embedded_store):
        record = await embedded_store.insert(draft())
        with pytest.raises(ColumnUnavailableError):
            await embedded_store.toggle_served(record.id, True)

    async def test_toggle_served_unknown_order(self, embedded_store):
        with pytest.raises(OrderNotFoundError):
            await embedded_store.toggle_served(42, True)

    async def test_get(self, embedded_store):
        record = await embedded_store.insert(draft())
        assert (await embedded_store.get(record.id)).menu_id == "チーズケーキ"
        assert await embedded_store.get("abc") is None
