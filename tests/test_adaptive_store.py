"""Tests for the remote store and its schema-adaptive wrapper."""

import httpx
import pytest
from postgrest.exceptions import APIError

from qrmenu.core.exceptions import (
    ColumnUnavailableError,
    OrderNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from qrmenu.services.orders import (
    OrderDraft,
    RemoteOrderStore,
    RemoteQueryError,
    SchemaAdaptiveOrderStore,
)
from qrmenu.services.ordering import OrderService
from tests.conftest import FULL_COLUMNS, LEGACY_COLUMNS


def draft(qr_id="table1", menu_id="ティラミス", price=650):
    return OrderDraft(qr_id=qr_id, menu_id=menu_id, table_id=qr_id, price=price)


def without(*columns):
    return [c for c in FULL_COLUMNS if c not in columns]


class TestRemoteQueryError:
    """Recognizing missing-column errors."""

    def test_postgres_message(self):
        error = RemoteQueryError("42703", "column orders.paid does not exist")
        assert error.is_missing_column
        assert error.missing_column == "paid"
        assert error.missing_capability == "paid"

    def test_postgrest_schema_cache_message(self):
        error = RemoteQueryError(
            "PGRST204", "Could not find the 'served_at' column of 'orders' in the schema cache"
        )
        assert error.is_missing_column
        assert error.missing_capability == "served"

    def test_base_column_has_no_capability(self):
        error = RemoteQueryError("42703", "column orders.created_at does not exist")
        assert error.missing_column == "created_at"
        assert error.missing_capability is None

    def test_other_errors(self):
        error = RemoteQueryError("23505", "duplicate key value violates unique constraint")
        assert not error.is_missing_column
        assert error.missing_column is None

    def test_from_api_error(self):
        api_error = APIError({"code": "42703", "message": "column orders.price does not exist"})
        error = RemoteQueryError.from_api_error(api_error)
        assert error.code == "42703"
        assert error.missing_capability == "price"


class TestRemoteRequests:
    """Wire format of the PostgREST requests."""

    async def test_auth_headers_and_base_url(self, postgrest_factory):
        fake, remote, _ = postgrest_factory()
        await remote.count()

        request = fake.requests[-1]
        assert request.url.host == "test-project.supabase.co"
        assert request.url.path == "/rest/v1/orders"
        assert request.headers["apikey"] == "test-anon-key"
        assert request.headers["authorization"] == "Bearer test-anon-key"

    async def test_count_reads_content_range(self, postgrest_factory):
        fake, remote, _ = postgrest_factory()
        for _ in range(3):
            fake.seed(qr_id="table1", menu_id="A")

        assert await remote.count() == 3
        assert fake.requests[-1].method == "GET"
        assert "count=exact" in fake.requests[-1].headers["prefer"]

    async def test_unpaid_filter(self, postgrest_factory):
        fake, remote, _ = postgrest_factory()
        await remote.list_by_table("table1")

        params = fake.requests[-1].url.params
        assert params["qr_id"] == "eq.table1"
        assert params["paid"] == "not.is.true"
        assert params["order"] == "timestamp.desc"
        assert params["limit"] == "50"

    async def test_transport_failure_is_a_store_error(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        remote = RemoteOrderStore(
            url="https://test-project.supabase.co",
            api_key="test-anon-key",
            transport=httpx.MockTransport(broken),
        )
        adaptive = SchemaAdaptiveOrderStore(remote)
        with pytest.raises(StoreReadError):
            await adaptive.list_all()
        with pytest.raises(StoreWriteError):
            await adaptive.insert(draft())


class TestFullSchema:
    """Nothing is downgraded when every column exists."""

    async def test_probe_keeps_capabilities(self, postgrest_factory):
        _, _, adaptive = postgrest_factory()
        caps = await adaptive.probe()
        assert not caps.is_degraded
        assert adaptive.probed

    async def test_insert_writes_optional_columns(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        record = await adaptive.insert(draft())

        assert record.price == 650
        assert record.table_id == "table1"
        assert record.paid is False
        assert fake.rows[0]["price"] == 650
        assert fake.rows[0]["table_id"] == "table1"

    async def test_mark_paid_and_list(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        await adaptive.insert(draft())
        await adaptive.insert(draft())
        await adaptive.insert(draft("table2"))

        assert await adaptive.mark_paid("table1") == 2
        assert fake.rows[0]["paid"] is True
        assert fake.rows[0]["paid_at"] is not None

        unpaid = await adaptive.list_unpaid()
        assert [r.qr_id for r in unpaid] == ["table2"]

    async def test_toggle_served_unknown_id(self, postgrest_factory):
        _, _, adaptive = postgrest_factory()
        with pytest.raises(OrderNotFoundError):
            await adaptive.toggle_served(404, True)

    async def test_toggle_served_non_numeric_id(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        await adaptive.insert(draft())
        sent = len(fake.requests)

        with pytest.raises(OrderNotFoundError):
            await adaptive.toggle_served("abc", True)
        assert await adaptive.get("abc") is None
        assert len(fake.requests) == sent

    async def test_toggle_served(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        record = await adaptive.insert(draft())
        updated = await adaptive.toggle_served(record.id, True)
        assert updated.served is True
        assert updated.served_at is not None
        assert fake.rows[0]["served"] is True

    async def test_unrelated_error_is_not_downgraded(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        fake.fail_with = httpx.Response(
            409, json={"code": "23505", "message": "duplicate key value"}
        )
        with pytest.raises(StoreWriteError):
            await adaptive.insert(draft())
        assert not adaptive.capabilities.is_degraded


class TestLegacySchema:
    """A table with only id, qr_id, menu_id and timestamp."""

    async def test_probe_disables_every_optional_group(self, postgrest_factory):
        _, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        caps = await adaptive.probe()
        assert caps.to_dict() == {
            "has_paid": False,
            "has_served": False,
            "has_table_id": False,
            "has_price": False,
        }

    async def test_insert_retries_without_missing_columns(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        record = await adaptive.insert(draft())

        assert set(fake.rows[0]) == {"id", "qr_id", "menu_id", "timestamp"}
        assert record.table_id == "table1"
        assert record.paid is False
        assert record.served is False
        assert adaptive.capabilities.is_degraded

    async def test_reads_backfill_price_from_catalog(self, postgrest_factory, catalog):
        fake, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        await catalog.load()
        fake.seed(qr_id="table1", menu_id="ブレンドコーヒー")
        fake.seed(qr_id="table1", menu_id="Unknown Dish")

        records = await adaptive.list_by_table("table1")
        prices = {r.menu_id: r.price for r in records}
        assert prices == {"ブレンドコーヒー": 350, "Unknown Dish": 0}

    async def test_mark_paid_reports_missing_columns(self, postgrest_factory):
        _, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        await adaptive.probe()
        with pytest.raises(ColumnUnavailableError):
            await adaptive.mark_paid("table1")

    async def test_mark_paid_learns_from_live_error(self, postgrest_factory):
        _, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        with pytest.raises(ColumnUnavailableError):
            await adaptive.mark_paid("table1")
        assert not adaptive.capabilities.can_mark_paid

    async def test_delete_by_qr_id(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        fake.seed(qr_id="table1", menu_id="A")
        fake.seed(qr_id="table2", menu_id="B")
        assert await adaptive.delete_by_qr_id("table1") == 1
        assert [r["qr_id"] for r in fake.rows] == ["table2"]


class TestPartialSchema:
    """Capabilities are tracked per column group."""

    async def test_missing_served_keeps_paid(self, postgrest_factory):
        _, _, adaptive = postgrest_factory(without("served", "served_at"))
        await adaptive.insert(draft())

        caps = adaptive.capabilities
        assert caps.has_paid and caps.has_table_id and caps.has_price
        assert not caps.has_served
        assert await adaptive.mark_paid("table1") == 1

    async def test_toggle_served_without_served_column(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(without("served", "served_at"))
        fake.seed(qr_id="table1", menu_id="A", table_id="table1", price=100)
        order_id = fake.rows[0]["id"]

        with pytest.raises(ColumnUnavailableError):
            await adaptive.toggle_served(order_id, True)

    async def test_missing_price_only(self, postgrest_factory, catalog):
        fake, _, adaptive = postgrest_factory(without("price"))
        await catalog.load()
        await adaptive.insert(draft(menu_id="ティラミス", price=650))

        (record,) = await adaptive.list_all()
        assert "price" not in fake.rows[0]
        assert record.price == 650
        assert adaptive.capabilities.has_paid

    async def test_startup_survives_unreachable_remote(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        fake.fail_with = httpx.Response(503, json={"code": "PGRST000", "message": "unavailable"})
        await adaptive.startup()
        assert not adaptive.probed
        assert not adaptive.capabilities.is_degraded


def missing_column_response(message, code="42703"):
    return httpx.Response(400, json={"code": code, "message": message, "details": None, "hint": None})


class TestUnrecognizedMissingColumn:
    """Only optional column groups that are really absent get dropped."""

    async def test_base_column_error_keeps_capabilities(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        await adaptive.probe()
        fake.fail_next.append(missing_column_response("column orders.created_at does not exist"))

        with pytest.raises(StoreReadError):
            await adaptive.list_by_table("table1")
        assert not adaptive.capabilities.is_degraded

    async def test_checkout_after_base_column_error_marks_paid(self, postgrest_factory, catalog):
        fake, _, adaptive = postgrest_factory()
        await adaptive.probe()
        fake.seed(qr_id="table1", menu_id="A", table_id="table1", price=100)
        fake.seed(qr_id="table1", menu_id="B", table_id="table1", price=200)
        service = OrderService(store=adaptive, catalog=catalog, lossy_checkout_fallback=True)

        fake.fail_next.append(missing_column_response("column orders.created_at does not exist"))
        with pytest.raises(StoreReadError):
            await service.list_for_table("table1")

        result = await service.checkout("table1")
        assert not result.degraded
        assert result.affected == 2
        assert [row["paid"] for row in fake.rows] == [True, True]

    async def test_unparseable_error_on_full_schema(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory()
        fake.fail_next.append(missing_column_response("undefined column in query"))

        with pytest.raises(StoreReadError):
            await adaptive.list_all()
        assert not adaptive.capabilities.is_degraded

    async def test_unparseable_error_drops_only_confirmed_groups(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(without("served", "served_at"))
        fake.seed(qr_id="table1", menu_id="A", table_id="table1", price=100)
        fake.fail_next.append(missing_column_response("undefined column in query"))

        (record,) = await adaptive.list_all()
        assert record.served is False
        assert adaptive.capabilities.to_dict() == {
            "has_paid": True,
            "has_served": False,
            "has_table_id": True,
            "has_price": True,
        }

    async def test_error_for_already_dropped_group_is_raised(self, postgrest_factory):
        fake, _, adaptive = postgrest_factory(LEGACY_COLUMNS)
        await adaptive.probe()
        fake.fail_next.append(missing_column_response("column orders.paid does not exist"))

        with pytest.raises(StoreReadError):
            await adaptive.list_all()
