"""
Order Store Factory

Provides a single entry point for obtaining the order store. The store
variant is decided once, at first use, from the settings:

    - ORDER_STORE=embedded → EmbeddedOrderStore (SQLite, legacy schema)
    - SUPABASE_URL + SUPABASE_ANON_KEY → SchemaAdaptiveOrderStore(RemoteOrderStore)
    - otherwise → EphemeralOrderStore (memory)

Usage:
    from qrmenu.services.orders import get_order_store

    store = get_order_store()
    records = await store.list_unpaid()
"""

import logging
from functools import lru_cache

from qrmenu.core.config import Settings, StoreKind, get_settings
from qrmenu.services.catalog import get_catalog
from qrmenu.services.orders.base import (
    BaseOrderStore,
    OrderDraft,
    OrderRecord,
    StoreCapabilities,
)
from qrmenu.services.orders.memory import EphemeralOrderStore
from qrmenu.services.orders.embedded import EmbeddedOrderStore
from qrmenu.services.orders.remote import RemoteOrderStore, RemoteQueryError
from qrmenu.services.orders.adaptive import SchemaAdaptiveOrderStore

logger = logging.getLogger(__name__)


def build_order_store(settings: Settings) -> BaseOrderStore:
    """
    Construct the order store the settings select.

    Raises:
        ValueError: Remote store selected but credentials missing
    """
    kind = settings.store_kind

    if kind == StoreKind.REMOTE:
        logger.info("Order Store: Using Supabase with schema-adaptive queries")
        remote = RemoteOrderStore(
            url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            table=settings.supabase_table,
            timeout=settings.remote_timeout_seconds,
        )
        return SchemaAdaptiveOrderStore(remote, price_lookup=get_catalog().price_for)

    if kind == StoreKind.EMBEDDED:
        logger.info(f"Order Store: Using SQLite ({settings.embedded_database_url})")
        return EmbeddedOrderStore(settings.embedded_database_url)

    logger.warning("Order Store: No database configured, orders are kept in memory only")
    return EphemeralOrderStore()


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """Get the configured order store instance (created once)."""
    return build_order_store(get_settings())


def reset_order_store() -> None:
    """
    Clear the cached store instance.

    Useful for testing; the next get_order_store() builds a new store.
    """
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "build_order_store",
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "OrderDraft",
    "OrderRecord",
    "StoreCapabilities",
    "EphemeralOrderStore",
    "EmbeddedOrderStore",
    "RemoteOrderStore",
    "RemoteQueryError",
    "SchemaAdaptiveOrderStore",
]
