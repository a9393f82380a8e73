"""
                        Services Module

Business logic behind the API.

Services:
    - catalog: menu loading and price lookup
    - orders: order stores (memory, SQLite, Supabase) and the
      schema-adaptive layer
    - ordering: order reconciliation facade used by the routes
"""

from qrmenu.services.catalog import CatalogProvider, get_catalog
from qrmenu.services.ordering import OrderService, CheckoutResult, get_order_service

__all__ = [
    "CatalogProvider",
    "get_catalog",
    "OrderService",
    "CheckoutResult",
    "get_order_service",
]
