"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from qrmenu.core.config import get_settings, setup_logging, Settings, EnvironmentMode, StoreKind
from qrmenu.core.exceptions import (
    QRMenuError,
    OrderValidationError,
    OrderNotFoundError,
    ForbiddenError,
    MigrationRequiredError,
    StoreError,
    StoreReadError,
    StoreWriteError,
    CatalogLoadError,
    ColumnUnavailableError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "StoreKind",
    "QRMenuError",
    "OrderValidationError",
    "OrderNotFoundError",
    "ForbiddenError",
    "MigrationRequiredError",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "CatalogLoadError",
    "ColumnUnavailableError",
]
