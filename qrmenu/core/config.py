"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.

The order store backing the API is chosen once at startup:
    - ORDER_STORE set: that variant, always
    - SUPABASE_URL + SUPABASE_ANON_KEY present: Remote (hosted PostgREST)
    - otherwise: Ephemeral (in-process memory, lost on restart)

ORDER_STORE=embedded selects the local SQLite file (legacy schema).

Restricted mode (ENV_MODE=production or RESTRICTED_MODE=true) disables the
global order listing and narrows the CORS origins.

Usage:
    from qrmenu.core.config import get_settings

    settings = get_settings()
    if settings.is_restricted:
        ...
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing, global order listing enabled
        STAGING: Pre-production testing
        PRODUCTION: Live environment, always restricted
    """
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreKind(str, Enum):
    """Order store variants, resolved once at startup."""
    EPHEMERAL = "ephemeral"
    EMBEDDED = "embedded"
    REMOTE = "remote"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    The Supabase key should NEVER be committed to version control.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )
    restricted_mode: bool = Field(
        default=False,
        description="Disable the global order listing outside production too"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="QR Menu Ordering API",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=3002,
        description="API server port"
    )

    # ==========================================================================
    # ORDER STORE
    # ==========================================================================

    order_store: Optional[StoreKind] = Field(
        default=None,
        description="Force a store variant (ephemeral/embedded/remote); auto when unset"
    )
    embedded_database_url: str = Field(
        default="sqlite+aiosqlite:///data/orders.db",
        description="SQLAlchemy URL of the embedded order database"
    )

    # ==========================================================================
    # SUPABASE (REMOTE STORE)
    # ==========================================================================

    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (https://xyz.supabase.co)"
    )
    supabase_anon_key: Optional[str] = Field(
        default=None,
        description="Supabase anon API key"
    )
    supabase_table: str = Field(
        default="orders",
        description="Table holding order records"
    )
    remote_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for remote store requests"
    )

    # ==========================================================================
    # MENU / ORDERING
    # ==========================================================================

    menu_csv_path: str = Field(
        default="menu.csv",
        description="CSV file with the menu; a built-in menu is used when absent"
    )
    lossy_checkout_fallback: bool = Field(
        default=False,
        description="Opt-in: delete a table's orders at checkout when the schema cannot flag them paid (off: require migration)"
    )

    # ==========================================================================
    # ADMIN / CORS
    # ==========================================================================

    admin_passphrase: Optional[str] = Field(
        default=None,
        description="Shared passphrase expected in X-Admin-Passphrase (unchecked when unset)"
    )
    cors_dev_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://localhost:3001",
        description="Comma-separated CORS origins outside restricted mode"
    )
    cors_restricted_origins: str = Field(
        default="",
        description="Comma-separated CORS origins in restricted mode"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("order_store", mode="before")
    @classmethod
    def validate_order_store(cls, v):
        """Treat empty and "auto" as unset."""
        if v is None or isinstance(v, StoreKind):
            return v
        v = str(v).strip().lower()
        if v in ("", "auto"):
            return None
        return v

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_restricted(self) -> bool:
        """Restricted mode is explicit or implied by production."""
        return self.restricted_mode or self.is_production

    @property
    def has_remote_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def store_kind(self) -> StoreKind:
        """
        Resolve which order store backs the API.

        An explicit ORDER_STORE wins; otherwise remote credentials select the
        Remote store and their absence falls back to Ephemeral.
        """
        if self.order_store is not None:
            return self.order_store
        if self.has_remote_credentials:
            return StoreKind.REMOTE
        return StoreKind.EPHEMERAL

    @property
    def cors_origins_list(self) -> list[str]:
        """Get the CORS origins for the current posture as a list."""
        raw = self.cors_restricted_origins if self.is_restricted else self.cors_dev_origins
        return [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def menu_csv_file(self) -> Path:
        return Path(self.menu_csv_path)

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_store_config(self) -> list[str]:
        """
        Validate that the selected store has what it needs.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.store_kind == StoreKind.REMOTE:
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_anon_key:
                missing.append("SUPABASE_ANON_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once and stay
    consistent across the application lifecycle.
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-30s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    return logging.getLogger("qrmenu")
