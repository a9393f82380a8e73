"""
Pydantic Schemas for Request/Response Validation

Field names follow the JSON the table-side and admin frontends consume.

Author: QR Menu Team
Version: 1.0.0
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr


QR_ID_MAX_LENGTH = 50
MENU_ID_MAX_LENGTH = 100

OrderId = Union[int, str]


# =============================================================================
# MENU
# =============================================================================

class MenuItem(BaseModel):
    """One orderable menu entry; immutable once loaded."""
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1, examples=["Drinks"])
    subcategory: str = Field(default="", examples=["コーヒー"])
    name_local: str = Field(..., examples=["ブレンドコーヒー"])
    name_alt: str = Field(default="", examples=["Blend Coffee"])
    price: int = Field(..., ge=0, examples=[350])
    recommended: int = Field(default=0, ge=0, le=1)
    is_new: int = Field(default=0, ge=0, le=1)
    stock: int = Field(default=1, ge=0, le=1)
    image_path: str = Field(default="", examples=["drinks/coffee-blend.png"])


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(BaseModel):
    """Request schema for placing an order from a table."""
    qr_id: StrictStr = Field(..., min_length=1, max_length=QR_ID_MAX_LENGTH, examples=["table1"])
    menu_id: StrictStr = Field(..., min_length=1, max_length=MENU_ID_MAX_LENGTH, examples=["ブレンドコーヒー"])


class CheckoutRequest(BaseModel):
    """Admin request to settle a table."""
    table_id: StrictStr = Field(..., min_length=1, max_length=QR_ID_MAX_LENGTH, examples=["table1"])


class ToggleServedRequest(BaseModel):
    """Admin request to flip an order's served flag."""
    order_id: OrderId = Field(..., examples=[5])
    served: StrictBool = Field(..., examples=[True])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(BaseModel):
    """
    Normalized order as returned to clients.

    price, table_id, paid and served are always populated, whatever the
    backing schema stores.
    """
    id: OrderId
    qr_id: str
    menu_id: str
    table_id: str
    price: int = Field(..., ge=0)
    timestamp: Optional[datetime] = None
    paid: bool = False
    paid_at: Optional[datetime] = None
    served: bool = False
    served_at: Optional[datetime] = None


class CheckoutResponse(BaseModel):
    success: bool = True
    message: str
    affected: int = 0
    warning: Optional[str] = None


class ToggleServedResponse(BaseModel):
    success: bool = True
    message: str
    served: bool


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    needs_migration: Optional[bool] = Field(default=None, serialization_alias="needsMigration")


class HealthResponse(BaseModel):
    """Diagnostic health check; always answered with 200."""
    status: str
    timestamp: datetime
    environment: str
    orders_count: int = Field(..., serialization_alias="ordersCount")
    database: str
    remote_status: str = Field(..., serialization_alias="remoteStatus")
    has_remote_url: bool = Field(..., serialization_alias="hasRemoteUrl")
    has_remote_key: bool = Field(..., serialization_alias="hasRemoteKey")
    capabilities: dict[str, bool] = Field(default_factory=dict)
