"""
FastAPI Application Entry Point

QR Menu Ordering API
Customers order from the table they scanned; staff track, serve and check
out orders per table. Orders live in memory, a local SQLite file or a
hosted Supabase table, chosen at startup.

Endpoints:
    - GET /api/menu: Menu items
    - POST /api/orders: Place an order
    - GET /api/orders/{qr_id}: Unpaid orders of a table
    - GET /api/orders: All recent orders (disabled in restricted mode)
    - GET /api/admin/orders: Unpaid orders of every table
    - POST /api/admin/checkout: Settle a table
    - POST /api/admin/toggle-served: Flip an order's served flag
    - GET /api/health: Diagnostics
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qrmenu.core.config import Settings, get_settings, setup_logging
from qrmenu.core.exceptions import CatalogLoadError, ForbiddenError, QRMenuError
from qrmenu.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    HealthResponse,
    MenuItem,
    OrderCreate,
    OrderResponse,
    ToggleServedRequest,
    ToggleServedResponse,
)
from qrmenu.services.ordering import OrderService, get_order_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Restricted mode: {settings.is_restricted}")
    logger.info("=" * 60)

    missing = settings.validate_store_config()
    if missing:
        logger.warning(f"⚠️ Missing store config: {missing}")

    service = get_order_service()
    await service.store.startup()
    logger.info(f"✅ Order Store: {service.store.provider_name}")
    if service.store.capabilities.is_degraded:
        logger.warning(
            f"⚠️ Order schema is degraded: {service.store.capabilities.to_dict()} "
            f"(run `python -m qrmenu migration-sql`)"
        )

    try:
        menu = await service.get_menu()
        logger.info(f"✅ Menu: {len(menu)} items")
    except CatalogLoadError as e:
        logger.warning(f"⚠️ Menu could not be loaded: {e.detail or e}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await service.store.shutdown()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Table-side QR ordering with per-table checkout and serving status.",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/api", tags=["Root"])
async def root() -> dict[str, Any]:
    """API index with navigation links."""
    return {
        "message": f"{settings.app_name}",
        "version": settings.app_version,
        "endpoints": {
            "menu": "/api/menu",
            "orders": "/api/orders",
            "admin": "/api/admin/orders",
            "health": "/api/health",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get(
    "/api/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    service: OrderService = Depends(get_order_service),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Report store, schema and configuration state. Always answers 200."""
    store = service.store
    remote_status = "Not configured"
    orders_count = 0

    try:
        orders_count = await store.count()
        if settings.has_remote_credentials:
            remote_status = "Connected"
    except Exception as e:
        logger.error(f"Health check could not count orders: {e}")
        remote_status = "Error" if settings.has_remote_credentials else "Not configured"

    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        environment=settings.env_mode.value,
        orders_count=orders_count,
        database=store.provider_name,
        remote_status=remote_status,
        has_remote_url=bool(settings.supabase_url),
        has_remote_key=bool(settings.supabase_anon_key),
        capabilities=store.capabilities.to_dict(),
    )


# =============================================================================
# MENU & ORDER ENDPOINTS
# =============================================================================

@app.get(
    "/api/menu",
    response_model=list[MenuItem],
    responses={500: {"model": ErrorResponse}},
    tags=["Menu"],
)
async def get_menu(service: OrderService = Depends(get_order_service)) -> list[MenuItem]:
    """Menu items, loaded once per process."""
    return list(await service.get_menu())


@app.post(
    "/api/orders",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Place one menu item for the table identified by qr_id.

    The price is the menu price at order time, 0 for names not on the menu.
    """
    return await service.place_order(order_data.qr_id, order_data.menu_id)


@app.get(
    "/api/orders",
    response_model=list[OrderResponse],
    responses={403: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="List All Orders",
)
async def list_orders(service: OrderService = Depends(get_order_service)) -> list[OrderResponse]:
    """
    The 100 most recent orders.

    Unauthenticated; disabled in restricted mode.
    """
    return await service.list_all_orders()


@app.get(
    "/api/orders/{qr_id}",
    response_model=list[OrderResponse],
    responses={400: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def list_table_orders(
    qr_id: str,
    service: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    """Unpaid orders of one table, newest first (at most 50)."""
    return await service.list_for_table(qr_id)


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

async def admin_gate(
    x_admin_passphrase: Optional[str] = Header(None, alias="x-admin-passphrase"),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Shared-passphrase gate for staff endpoints.

    Enforced only when ADMIN_PASSPHRASE is configured.
    """
    if settings.admin_passphrase and x_admin_passphrase != settings.admin_passphrase:
        raise ForbiddenError("Admin passphrase required")


admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(admin_gate)],
)


@admin_router.get("/orders", response_model=list[OrderResponse])
async def admin_orders(service: OrderService = Depends(get_order_service)) -> list[OrderResponse]:
    """Unpaid orders across every table."""
    return await service.list_admin_view()


@admin_router.post(
    "/checkout",
    response_model=CheckoutResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def admin_checkout(
    request_data: CheckoutRequest,
    service: OrderService = Depends(get_order_service),
) -> CheckoutResponse:
    """Settle a table; the response carries a warning when orders were deleted."""
    result = await service.checkout(request_data.table_id)
    return CheckoutResponse(
        success=True,
        message=result.message,
        affected=result.affected,
        warning=result.warning,
    )


@admin_router.post(
    "/toggle-served",
    response_model=ToggleServedResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def admin_toggle_served(
    request_data: ToggleServedRequest,
    service: OrderService = Depends(get_order_service),
) -> ToggleServedResponse:
    """Mark an order served or not served."""
    order = await service.toggle_served(request_data.order_id, request_data.served)
    state = "served" if order.served else "not served"
    return ToggleServedResponse(
        success=True,
        message=f"Order {order.id} marked {state}",
        served=order.served,
    )


app.include_router(admin_router)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(QRMenuError)
async def qrmenu_exception_handler(request: Request, exc: QRMenuError) -> JSONResponse:
    """Anticipated errors: their own status, a user-safe message."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r} {getattr(exc, 'detail', '') or ''}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are answered with 400, like service validation errors."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request data"

    if len(message) > 200:
        message = message[:200]
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )

