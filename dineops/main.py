"""
FastAPI Application Entry Point

DineOps Restaurant Platform - multi-tenant ordering and subscription API.
Runs on in-memory backends in development and on PostgreSQL/Redis otherwise.

Endpoints:
    - /restaurants/{tenant_id}/...: customer menu, basket and checkout
    - /restaurants/{tenant_id}/admin/...: restaurant admin panel (gated on
      the restaurant not being blocked)
    - /platform/...: platform operator console (X-Platform-Token)
    - GET /plans: plan catalog
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dineops.core.config import get_settings, setup_logging
from dineops.core.exceptions import DineOpsError
from dineops.database import dispose_engine, init_db
from dineops.schemas import (
    BlockRequest,
    BroadcastRequest,
    BroadcastResponse,
    BuyNowRequest,
    CartLine,
    CartLineAdd,
    CartResponse,
    CheckoutRequest,
    CommitResult,
    ErrorResponse,
    Food,
    FoodCreate,
    FoodUpdate,
    HealthResponse,
    Notification,
    Order,
    OrderCommitRequest,
    OrderListResponse,
    OrderStatus,
    OrderStatusUpdate,
    PlanUpgradeRequest,
    Receipt,
    Restaurant,
    RestaurantCreate,
    Staff,
    StaffCreate,
    StatsResponse,
    SubscriptionStatus,
    Table,
    TableCreate,
)
from dineops.services.orders import basket_total
from dineops.services.restaurants import RestaurantPlatform, get_platform
from dineops.services.subscriptions import PLAN_CATALOG

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


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
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if not settings.is_development:
        await init_db()
        logger.info("✅ Database initialized")

    platform = get_platform()
    logger.info(f"✅ Tenant Store: {platform.store.provider_name}")
    logger.info(f"✅ Cart Repository: {platform.carts.provider_name}")
    logger.info(f"✅ Receipt Renderer: {platform.renderer.provider_name}")

    await platform.store.feed.start()

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield

    logger.info("Shutting down...")
    await get_platform().store.feed.close()
    await dispose_engine()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant ordering platform: menus, baskets and checkout "
        "for customers, order management for restaurant admins, and plan and "
        "access control for the platform operator."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def require_active_tenant(
    tenant_id: str,
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    """Admin routes: the restaurant must exist and must not be blocked."""
    return await platform.require_active(tenant_id)


async def require_operator(
    x_platform_token: Optional[str] = Header(None, alias="X-Platform-Token"),
) -> None:
    token = get_settings().platform_operator_token
    if token is None:
        if get_settings().is_development:
            return
        raise HTTPException(status_code=403, detail="Platform operator access is not configured")
    if x_platform_token != token:
        raise HTTPException(status_code=401, detail="Invalid platform token")


def _cart_response(table_no: str, lines: list[CartLine]) -> CartResponse:
    return CartResponse(table_no=table_no, lines=lines, total=basket_total(lines))


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    platform: RestaurantPlatform = Depends(get_platform),
) -> HealthResponse:
    """Verify all system components are operational."""
    store_status = "healthy" if await platform.store.health_check() else "unhealthy"
    carts_status = "healthy" if await platform.carts.health_check() else "unhealthy"
    renderer_status = "healthy" if await platform.renderer.health_check() else "unhealthy"

    # The renderer is best-effort; only store and carts degrade the service
    overall = "operational" if store_status == carts_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        store=f"{platform.store.provider_name}: {store_status}",
        carts=f"{platform.carts.provider_name}: {carts_status}",
        receipt_renderer=f"{platform.renderer.provider_name}: {renderer_status}",
        timestamp=datetime.now(),
    )


@app.get("/plans", tags=["Subscription"], summary="Plan Catalog")
async def list_plans() -> list[dict[str, Any]]:
    return [
        {
            "id": offer.id,
            "name": offer.name,
            "price": offer.price,
            "currency": settings.currency,
            "duration": offer.duration,
            "features": list(offer.features),
        }
        for offer in PLAN_CATALOG.values()
    ]


# =============================================================================
# CUSTOMER ENDPOINTS (menu, basket, checkout)
# =============================================================================

@app.get(
    "/restaurants/{tenant_id}/foods",
    response_model=list[Food],
    tags=["Menu"],
)
async def list_foods(
    tenant_id: str,
    category: Optional[str] = Query(None),
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Food]:
    return await platform.list_foods(tenant_id, category=category)


@app.get(
    "/restaurants/{tenant_id}/tables/{table_no}/cart",
    response_model=CartResponse,
    tags=["Basket"],
)
async def get_cart(
    tenant_id: str,
    table_no: str,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CartResponse:
    return _cart_response(table_no, await platform.get_cart(tenant_id, table_no))


@app.post(
    "/restaurants/{tenant_id}/tables/{table_no}/cart",
    response_model=CartResponse,
    responses=ERROR_RESPONSES,
    tags=["Basket"],
)
async def add_to_cart(
    tenant_id: str,
    table_no: str,
    line: CartLineAdd,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CartResponse:
    lines = await platform.add_to_cart(tenant_id, table_no, line.food_id, line.quantity)
    return _cart_response(table_no, lines)


@app.delete(
    "/restaurants/{tenant_id}/tables/{table_no}/cart/{index}",
    response_model=CartResponse,
    responses=ERROR_RESPONSES,
    tags=["Basket"],
)
async def remove_from_cart(
    tenant_id: str,
    table_no: str,
    index: int,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CartResponse:
    return _cart_response(table_no, await platform.remove_from_cart(tenant_id, table_no, index))


@app.delete(
    "/restaurants/{tenant_id}/tables/{table_no}/cart",
    status_code=204,
    tags=["Basket"],
)
async def clear_cart(
    tenant_id: str,
    table_no: str,
    platform: RestaurantPlatform = Depends(get_platform),
) -> None:
    await platform.clear_cart(tenant_id, table_no)


@app.post(
    "/restaurants/{tenant_id}/tables/{table_no}/checkout",
    response_model=CommitResult,
    status_code=201,
    responses={**ERROR_RESPONSES, 504: {"model": ErrorResponse}},
    tags=["Checkout"],
    summary="Commit the table's basket",
)
async def checkout(
    tenant_id: str,
    table_no: str,
    request: CheckoutRequest,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CommitResult:
    """
    Place the basket as orders once payment has been captured.

    Send the same commit_id when retrying after a 503/504 so the order is
    recorded only once.
    """
    return await platform.checkout(tenant_id, table_no, request.customer, commit_id=request.commit_id)


@app.post(
    "/restaurants/{tenant_id}/tables/{table_no}/buy-now",
    response_model=CommitResult,
    status_code=201,
    responses={**ERROR_RESPONSES, 504: {"model": ErrorResponse}},
    tags=["Checkout"],
    summary="Order a single item immediately",
)
async def buy_now(
    tenant_id: str,
    table_no: str,
    request: BuyNowRequest,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CommitResult:
    return await platform.buy_now(tenant_id, table_no, request)


@app.post(
    "/restaurants/{tenant_id}/orders",
    response_model=CommitResult,
    status_code=201,
    responses={**ERROR_RESPONSES, 504: {"model": ErrorResponse}},
    tags=["Checkout"],
    summary="Commit explicit order lines",
)
async def commit_order(
    tenant_id: str,
    request: OrderCommitRequest,
    platform: RestaurantPlatform = Depends(get_platform),
) -> CommitResult:
    logger.info(f"Committing {len(request.lines)} line(s) for {tenant_id}/table {request.table_no}")
    return await platform.commit_order(tenant_id, request)


# =============================================================================
# RESTAURANT ADMIN ENDPOINTS
# =============================================================================

@app.get(
    "/restaurants/{tenant_id}/admin/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin: Orders"],
)
async def list_orders(
    tenant_id: str,
    status: Optional[OrderStatus] = Query(None),
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> OrderListResponse:
    """Orders, newest first."""
    orders = await platform.list_orders(tenant_id, status=status)
    return OrderListResponse(total=len(orders), orders=orders)


@app.patch(
    "/restaurants/{tenant_id}/admin/orders/{order_id}/status",
    response_model=Order,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Admin: Orders"],
)
async def update_order_status(
    tenant_id: str,
    order_id: str,
    update: OrderStatusUpdate,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Order:
    return await platform.update_order_status(tenant_id, order_id, update.status)


@app.delete(
    "/restaurants/{tenant_id}/admin/orders/{order_id}",
    status_code=204,
    responses=ERROR_RESPONSES,
    tags=["Admin: Orders"],
)
async def delete_order(
    tenant_id: str,
    order_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> None:
    await platform.delete_order(tenant_id, order_id)


@app.get(
    "/restaurants/{tenant_id}/admin/receipts",
    response_model=list[Receipt],
    responses=ERROR_RESPONSES,
    tags=["Admin: Orders"],
)
async def list_receipts(
    tenant_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Receipt]:
    return await platform.list_receipts(tenant_id)


@app.get(
    "/restaurants/{tenant_id}/admin/receipts/{receipt_id}",
    response_model=Receipt,
    responses=ERROR_RESPONSES,
    tags=["Admin: Orders"],
)
async def get_receipt(
    tenant_id: str,
    receipt_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Receipt:
    return await platform.get_receipt(tenant_id, receipt_id)


@app.post(
    "/restaurants/{tenant_id}/admin/foods",
    response_model=Food,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin: Menu"],
)
async def create_food(
    tenant_id: str,
    food: FoodCreate,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Food:
    return await platform.create_food(tenant_id, food)


@app.patch(
    "/restaurants/{tenant_id}/admin/foods/{food_id}",
    response_model=Food,
    responses=ERROR_RESPONSES,
    tags=["Admin: Menu"],
)
async def update_food(
    tenant_id: str,
    food_id: str,
    update: FoodUpdate,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Food:
    return await platform.update_food(tenant_id, food_id, update)


@app.delete(
    "/restaurants/{tenant_id}/admin/foods/{food_id}",
    status_code=204,
    tags=["Admin: Menu"],
)
async def delete_food(
    tenant_id: str,
    food_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> None:
    await platform.delete_food(tenant_id, food_id)


@app.get(
    "/restaurants/{tenant_id}/admin/tables",
    response_model=list[Table],
    tags=["Admin: Tables"],
)
async def list_tables(
    tenant_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Table]:
    return await platform.list_tables(tenant_id)


@app.post(
    "/restaurants/{tenant_id}/admin/tables",
    response_model=Table,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin: Tables"],
)
async def create_table(
    tenant_id: str,
    table: TableCreate,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Table:
    return await platform.create_table(tenant_id, table)


@app.delete(
    "/restaurants/{tenant_id}/admin/tables/{table_id}",
    status_code=204,
    tags=["Admin: Tables"],
)
async def delete_table(
    tenant_id: str,
    table_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> None:
    await platform.delete_table(tenant_id, table_id)


@app.get(
    "/restaurants/{tenant_id}/admin/staff",
    response_model=list[Staff],
    tags=["Admin: Staff"],
)
async def list_staff(
    tenant_id: str,
    include_inactive: bool = Query(False),
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Staff]:
    return await platform.list_staff(tenant_id, include_inactive=include_inactive)


@app.post(
    "/restaurants/{tenant_id}/admin/staff",
    response_model=Staff,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin: Staff"],
)
async def create_staff(
    tenant_id: str,
    staff: StaffCreate,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Staff:
    return await platform.create_staff(tenant_id, staff)


@app.delete(
    "/restaurants/{tenant_id}/admin/staff/{staff_id}",
    response_model=Staff,
    responses=ERROR_RESPONSES,
    tags=["Admin: Staff"],
    summary="Deactivate a staff member",
)
async def deactivate_staff(
    tenant_id: str,
    staff_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Staff:
    return await platform.deactivate_staff(tenant_id, staff_id)


@app.get(
    "/restaurants/{tenant_id}/admin/subscription",
    response_model=SubscriptionStatus,
    responses=ERROR_RESPONSES,
    tags=["Admin: Subscription"],
)
async def get_subscription_status(
    tenant_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> SubscriptionStatus:
    return await platform.get_subscription_status(tenant_id)


@app.post(
    "/restaurants/{tenant_id}/admin/subscription/upgrade",
    response_model=Restaurant,
    responses=ERROR_RESPONSES,
    tags=["Admin: Subscription"],
)
async def upgrade_plan(
    tenant_id: str,
    request: PlanUpgradeRequest,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    """Record a purchased plan; payment is captured before this call."""
    return await platform.upgrade_plan(tenant_id, request.plan_id)


@app.get(
    "/restaurants/{tenant_id}/admin/notifications",
    response_model=list[Notification],
    tags=["Admin: Notifications"],
)
async def list_notifications(
    tenant_id: str,
    unread_only: bool = Query(False),
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Notification]:
    return await platform.list_notifications(tenant_id, unread_only=unread_only)


@app.post(
    "/restaurants/{tenant_id}/admin/notifications/{notification_id}/read",
    response_model=Notification,
    responses=ERROR_RESPONSES,
    tags=["Admin: Notifications"],
)
async def mark_notification_read(
    tenant_id: str,
    notification_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Notification:
    return await platform.mark_notification_read(tenant_id, notification_id)


@app.delete(
    "/restaurants/{tenant_id}/admin/notifications/{notification_id}",
    status_code=204,
    tags=["Admin: Notifications"],
)
async def delete_notification(
    tenant_id: str,
    notification_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> None:
    await platform.delete_notification(tenant_id, notification_id)


@app.get(
    "/restaurants/{tenant_id}/admin/stats",
    response_model=StatsResponse,
    tags=["Admin: Dashboard"],
)
async def get_stats(
    tenant_id: str,
    restaurant: Restaurant = Depends(require_active_tenant),
    platform: RestaurantPlatform = Depends(get_platform),
) -> StatsResponse:
    return await platform.get_stats(tenant_id)


# =============================================================================
# PLATFORM OPERATOR ENDPOINTS
# =============================================================================

@app.post(
    "/platform/restaurants",
    response_model=Restaurant,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def onboard_restaurant(
    request: RestaurantCreate,
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    return await platform.onboard_restaurant(request)


@app.get(
    "/platform/restaurants",
    response_model=list[Restaurant],
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def list_restaurants(
    platform: RestaurantPlatform = Depends(get_platform),
) -> list[Restaurant]:
    return await platform.list_restaurants()


@app.get(
    "/platform/restaurants/{tenant_id}",
    response_model=Restaurant,
    responses=ERROR_RESPONSES,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def get_restaurant(
    tenant_id: str,
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    return await platform.get_restaurant(tenant_id)


@app.post(
    "/platform/restaurants/{tenant_id}/block",
    response_model=Restaurant,
    responses=ERROR_RESPONSES,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def block_restaurant(
    tenant_id: str,
    request: Optional[BlockRequest] = Body(None),
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    """Block a restaurant; open admin sessions end on their next check."""
    return await platform.block_restaurant(tenant_id, request.reason if request else None)


@app.post(
    "/platform/restaurants/{tenant_id}/unblock",
    response_model=Restaurant,
    responses=ERROR_RESPONSES,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def unblock_restaurant(
    tenant_id: str,
    platform: RestaurantPlatform = Depends(get_platform),
) -> Restaurant:
    return await platform.unblock_restaurant(tenant_id)


@app.post(
    "/platform/restaurants/{tenant_id}/notifications",
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def send_notification(
    tenant_id: str,
    request: BroadcastRequest,
    platform: RestaurantPlatform = Depends(get_platform),
) -> dict[str, str]:
    notification_id = await platform.broadcast(tenant_id, request.title, request.message)
    return {"notification_id": notification_id}


@app.post(
    "/platform/notifications/broadcast",
    response_model=BroadcastResponse,
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
)
async def broadcast_all(
    request: BroadcastRequest,
    platform: RestaurantPlatform = Depends(get_platform),
) -> BroadcastResponse:
    return await platform.broadcast_all(request.title, request.message)


@app.post(
    "/platform/subscriptions/check",
    tags=["Platform"],
    dependencies=[Depends(require_operator)],
    summary="Run the subscription reminder sweep now",
)
async def check_all_subscriptions(
    platform: RestaurantPlatform = Depends(get_platform),
) -> dict[str, int]:
    return await platform.check_all_subscriptions()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(DineOpsError)
async def domain_exception_handler(request: Request, exc: DineOpsError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dineops.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
