"""
FastAPI Application Entry Point

Restaurant Ordering Backend.

Endpoints:
    - POST /api/auth/register, /api/auth/login, GET /api/auth/profile
    - /api/restaurants: restaurant CRUD (owner-scoped writes)
    - /api/{restaurantId}/menu-items, /api/menu-items/{menuItemId}
    - /api/orders: place, list for owner, status updates
    - POST /api/sales-report, /api/popular-items, /api/export-data
    - GET /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime
from typing import Any, List, Union
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.exceptions import (
    AppError,
    Forbidden,
    InvalidCredential,
    InvalidInput,
    NotFound,
    PersistenceError,
)
from app.core.security import create_access_token, hash_password, verify_password
from app.database import get_db, init_db, engine
from app.dependencies import get_current_user, require_restaurant_owner
from app.models import MenuItem, Restaurant, User
from app.schemas import (
    AuthResponse,
    ErrorResponse,
    ExportDataRequest,
    HealthResponse,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    MessageResponse,
    OrderCreate,
    OrderStatusUpdate,
    OrderStatusUpdateResponse,
    PopularItem,
    PopularItemsRequest,
    RestaurantCreate,
    RestaurantResponse,
    RestaurantUpdate,
    RestaurantWithOwnerResponse,
    SalesReportRequest,
    SalesReportResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from app.services import analytics, orders
from app.services.identity import get_owned_restaurant, list_owned_restaurants
from app.services.notifications import get_notification_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    notification_service = get_notification_service()
    logger.info(f"✅ Notification Service: {notification_service.provider_name}")
    logger.info(f"   Status transitions enforced: {settings.enforce_status_transitions}")
    logger.info(f"   Server-side order totals: {settings.recompute_order_totals}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant ordering backend: restaurant and menu management, "
        "order placement with status notifications, and sales analytics."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def create_user_account(db: AsyncSession, payload: UserCreate) -> User:
    """Create a user with a hashed password; duplicate username/email is rejected."""
    existing = await db.execute(
        select(User.id).where(or_(User.username == payload.username, User.email == payload.email))
    )
    if existing.first() is not None:
        raise InvalidInput("User already exists")

    user = User(
        username=payload.username,
        email=payload.email,
        password=hash_password(payload.password),
        role=payload.role,
        contact_number=payload.contact_number,
        address=payload.address,
        profile_picture=payload.profile_picture,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise InvalidInput("User already exists")
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError(f"Failed to create user: {e}")

    logger.info(f"User #{user.id} registered ({user.role.value})")
    return user


async def commit_or_fail(db: AsyncSession, action: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to {action}")
        raise PersistenceError(f"Failed to {action}: {e}")


async def load_owned_restaurant(db: AsyncSession, restaurant_id: int, owner: User) -> Restaurant:
    """404 when missing, 403 when owned by someone else."""
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFound("Restaurant not found")
    if restaurant.owner_id != owner.id:
        raise Forbidden("You do not own this restaurant")
    return restaurant


async def load_owned_menu_item(db: AsyncSession, menu_item_id: int, owner: User) -> MenuItem:
    menu_item = await db.get(MenuItem, menu_item_id)
    if menu_item is None:
        raise NotFound("Menu item not found.")

    restaurant = await db.get(Restaurant, menu_item.restaurant_id)
    if restaurant is None or restaurant.owner_id != owner.id:
        raise Forbidden("Access denied. This restaurant does not belong to you.")
    return menu_item


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
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
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check notification service
    notification_service = get_notification_service()
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/api/auth/register",
    response_model=AuthResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def register(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Create an account and return a bearer token for it."""
    user = await create_user_account(db, payload)
    return AuthResponse(token=create_access_token(user.id), user=UserResponse.model_validate(user))


@app.post(
    "/api/auth/login",
    response_model=AuthResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def login(
    payload: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    result = await db.execute(select(User).where(User.email == payload.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(payload.password, user.password):
        logger.warning(f"Failed login for {payload.email}")
        raise InvalidCredential("Invalid email or password")

    return AuthResponse(token=create_access_token(user.id), user=UserResponse.model_validate(user))


@app.get(
    "/api/auth/profile",
    response_model=UserResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def profile(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


# =============================================================================
# USER ENDPOINTS (diagnostic)
# =============================================================================

@app.post(
    "/api/users",
    response_model=UserResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Users"],
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await create_user_account(db, payload)
    return UserResponse.model_validate(user)


@app.get(
    "/api/users",
    response_model=List[UserResponse],
    tags=["Users"],
)
async def list_users(db: AsyncSession = Depends(get_db)) -> List[UserResponse]:
    result = await db.execute(select(User).order_by(User.id))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


# =============================================================================
# RESTAURANT ENDPOINTS
# =============================================================================

@app.get(
    "/api/restaurants",
    response_model=List[RestaurantWithOwnerResponse],
    tags=["Restaurants"],
)
async def list_restaurants(db: AsyncSession = Depends(get_db)) -> List[RestaurantWithOwnerResponse]:
    """All restaurants with an owner summary."""
    result = await db.execute(
        select(Restaurant).options(selectinload(Restaurant.owner)).order_by(Restaurant.id)
    )
    return [RestaurantWithOwnerResponse.model_validate(r) for r in result.scalars().all()]


@app.post(
    "/api/restaurants",
    response_model=RestaurantResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def create_restaurant(
    payload: RestaurantCreate,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    """Create a restaurant owned by the caller."""
    owner_id = owner.id
    if payload.owner is not None:
        named_owner = await db.get(User, payload.owner)
        if named_owner is None:
            raise InvalidInput("Owner not found")
        if named_owner.id != owner.id:
            raise Forbidden("Restaurants can only be created for the authenticated owner")
        owner_id = named_owner.id

    restaurant = Restaurant(owner_id=owner_id, **payload.model_dump(exclude={"owner"}))
    db.add(restaurant)
    await commit_or_fail(db, "create restaurant")

    logger.info(f"Restaurant #{restaurant.id} created by user #{owner_id}")
    return RestaurantResponse.model_validate(restaurant)


@app.get(
    "/api/restaurants/owner-restaurants",
    response_model=List[RestaurantResponse],
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def owner_restaurants(
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> List[RestaurantResponse]:
    restaurants = await list_owned_restaurants(db, owner)
    if not restaurants:
        raise NotFound("No restaurants found for this owner.")
    return [RestaurantResponse.model_validate(r) for r in restaurants]


@app.put(
    "/api/restaurants/{restaurant_id}",
    response_model=RestaurantResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def update_restaurant(
    restaurant_id: int,
    payload: RestaurantUpdate,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    """Update only the fields present in the request; explicit null clears optional fields."""
    restaurant = await load_owned_restaurant(db, restaurant_id, owner)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(restaurant, field, value)

    await commit_or_fail(db, "update restaurant")
    return RestaurantResponse.model_validate(restaurant)


@app.delete(
    "/api/restaurants/{restaurant_id}",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def delete_restaurant(
    restaurant_id: int,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    restaurant = await load_owned_restaurant(db, restaurant_id, owner)

    await db.execute(delete(Restaurant).where(Restaurant.id == restaurant.id))
    await commit_or_fail(db, "delete restaurant")

    logger.info(f"Restaurant #{restaurant_id} deleted by user #{owner.id}")
    return MessageResponse(message="Restaurant deleted successfully")


# =============================================================================
# MENU ITEM ENDPOINTS
# =============================================================================

@app.get(
    "/api/{restaurant_id}/menu-items",
    response_model=List[MenuItemResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def list_menu_items(
    restaurant_id: int,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> List[MenuItemResponse]:
    restaurant = await get_owned_restaurant(db, restaurant_id, owner)
    if restaurant is None:
        raise Forbidden("Access denied. This restaurant does not belong to you.")

    result = await db.execute(
        select(MenuItem).where(MenuItem.restaurant_id == restaurant.id).order_by(MenuItem.id)
    )
    return [MenuItemResponse.model_validate(m) for m in result.scalars().all()]


@app.post(
    "/api/{restaurant_id}/menu-items",
    response_model=MenuItemResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def create_menu_item(
    restaurant_id: int,
    payload: MenuItemCreate,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    restaurant = await get_owned_restaurant(db, restaurant_id, owner)
    if restaurant is None:
        raise Forbidden("Access denied. This restaurant does not belong to you.")

    menu_item = MenuItem(restaurant_id=restaurant.id, **payload.model_dump())
    db.add(menu_item)
    await commit_or_fail(db, "add menu item")

    return MenuItemResponse.model_validate(menu_item)


@app.put(
    "/api/menu-items/{menu_item_id}",
    response_model=MenuItemResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def update_menu_item(
    menu_item_id: int,
    payload: MenuItemUpdate,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    menu_item = await load_owned_menu_item(db, menu_item_id, owner)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(menu_item, field, value)

    await commit_or_fail(db, "update menu item")
    return MenuItemResponse.model_validate(menu_item)


@app.delete(
    "/api/menu-items/{menu_item_id}",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu Items"],
)
async def delete_menu_item(
    menu_item_id: int,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    menu_item = await load_owned_menu_item(db, menu_item_id, owner)

    await db.execute(delete(MenuItem).where(MenuItem.id == menu_item.id))
    await commit_or_fail(db, "delete menu item")

    return MessageResponse(message="Menu item deleted successfully.")


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.get(
    "/api/orders",
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders of the Caller's Restaurants",
)
async def list_orders(
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> List[dict[str, Any]]:
    """Orders of every restaurant the caller owns, most recent first."""
    found = await orders.list_orders_for_owner(db, owner)
    return [orders.serialize_order(o, include_parties=True) for o in found]


@app.post(
    "/api/orders",
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    payload: OrderCreate,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    logger.info(f"Creating order for user #{caller.id} at restaurant #{payload.restaurant}")
    order = await orders.create_order(db, payload, caller)
    return orders.serialize_order(order)


@app.get(
    "/api/orders/{order_id}",
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Visible to the customer who placed it and the restaurant owner."""
    order = await orders.get_order(db, order_id, include_parties=True)

    is_customer = order.user_id == caller.id
    is_owner = order.restaurant is not None and order.restaurant.owner_id == caller.id
    if not (is_customer or is_owner):
        raise Forbidden("You cannot view this order")

    return orders.serialize_order(order, include_parties=True)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderStatusUpdateResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> OrderStatusUpdateResponse:
    """Set the status and notify the customer."""
    order, notification = await orders.update_order_status(db, order_id, payload.order_status, owner)

    message = (
        "Order status updated and customer notified"
        if notification is not None else "Order status updated"
    )
    return OrderStatusUpdateResponse(
        message=message,
        order_id=order.id,
        order_status=order.order_status.value,
        notification_id=notification.id if notification is not None else None,
    )


# =============================================================================
# ANALYTICS ENDPOINTS
# =============================================================================

@app.post(
    "/api/sales-report",
    response_model=SalesReportResponse,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def sales_report(
    payload: SalesReportRequest,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> SalesReportResponse:
    """Sales summary for the current day, week or month."""
    report = await analytics.sales_report(db, payload.restaurant_id, payload.period, owner)
    return SalesReportResponse.model_validate(report)


@app.post(
    "/api/popular-items",
    response_model=List[PopularItem],
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def popular_items(
    payload: PopularItemsRequest,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> List[PopularItem]:
    ranking = await analytics.popular_items(db, payload.restaurant_id, owner)
    return [PopularItem.model_validate(entry) for entry in ranking]


@app.post(
    "/api/export-data",
    response_model=None,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def export_data(
    payload: ExportDataRequest,
    owner: User = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
) -> Union[Response, JSONResponse]:
    """Export all orders as a CSV attachment or as JSON."""
    result = await analytics.export_orders(db, payload.restaurant_id, payload.format, owner)

    if result.format == "csv":
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )
    return JSONResponse(content=jsonable_encoder(result.content))


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Convert service errors into the standard error body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")

    detail = exc.detail
    if exc.status_code >= 500 and not settings.debug:
        detail = exc.default_detail

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=detail).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies, ids and enum values are reported as 400."""
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in errors
    )
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid Input", detail=detail).model_dump(),
    )


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
