"""
Pydantic Schemas for Request/Response Validation

Field names are snake_case in Python and camelCase on the wire
(``orderStatus``, ``finalTotal``, ``restaurantId``).
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any
from datetime import datetime

from app.models import UserRole


def reject_null(v: Any) -> Any:
    """Explicit null is only allowed for columns that can be empty."""
    if v is None:
        raise ValueError("may not be null")
    return v


def to_local_naive(v: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive local server time; convert offsets first."""
    if v is not None and v.tzinfo is not None:
        return v.astimezone().replace(tzinfo=None)
    return v


class CamelModel(BaseModel):
    """Base model accepting both camelCase and snake_case input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# AUTH / USERS
# =============================================================================

class UserCreate(CamelModel):
    """Registration payload."""
    username: str = Field(..., min_length=2, max_length=100, examples=["marco"])
    email: EmailStr = Field(..., examples=["marco@example.com"])
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = Field(default=UserRole.CUSTOMER, examples=["restaurant"])
    contact_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    profile_picture: Optional[str] = Field(None, max_length=500)


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserResponse(CamelModel):
    """Public view of an account. The password hash is never included."""
    id: int
    username: str
    email: str
    role: UserRole
    contact_number: Optional[str] = None
    address: Optional[str] = None
    profile_picture: Optional[str] = None
    created_at: datetime


class UserSummary(CamelModel):
    id: int
    username: str
    email: str


class AuthResponse(CamelModel):
    token: str
    user: UserResponse


# =============================================================================
# RESTAURANTS
# =============================================================================

class RestaurantCreate(CamelModel):
    """Request schema for creating a restaurant."""
    name: str = Field(..., min_length=1, max_length=150, examples=["Spice Route"])
    owner: Optional[int] = Field(None, description="Owner user id; defaults to the caller")
    description: Optional[str] = None
    cuisine: Optional[str] = Field(None, max_length=100, examples=["Indian"])
    address: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    operating_hours: Optional[dict[str, Any]] = None
    is_active: bool = True
    rating: float = Field(default=0.0, ge=0, le=5)
    profile_picture: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = Field(None, max_length=500)


class RestaurantUpdate(CamelModel):
    """Partial update; only supplied fields are written."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    cuisine: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    operating_hours: Optional[dict[str, Any]] = None
    is_active: Optional[bool] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    profile_picture: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "is_active", "rating")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return reject_null(v)


class RestaurantResponse(CamelModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    cuisine: Optional[str] = None
    address: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[str] = None
    operating_hours: Optional[dict[str, Any]] = None
    is_active: bool
    rating: float
    profile_picture: Optional[str] = None
    cover_image: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class RestaurantWithOwnerResponse(RestaurantResponse):
    owner: Optional[UserSummary] = None


# =============================================================================
# MENU ITEMS
# =============================================================================

class MenuItemCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150, examples=["Butter Chicken"])
    description: Optional[str] = None
    price: float = Field(..., ge=0, examples=[13.99])
    category: Optional[str] = Field(None, max_length=100)
    is_available: bool = True
    image_url: Optional[str] = Field(None, max_length=500)


class MenuItemUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=100)
    is_available: Optional[bool] = None
    image_url: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "price", "is_available")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        return reject_null(v)


class MenuItemResponse(CamelModel):
    id: int
    restaurant_id: int
    name: str
    description: Optional[str] = None
    price: float
    category: Optional[str] = None
    is_available: bool
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemCreate(CamelModel):
    """Single line in an order."""
    menu_item: int = Field(..., examples=[12])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    price: Optional[float] = Field(None, ge=0, examples=[13.99])


class OrderCreate(CamelModel):
    """Request schema for placing an order."""
    restaurant: int = Field(..., examples=[3])
    user: Optional[int] = Field(None, description="Must match the caller when supplied")
    items: List[OrderItemCreate] = Field(..., min_length=1)
    total_amount: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    final_total: float = Field(default=0.0, ge=0)
    delivery_address: Optional[str] = Field(None, max_length=255)
    payment_method: Optional[str] = Field(None, max_length=50, examples=["card", "cash"])
    special_instructions: Optional[str] = Field(None, max_length=500)
    estimated_delivery_time: Optional[datetime] = None

    @field_validator("estimated_delivery_time")
    @classmethod
    def local_delivery_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(v)


class OrderStatusUpdate(CamelModel):
    # Plain str: unknown tokens are reported as InvalidStatus by the service
    order_status: str = Field(..., examples=["Preparing"])


class OrderStatusUpdateResponse(CamelModel):
    message: str
    order_id: int
    order_status: str
    notification_id: Optional[int] = None


# =============================================================================
# ANALYTICS
# =============================================================================

class SalesReportRequest(CamelModel):
    restaurant_id: int
    period: str = Field(..., examples=["day", "week", "month"])


class PopularItemsRequest(CamelModel):
    restaurant_id: int


class ExportDataRequest(CamelModel):
    restaurant_id: int
    format: str = Field(..., examples=["csv", "json"])


class PeriodRange(CamelModel):
    start_date: datetime
    end_date: datetime


class SalesReportResponse(CamelModel):
    total_sales: float
    total_orders: int
    total_items: int
    total_discounts: float
    average_order_value: float
    period_range: PeriodRange
    orders: List[dict[str, Any]] = Field(default_factory=list)


class PopularItem(CamelModel):
    name: str
    total_sold: int


# =============================================================================
# COMMON
# =============================================================================

class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    timestamp: datetime
