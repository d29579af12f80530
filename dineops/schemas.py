"""
Pydantic Schemas for Domain Documents and Request/Response Validation

Domain documents (Restaurant, Food, Order, Receipt, ...) are what the tenant
store persists, serialized with model_dump(mode="json"). Request and response
schemas describe the HTTP surface.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


class CheckoutFlow(str, Enum):
    """How an order entered the system."""
    CART = "cart"
    BUY_NOW = "buy_now"


class SubscriptionState(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class NotificationType(str, Enum):
    SUBSCRIPTION_EXPIRY = "subscription_expiry"
    PLAN_EXPIRED = "plan_expired"
    PAYMENT_REMINDER = "payment_reminder"
    GENERAL = "general"
    ADMIN_MESSAGE = "admin_message"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# =============================================================================
# DOMAIN DOCUMENTS
# =============================================================================

class Document(BaseModel):
    """Base for stored documents; unknown keys survive a round trip."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


class Plan(BaseModel):
    id: str
    name: str
    price: float
    duration: str = "30 days"
    purchased_at: Optional[datetime] = None


class Restaurant(Document):
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    plan: Optional[Plan] = None
    is_blocked: bool = False
    blocked_at: Optional[datetime] = None
    blocked_reason: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminAccount(Document):
    email: str
    name: str = ""
    restaurant_id: str
    is_active: bool = True
    created_at: Optional[datetime] = None


class Food(Document):
    name: str
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    category: str
    images: List[str] = Field(..., min_length=1)
    stock: int = 0
    is_available: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Table(Document):
    number: int
    capacity: int = 2
    is_occupied: bool = False
    created_at: Optional[datetime] = None


class Staff(Document):
    full_name: str
    mobile: str
    designation: str
    address: str = ""
    image_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartLine(BaseModel):
    """One basket entry. Ephemeral; never written to the tenant store."""
    food_id: str
    title: str
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    image_url: str = ""
    category: str = ""

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)


class CustomerInfo(BaseModel):
    name: str = ""
    phone: str = ""


class Customer(Document):
    name: str
    phone: str
    table_no: str
    created_at: Optional[datetime] = None


class Order(Document):
    table_no: str
    food_id: str
    title: str
    price: float
    quantity: int
    total: float
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    category: str = ""
    image_url: str = ""
    status: OrderStatus = OrderStatus.PENDING
    flow: CheckoutFlow = CheckoutFlow.CART
    commit_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Receipt(Document):
    commit_id: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    table_no: str
    items: List[CartLine]
    total: float
    status: str = "paid"
    flow: CheckoutFlow = CheckoutFlow.CART
    created_at: Optional[datetime] = None


class Notification(Document):
    restaurant_id: str
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    read: bool = False
    days_remaining: Optional[int] = None
    action_url: Optional[str] = None
    sender: Optional[str] = None
    created_at: Optional[datetime] = None


class SubscriptionStatus(BaseModel):
    state: SubscriptionState
    days_remaining: int = 0
    expiry_date: Optional[datetime] = None


class CommitResult(BaseModel):
    order_ids: List[str]
    receipt_id: str
    customer_id: str
    total: float
    receipt_rendered: bool = False
    replayed: bool = False


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class RestaurantCreate(BaseModel):
    """Onboarding request: the restaurant plus its first admin."""
    name: str = Field(..., min_length=1, max_length=120, examples=["Spice Route"])
    address: str = Field(default="", max_length=255)
    phone: str = Field(default="", max_length=20)
    email: str = Field(default="", max_length=255)
    admin_email: str = Field(..., min_length=3, examples=["owner@spiceroute.in"])
    admin_name: str = Field(default="", max_length=100)


class FoodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Biryani"])
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., gt=0, examples=[250])
    category: str = Field(..., min_length=1, max_length=50, examples=["Main Course"])
    images: List[str] = Field(default_factory=list)
    stock: int = Field(default=0, ge=0)
    is_available: bool = True


class FoodUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None


class TableCreate(BaseModel):
    number: int = Field(..., ge=1, examples=[4])
    capacity: int = Field(default=2, ge=1, le=50)


class StaffCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    mobile: str = Field(..., min_length=5, max_length=20)
    designation: str = Field(..., min_length=1, max_length=50, examples=["Chef"])
    address: str = Field(default="", max_length=255)
    image_url: Optional[str] = None


class CartLineAdd(BaseModel):
    food_id: str
    quantity: int = Field(default=1, ge=1, le=99)


class OrderLineInput(BaseModel):
    food_id: str
    title: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=99)
    image_url: str = ""
    category: str = ""


class OrderCommitRequest(BaseModel):
    """Direct commit of an explicit set of lines."""
    table_no: str = Field(..., min_length=1)
    customer: CustomerInfo
    lines: List[OrderLineInput] = Field(..., min_length=1)
    flow: CheckoutFlow = CheckoutFlow.CART
    commit_id: Optional[str] = Field(None, max_length=48)


class CheckoutRequest(BaseModel):
    """Commit of the table's stored basket."""
    customer: CustomerInfo
    commit_id: Optional[str] = Field(None, max_length=48)


class BuyNowRequest(BaseModel):
    food_id: str
    quantity: int = Field(default=1, ge=1, le=99)
    customer: CustomerInfo
    commit_id: Optional[str] = Field(None, max_length=48)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PlanUpgradeRequest(BaseModel):
    plan_id: str = Field(..., examples=["pro"])


class BlockRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class BroadcastRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    message: str = Field(..., min_length=1, max_length=2000)

    @field_validator("title", "message")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderListResponse(BaseModel):
    total: int
    orders: List[Order]


class CartResponse(BaseModel):
    table_no: str
    lines: List[CartLine]
    total: float


class BroadcastResponse(BaseModel):
    success: int
    failed: int


class StatsResponse(BaseModel):
    total_sales: float
    total_orders: int
    total_inventory: int
    total_staff: int
    total_categories: int
    orders_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    carts: str
    receipt_renderer: str
    timestamp: datetime
