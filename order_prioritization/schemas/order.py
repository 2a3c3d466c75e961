"""
Pydantic schemas for request/response validation
"""
from pydantic import (
    BaseModel, Field, EmailStr, ConfigDict, computed_field, field_validator
)
from typing import Any, Dict, List, Optional, Literal
from datetime import datetime, timezone


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
SHIPPING_METHODS = ("standard", "expedited", "overnight", "digital")
SHIPPING_METHOD_ALIASES = {
    "express": "expedited",
    "next_day": "overnight",
}
PRIORITY_LABELS = {
    1: "URGENT",
    2: "HIGH",
    3: "NORMAL",
    4: "LOW",
    5: "LOWEST",
}

OrderStatus = Literal['pending', 'processing', 'shipped', 'delivered', 'cancelled']
SortBy = Literal['fulfillment_priority', 'priority_level', 'created_at', 'total']
SortOrder = Literal['asc', 'desc']


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OrderItemBase(BaseModel):
    """Base Order item schema"""
    product_id: Optional[str] = Field(None, description="Product ID")
    product_name: str = Field(..., min_length=1, max_length=255, description="Product name")
    product_sku: Optional[str] = Field(None, max_length=100)
    product_category: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(..., gt=0, description="Quantity (must be positive)")
    unit_price: float = Field(..., ge=0, description="Unit price (must be non-negative)")
    is_digital: bool = False
    requires_special_handling: bool = False

    model_config = ConfigDict(allow_inf_nan=False)


class OrderItemCreate(OrderItemBase):
    """Schema for an item of a new order"""
    total_price: Optional[float] = Field(
        None,
        ge=0,
        description="Declared line total, must equal quantity * unit_price when given"
    )


class OrderCreate(BaseModel):
    """Schema for creating a new order"""
    customer_email: EmailStr = Field(..., description="Customer email address")
    customer_id: Optional[str] = Field(None, max_length=64)
    customer_name: Optional[str] = Field(None, max_length=255)
    is_vip_customer: Optional[bool] = Field(
        None,
        description="VIP flag supplied by the caller; looked up by customer_id when omitted"
    )
    is_repeat_customer: Optional[bool] = None

    subtotal: float = Field(..., ge=0)
    tax_amount: float = Field(0.0, ge=0)
    shipping_amount: float = Field(0.0, ge=0)
    discount_amount: float = Field(0.0, ge=0)
    total_amount: float = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)

    shipping_method: str = Field(..., description="standard, expedited, overnight or digital")
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None

    items: List[OrderItemCreate] = Field(..., min_length=1)

    model_config = ConfigDict(allow_inf_nan=False)

    @field_validator("shipping_method")
    @classmethod
    def check_shipping_method(cls, value: str) -> str:
        method = value.strip().lower()
        method = SHIPPING_METHOD_ALIASES.get(method, method)
        if method not in SHIPPING_METHODS:
            raise ValueError(f"must be one of {', '.join(SHIPPING_METHODS)}")
        return method


class OrderItemResponse(OrderItemBase):
    """Schema for order item response"""
    id: Optional[int] = None
    total_price: float

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: str
    order_number: str
    customer_id: Optional[str] = None
    customer_email: str
    customer_name: Optional[str] = None

    status: str
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str
    shipping_method: str

    priority_score: float
    priority_level: int
    priority_tags: List[str] = Field(default_factory=list)
    fulfillment_priority: float
    manual_override: bool = False

    is_high_value: bool
    is_vip_customer: bool
    is_repeat_customer: bool = False

    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None

    version: int
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    items: List[OrderItemResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "updated_at", "shipped_at", "delivered_at", "cancelled_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @computed_field
    @property
    def priority_label(self) -> str:
        return PRIORITY_LABELS.get(self.priority_level, "NORMAL")


class OrderListResponse(BaseModel):
    """Schema for a dashboard page of orders"""
    orders: List[OrderResponse]
    total: int


class StatusHistoryEntry(BaseModel):
    """Status change audit entry"""
    id: Optional[int] = None
    order_id: str
    previous_status: Optional[str] = None
    new_status: str
    changed_by: str
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class PriorityHistoryEntry(BaseModel):
    """Priority change audit entry"""
    id: Optional[int] = None
    order_id: str
    previous_level: Optional[int] = None
    new_level: int
    previous_score: Optional[float] = None
    new_score: float
    changed_by: str
    is_manual: bool
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class OrderHistoryResponse(BaseModel):
    """Schema for an order's audit trail"""
    order_id: str
    status_history: List[StatusHistoryEntry]
    priority_history: List[PriorityHistoryEntry]


class OrderStatusUpdate(BaseModel):
    """Schema for updating order status"""
    status: OrderStatus = Field(..., description="Order status")
    changed_by: str = Field("admin", min_length=1, max_length=100)
    reason: Optional[str] = None


class OrderPriorityUpdate(BaseModel):
    """Schema for overriding order priority"""
    priority_level: int = Field(..., description="Priority level, 1 (most urgent) to 5")
    manual_override: bool = True
    changed_by: str = Field("admin", min_length=1, max_length=100)
    reason: Optional[str] = None


class DashboardFilter(BaseModel):
    """Filter, sort and pagination for the operations dashboard"""
    status: Optional[List[OrderStatus]] = None
    priority_level: Optional[List[int]] = None
    shipping_method: Optional[List[str]] = None
    is_high_value: Optional[bool] = None
    is_vip_customer: Optional[bool] = None
    search: Optional[str] = None
    created_after: Optional[datetime] = None
    sort_by: SortBy = "fulfillment_priority"
    sort_order: SortOrder = "asc"
    limit: Optional[int] = Field(20, ge=1, description="None returns every match")
    offset: int = Field(0, ge=0)

    @field_validator("created_after")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("shipping_method")
    @classmethod
    def normalize_shipping_methods(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        methods = [method.strip().lower() for method in value]
        return [SHIPPING_METHOD_ALIASES.get(method, method) for method in methods]


class DashboardSummary(BaseModel):
    """Aggregate counts for the dashboard header"""
    window_days: int
    total_orders: int = 0
    pending_orders: int = 0
    processing_orders: int = 0
    shipped_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    urgent_orders: int = 0
    high_priority_orders: int = 0
    high_value_orders: int = 0
    express_orders: int = 0
    vip_orders: int = 0
    total_order_value: float = 0.0
    average_order_value: float = 0.0


class BulkStatusUpdate(BaseModel):
    """Schema for a bulk status change"""
    order_ids: List[str] = Field(..., min_length=1)
    status: OrderStatus
    changed_by: str = Field("admin", min_length=1, max_length=100)
    reason: Optional[str] = "Bulk status update"


class BulkPriorityUpdate(BaseModel):
    """Schema for a bulk priority override"""
    order_ids: List[str] = Field(..., min_length=1)
    priority_level: int
    changed_by: str = Field("admin", min_length=1, max_length=100)


class BulkOperationResult(BaseModel):
    """Outcome of a bulk action"""
    total: int
    successful: int
    failed: int
    errors: List[str] = Field(default_factory=list)


class RecalculationResult(BaseModel):
    """Outcome of a re-evaluation pass over open orders"""
    updated: int = 0
    unchanged: int = 0
    failed: int = 0


class OrderEvent(BaseModel):
    """Schema for a published order event"""
    event_type: str
    event_id: str
    event_version: str = "1.0"
    timestamp: str
    source: str = "order-prioritization-service"
    data: dict
