"""
Schemas package
"""
from order_prioritization.schemas.order import (
    OrderItemCreate,
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
    OrderListResponse,
    StatusHistoryEntry,
    PriorityHistoryEntry,
    OrderHistoryResponse,
    OrderStatusUpdate,
    OrderPriorityUpdate,
    DashboardFilter,
    DashboardSummary,
    BulkStatusUpdate,
    BulkPriorityUpdate,
    BulkOperationResult,
    RecalculationResult,
    OrderEvent
)

__all__ = [
    "OrderItemCreate",
    "OrderCreate",
    "OrderItemResponse",
    "OrderResponse",
    "OrderListResponse",
    "StatusHistoryEntry",
    "PriorityHistoryEntry",
    "OrderHistoryResponse",
    "OrderStatusUpdate",
    "OrderPriorityUpdate",
    "DashboardFilter",
    "DashboardSummary",
    "BulkStatusUpdate",
    "BulkPriorityUpdate",
    "BulkOperationResult",
    "RecalculationResult",
    "OrderEvent"
]
