"""
Models package
"""
from order_prioritization.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderPriorityHistory
)

__all__ = ["Order", "OrderItem", "OrderStatusHistory", "OrderPriorityHistory"]
