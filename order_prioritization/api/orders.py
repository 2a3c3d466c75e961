"""
Order API endpoints
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from order_prioritization.config import settings
from order_prioritization.database import get_db
from order_prioritization.publishers.event_publisher import EventPublisher
from order_prioritization.repositories.order_repository import SqlAlchemyOrderRepository
from order_prioritization.schemas.order import (
    BulkOperationResult,
    BulkPriorityUpdate,
    BulkStatusUpdate,
    DashboardSummary,
    OrderCreate,
    OrderHistoryResponse,
    OrderListResponse,
    OrderPriorityUpdate,
    OrderResponse,
    OrderStatus,
    OrderStatusUpdate,
    RecalculationResult,
    SortBy,
    SortOrder,
)
from order_prioritization.services.customer_client import CustomerServiceClient
from order_prioritization.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency to get OrderService instance"""
    return OrderService(
        SqlAlchemyOrderRepository(db),
        customer_client=CustomerServiceClient(),
        publisher=EventPublisher() if settings.EVENTS_ENABLED else None,
    )


@router.get("", response_model=OrderListResponse, summary="Orders for the dashboard")
def get_orders(
    status_filter: Optional[List[OrderStatus]] = Query(None, alias="status"),
    priority_level: Optional[List[int]] = Query(None),
    shipping_method: Optional[List[str]] = Query(None),
    is_high_value: Optional[bool] = Query(None),
    is_vip_customer: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Matches id, order number, email or name"),
    created_after: Optional[datetime] = Query(None),
    sort_by: SortBy = Query("fulfillment_priority"),
    sort_order: SortOrder = Query("asc"),
    limit: int = Query(settings.DASHBOARD_DEFAULT_LIMIT, ge=1, le=settings.DASHBOARD_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    service: OrderService = Depends(get_order_service)
):
    """
    Filter, sort and paginate orders

    Repeated parameters (``?status=pending&status=processing``) match any of
    the given values; different parameters must all match.
    """
    return service.get_orders({
        "status": status_filter,
        "priority_level": priority_level,
        "shipping_method": shipping_method,
        "is_high_value": is_high_value,
        "is_vip_customer": is_vip_customer,
        "search": search,
        "created_after": created_after,
        "sort_by": sort_by,
        "sort_order": sort_order,
        "limit": limit,
        "offset": offset,
    })


@router.get("/summary", response_model=DashboardSummary, summary="Dashboard summary")
def get_summary(service: OrderService = Depends(get_order_service)):
    """Counts and order value over the last 30 days"""
    return service.get_summary()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED, summary="Create order")
def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service)
):
    """
    Create a new order

    Process:
    1. Validate items and totals
    2. Resolve VIP / repeat customer status (Customer Service)
    3. Compute priority
    4. Save order, items and initial history
    5. Publish OrderCreated event to RabbitMQ
    """
    return service.create_order(order_data)


@router.post("/recalculate", response_model=RecalculationResult, summary="Recalculate open orders")
def recalculate(service: OrderService = Depends(get_order_service)):
    return service.recalculate_priorities()


@router.post("/bulk/status", response_model=BulkOperationResult, summary="Bulk status update")
def bulk_update_status(
    data: BulkStatusUpdate,
    service: OrderService = Depends(get_order_service)
):
    return service.bulk_update_status(data.order_ids, data.status, data.changed_by, data.reason)


@router.post("/bulk/priority", response_model=BulkOperationResult, summary="Bulk priority override")
def bulk_update_priority(
    data: BulkPriorityUpdate,
    service: OrderService = Depends(get_order_service)
):
    return service.bulk_update_priority(data.order_ids, data.priority_level, data.changed_by)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order by ID")
def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service)
):
    return service.get_order(order_id)


@router.get("/{order_id}/history", response_model=OrderHistoryResponse, summary="Order audit trail")
def get_order_history(
    order_id: str,
    service: OrderService = Depends(get_order_service)
):
    return service.get_order_history(order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse, summary="Update order status")
def update_order_status(
    order_id: str,
    status_data: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service)
):
    """
    Update order status

    - **status**: pending, processing, shipped, delivered or cancelled
    """
    return service.update_order_status(
        order_id, status_data.status, status_data.changed_by, status_data.reason
    )


@router.patch("/{order_id}/priority", response_model=OrderResponse, summary="Override order priority")
def update_order_priority(
    order_id: str,
    priority_data: OrderPriorityUpdate,
    service: OrderService = Depends(get_order_service)
):
    """
    Set the priority level by hand

    - **priority_level**: 1 (urgent) to 5 (lowest)
    - **manual_override**: false returns the order to automatic scoring
    """
    return service.update_order_priority(
        order_id,
        priority_data.priority_level,
        manual=priority_data.manual_override,
        actor=priority_data.changed_by,
        reason=priority_data.reason,
    )
