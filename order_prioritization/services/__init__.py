"""
Services package
"""
from order_prioritization.services.order_service import OrderService
from order_prioritization.services.customer_client import CustomerServiceClient
from order_prioritization.services.order_ingest import OrderIngestService
from order_prioritization.services.status_transitions import StatusTransitionManager
from order_prioritization.services.priority_override import (
    PriorityOverrideHandler,
    PriorityRecalculator,
)
from order_prioritization.services.dashboard_query import DashboardQueryEngine

__all__ = [
    "OrderService",
    "CustomerServiceClient",
    "OrderIngestService",
    "StatusTransitionManager",
    "PriorityOverrideHandler",
    "PriorityRecalculator",
    "DashboardQueryEngine",
]
