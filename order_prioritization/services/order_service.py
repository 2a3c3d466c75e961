"""
Order Service - Business Logic Layer

Facade over the prioritization components; this is what the API uses.
"""
import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from order_prioritization.clock import Clock, utc_now
from order_prioritization.exceptions import OrderEngineError
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    BulkOperationResult,
    DashboardFilter,
    DashboardSummary,
    OrderCreate,
    OrderHistoryResponse,
    OrderListResponse,
    OrderResponse,
    RecalculationResult,
)
from order_prioritization.services.customer_client import CustomerServiceClient
from order_prioritization.services.dashboard_query import DashboardQueryEngine
from order_prioritization.services.order_ingest import OrderIngestService
from order_prioritization.services.priority_override import (
    PriorityOverrideHandler,
    PriorityRecalculator,
)
from order_prioritization.services.status_transitions import StatusTransitionManager

logger = logging.getLogger(__name__)

MAX_BULK_ERRORS = 10


class OrderService:
    """Service layer for order prioritization"""

    def __init__(
        self,
        repository: OrderRepository,
        customer_client: Optional[CustomerServiceClient] = None,
        publisher=None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.ingest = OrderIngestService(repository, customer_client, publisher, clock)
        self.transitions = StatusTransitionManager(repository, publisher, clock)
        self.overrides = PriorityOverrideHandler(repository, publisher, clock)
        self.recalculator = PriorityRecalculator(repository, publisher, clock)
        self.dashboard = DashboardQueryEngine(repository, clock)

    def create_order(self, order_data: Union[OrderCreate, Mapping[str, Any]]) -> OrderResponse:
        return self.ingest.create_order_with_priority(order_data)

    def get_order(self, order_id: str) -> OrderResponse:
        return self.dashboard.get_order(order_id)

    def get_orders(self, filters: Union[DashboardFilter, Mapping[str, Any], None] = None) -> OrderListResponse:
        return self.dashboard.get_orders_for_dashboard(filters)

    def get_order_history(self, order_id: str) -> OrderHistoryResponse:
        return OrderHistoryResponse(
            order_id=order_id,
            status_history=self.dashboard.get_status_history(order_id),
            priority_history=self.dashboard.get_priority_history(order_id),
        )

    def get_summary(self) -> DashboardSummary:
        return self.dashboard.get_dashboard_summary()

    def update_order_status(
        self, order_id: str, new_status: str, actor: str = "admin", reason: Optional[str] = None
    ) -> OrderResponse:
        return self.transitions.update_order_status(order_id, new_status, actor, reason)

    def update_order_priority(
        self,
        order_id: str,
        new_level: int,
        manual: bool = True,
        actor: str = "admin",
        reason: Optional[str] = None,
    ) -> OrderResponse:
        return self.overrides.update_order_priority(order_id, new_level, manual, actor, reason)

    def recalculate_priorities(self, actor: str = "system") -> RecalculationResult:
        return self.recalculator.recalculate_open_orders(actor)

    def bulk_update_status(
        self,
        order_ids: Iterable[str],
        status: str,
        actor: str = "admin",
        reason: Optional[str] = "Bulk status update",
    ) -> BulkOperationResult:
        """Apply one status change to many orders, each independently"""
        return self._bulk(
            order_ids,
            lambda order_id: self.update_order_status(order_id, status, actor, reason),
            f"status -> {status}",
        )

    def bulk_update_priority(
        self, order_ids: Iterable[str], level: int, actor: str = "admin"
    ) -> BulkOperationResult:
        """Apply one manual priority level to many orders, each independently"""
        return self._bulk(
            order_ids,
            lambda order_id: self.update_order_priority(
                order_id, level, manual=True, actor=actor, reason="Bulk priority update"
            ),
            f"priority -> {level}",
        )

    @staticmethod
    def _bulk(order_ids: Iterable[str], action: Callable[[str], Any], label: str) -> BulkOperationResult:
        ids: List[str] = list(order_ids)
        successful = 0
        errors: List[str] = []
        for order_id in ids:
            try:
                action(order_id)
                successful += 1
            except OrderEngineError as e:
                errors.append(f"Order {order_id}: {e.message}")

        failed = len(ids) - successful
        logger.info("Bulk %s: %d of %d succeeded", label, successful, len(ids))
        return BulkOperationResult(
            total=len(ids),
            successful=successful,
            failed=failed,
            errors=errors[:MAX_BULK_ERRORS],
        )
