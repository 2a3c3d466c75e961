"""
Dashboard queries - filtered, sorted, paginated views of orders
"""
import logging
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from order_prioritization.clock import Clock, utc_now
from order_prioritization.config import settings
from order_prioritization.exceptions import OrderNotFound, ValidationFailure
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    DashboardFilter,
    DashboardSummary,
    OrderListResponse,
    OrderResponse,
    PriorityHistoryEntry,
    StatusHistoryEntry,
)
from order_prioritization.services.priority_scorer import EXPEDITED_METHODS, is_valid_level
from order_prioritization.services.retry import persistence_retry

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 30


class DashboardQueryEngine:
    """Read side of the engine; never mutates"""

    def __init__(self, repository: OrderRepository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    def get_orders_for_dashboard(
        self, filters: Union[DashboardFilter, Mapping[str, Any], None] = None
    ) -> OrderListResponse:
        """
        One page of orders matching ``filters``

        ``total`` counts every match regardless of limit and offset; a page
        past the end is empty.

        Raises:
            ValidationFailure: On an unknown sort key, bad level or bad paging
        """
        filters = self._validate(filters)
        orders, total = self._select(filters)
        return OrderListResponse(orders=orders, total=total)

    @persistence_retry
    def get_order(self, order_id: str) -> OrderResponse:
        order = self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_status_history(self, order_id: str) -> List[StatusHistoryEntry]:
        self.get_order(order_id)
        return self._status_history(order_id)

    def get_priority_history(self, order_id: str) -> List[PriorityHistoryEntry]:
        self.get_order(order_id)
        return self._priority_history(order_id)

    def get_dashboard_summary(
        self, now: Optional[datetime] = None, window_days: int = SUMMARY_WINDOW_DAYS
    ) -> DashboardSummary:
        """Counts and order value over the last ``window_days`` days"""
        now = now or self.clock()
        orders, _ = self._select(DashboardFilter(
            created_after=now - timedelta(days=window_days),
            limit=None,
        ))

        summary = DashboardSummary(window_days=window_days, total_orders=len(orders))
        for order in orders:
            counter = f"{order.status}_orders"
            setattr(summary, counter, getattr(summary, counter) + 1)
            if order.priority_level == 1:
                summary.urgent_orders += 1
            elif order.priority_level == 2:
                summary.high_priority_orders += 1
            if order.is_high_value:
                summary.high_value_orders += 1
            if order.shipping_method in EXPEDITED_METHODS:
                summary.express_orders += 1
            if order.is_vip_customer:
                summary.vip_orders += 1
            summary.total_order_value += order.total_amount

        summary.total_order_value = round(summary.total_order_value, 2)
        if orders:
            summary.average_order_value = round(summary.total_order_value / len(orders), 2)
        return summary

    @persistence_retry
    def _select(self, filters: DashboardFilter):
        return self.repository.select_filtered(filters)

    @persistence_retry
    def _status_history(self, order_id):
        return self.repository.get_status_history(order_id)

    @persistence_retry
    def _priority_history(self, order_id):
        return self.repository.get_priority_history(order_id)

    @staticmethod
    def _validate(filters) -> DashboardFilter:
        if filters is None:
            filters = DashboardFilter()
        elif not isinstance(filters, DashboardFilter):
            try:
                filters = DashboardFilter.model_validate(dict(filters))
            except ValidationError as e:
                error = e.errors()[0]
                field = ".".join(str(part) for part in error["loc"]) or "filter"
                raise ValidationFailure(field, error["msg"]) from e

        if filters.limit is not None and filters.limit > settings.DASHBOARD_MAX_LIMIT:
            raise ValidationFailure("limit", f"must be at most {settings.DASHBOARD_MAX_LIMIT}")
        for level in filters.priority_level or ():
            if not is_valid_level(level):
                raise ValidationFailure("priority_level", f"unknown priority level {level!r}")
        return filters
