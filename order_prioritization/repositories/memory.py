"""
In-memory Order Repository

Same contract as the SQL repository: atomic writes and version-checked
updates, serialized by a single lock. Stored models are copied on the way in
and out so callers never share state with the store.
"""
import itertools
import threading
from typing import Dict, List

from order_prioritization.exceptions import ConcurrencyConflict, OrderNotFound
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    DashboardFilter,
    OrderResponse,
    PriorityHistoryEntry,
    StatusHistoryEntry,
)


class InMemoryOrderRepository(OrderRepository):
    """Dictionary-backed repository"""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[str, OrderResponse] = {}
        self._status_history: Dict[str, List[StatusHistoryEntry]] = {}
        self._priority_history: Dict[str, List[PriorityHistoryEntry]] = {}
        self._item_ids = itertools.count(1)
        self._entry_ids = itertools.count(1)

    def add_order(self, order, status_entry, priority_entry):
        with self._lock:
            items = [
                item.model_copy(update={"id": next(self._item_ids)})
                for item in order.items
            ]
            stored = order.model_copy(update={"items": items}, deep=True)
            self._orders[stored.id] = stored
            self._status_history[stored.id] = [self._numbered(status_entry)]
            self._priority_history[stored.id] = [self._numbered(priority_entry)]
            return stored.model_copy(deep=True)

    def get_by_id(self, order_id):
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def update_order(self, order_id, patch, expected_version, status_entry=None, priority_entry=None):
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFound(order_id)
            if current.version != expected_version:
                raise ConcurrencyConflict(order_id, expected_version)

            values = dict(patch)
            values["version"] = expected_version + 1
            updated = current.model_copy(update=values, deep=True)
            self._orders[order_id] = updated

            if status_entry is not None:
                self._status_history[order_id].append(self._numbered(status_entry))
            if priority_entry is not None:
                self._priority_history[order_id].append(self._numbered(priority_entry))
            return updated.model_copy(deep=True)

    def select_filtered(self, filters):
        with self._lock:
            matches = [o for o in self._orders.values() if self._matches(o, filters)]

        total = len(matches)
        ordered = self._sorted(matches, filters)
        end = None if filters.limit is None else filters.offset + filters.limit
        page = ordered[filters.offset:end]
        return [o.model_copy(deep=True) for o in page], total

    def get_status_history(self, order_id):
        with self._lock:
            return list(self._status_history.get(order_id, []))

    def get_priority_history(self, order_id):
        with self._lock:
            return list(self._priority_history.get(order_id, []))

    def _numbered(self, entry):
        return entry.model_copy(update={"id": next(self._entry_ids)})

    @staticmethod
    def _matches(order: OrderResponse, filters: DashboardFilter) -> bool:
        if filters.status and order.status not in filters.status:
            return False
        if filters.priority_level and order.priority_level not in filters.priority_level:
            return False
        if filters.shipping_method:
            if order.shipping_method not in filters.shipping_method:
                return False
        if filters.is_high_value is not None and order.is_high_value != filters.is_high_value:
            return False
        if filters.is_vip_customer is not None and order.is_vip_customer != filters.is_vip_customer:
            return False
        if filters.created_after is not None and order.created_at < filters.created_after:
            return False
        if filters.search:
            term = filters.search.strip().lower()
            haystack = (order.id, order.order_number, order.customer_email, order.customer_name)
            if not any(term in value.lower() for value in haystack if value):
                return False
        return True

    @staticmethod
    def _sorted(orders: List[OrderResponse], filters: DashboardFilter) -> List[OrderResponse]:
        descending = filters.sort_order == "desc"

        # Stable sorts applied from the least to the most significant key
        result = sorted(orders, key=lambda o: (o.created_at, o.id))
        if filters.sort_by == "priority_level":
            result.sort(key=lambda o: o.priority_score, reverse=True)
            result.sort(key=lambda o: o.priority_level, reverse=descending)
        elif filters.sort_by == "created_at":
            result.sort(key=lambda o: o.created_at, reverse=descending)
        elif filters.sort_by == "total":
            result.sort(key=lambda o: o.total_amount, reverse=descending)
        else:
            result.sort(key=lambda o: o.fulfillment_priority, reverse=descending)
        return result
