"""
Order Repository - Data Access Layer
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_prioritization.exceptions import (
    ConcurrencyConflict,
    OrderEngineError,
    OrderNotFound,
    PersistenceFailure,
)
from order_prioritization.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderPriorityHistory,
)
from order_prioritization.schemas.order import (
    DashboardFilter,
    OrderResponse,
    StatusHistoryEntry,
    PriorityHistoryEntry,
)

logger = logging.getLogger(__name__)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class OrderRepository(ABC):
    """
    Persistence boundary of the engine.

    Implementations must make ``add_order`` and ``update_order`` atomic: the
    order row, its items and the history entries passed alongside are
    written together or not at all. ``update_order`` is a conditional write
    keyed on the order's ``version``.
    """

    @abstractmethod
    def add_order(
        self,
        order: OrderResponse,
        status_entry: StatusHistoryEntry,
        priority_entry: PriorityHistoryEntry,
    ) -> OrderResponse:
        """Insert a new order with items and its initial history"""

    @abstractmethod
    def get_by_id(self, order_id: str) -> Optional[OrderResponse]:
        """Get order by ID"""

    @abstractmethod
    def update_order(
        self,
        order_id: str,
        patch: Dict[str, Any],
        expected_version: int,
        status_entry: Optional[StatusHistoryEntry] = None,
        priority_entry: Optional[PriorityHistoryEntry] = None,
    ) -> OrderResponse:
        """
        Apply ``patch`` if the stored version still equals ``expected_version``

        Raises:
            OrderNotFound: If the order does not exist
            ConcurrencyConflict: If the version moved
        """

    @abstractmethod
    def select_filtered(self, filters: DashboardFilter) -> Tuple[List[OrderResponse], int]:
        """Return one page of matching orders and the count of all matches"""

    @abstractmethod
    def get_status_history(self, order_id: str) -> List[StatusHistoryEntry]:
        """Status entries, oldest first"""

    @abstractmethod
    def get_priority_history(self, order_id: str) -> List[PriorityHistoryEntry]:
        """Priority entries, oldest first"""


class SqlAlchemyOrderRepository(OrderRepository):
    """Repository backed by a SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _unit_of_work(self):
        """Commit on success, roll back and translate driver errors on failure"""
        try:
            yield
            self.db.commit()
        except OrderEngineError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Repository write failed: %s", e)
            raise PersistenceFailure(f"Repository write failed: {e}") from e

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Repository read failed: %s", e)
            raise PersistenceFailure(f"Repository read failed: {e}") from e

    def add_order(self, order, status_entry, priority_entry):
        with self._unit_of_work():
            row = Order(**order.model_dump(exclude={"items", "priority_label"}))
            row.items = [OrderItem(**item.model_dump(exclude={"id"})) for item in order.items]
            self.db.add(row)
            self.db.flush()
            self.db.add(OrderStatusHistory(**status_entry.model_dump(exclude={"id"})))
            self.db.add(OrderPriorityHistory(**priority_entry.model_dump(exclude={"id"})))

        created = self.get_by_id(order.id)
        if created is None:
            raise PersistenceFailure(f"Order {order.id} missing after insert")
        return created

    def get_by_id(self, order_id):
        with self._reading():
            row = self.db.query(Order).filter(Order.id == order_id).first()
            if not row:
                return None
            return OrderResponse.model_validate(row)

    def update_order(self, order_id, patch, expected_version, status_entry=None, priority_entry=None):
        with self._unit_of_work():
            values = dict(patch)
            values["version"] = expected_version + 1
            result = self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = self.db.execute(select(Order.id).where(Order.id == order_id)).first()
                if exists is None:
                    raise OrderNotFound(order_id)
                raise ConcurrencyConflict(order_id, expected_version)

            if status_entry is not None:
                self.db.add(OrderStatusHistory(**status_entry.model_dump(exclude={"id"})))
            if priority_entry is not None:
                self.db.add(OrderPriorityHistory(**priority_entry.model_dump(exclude={"id"})))

        # Drop cached rows so the re-read sees the committed values
        self.db.expire_all()
        updated = self.get_by_id(order_id)
        if updated is None:
            raise OrderNotFound(order_id)
        return updated

    def select_filtered(self, filters):
        with self._reading():
            query = self.db.query(Order)

            if filters.status:
                query = query.filter(Order.status.in_(filters.status))
            if filters.priority_level:
                query = query.filter(Order.priority_level.in_(filters.priority_level))
            if filters.shipping_method:
                query = query.filter(Order.shipping_method.in_(filters.shipping_method))
            if filters.is_high_value is not None:
                query = query.filter(Order.is_high_value == filters.is_high_value)
            if filters.is_vip_customer is not None:
                query = query.filter(Order.is_vip_customer == filters.is_vip_customer)
            if filters.created_after is not None:
                query = query.filter(Order.created_at >= filters.created_after)
            if filters.search:
                pattern = _like_pattern(filters.search.strip())
                query = query.filter(or_(
                    Order.id.ilike(pattern, escape="\\"),
                    Order.order_number.ilike(pattern, escape="\\"),
                    Order.customer_email.ilike(pattern, escape="\\"),
                    Order.customer_name.ilike(pattern, escape="\\"),
                ))

            total = query.count()

            query = query.order_by(*self._order_by(filters))
            if filters.offset:
                query = query.offset(filters.offset)
            if filters.limit is not None:
                query = query.limit(filters.limit)

            return [OrderResponse.model_validate(row) for row in query.all()], total

    @staticmethod
    def _order_by(filters: DashboardFilter) -> list:
        descending = filters.sort_order == "desc"

        def directed(column):
            return column.desc() if descending else column.asc()

        if filters.sort_by == "priority_level":
            clauses = [directed(Order.priority_level), Order.priority_score.desc()]
        elif filters.sort_by == "created_at":
            clauses = [directed(Order.created_at)]
        elif filters.sort_by == "total":
            clauses = [directed(Order.total_amount)]
        else:
            clauses = [directed(Order.fulfillment_priority)]

        # Deterministic tie-break
        return clauses + [Order.created_at.asc(), Order.id.asc()]

    def get_status_history(self, order_id):
        with self._reading():
            rows = self.db.query(OrderStatusHistory).filter(
                OrderStatusHistory.order_id == order_id
            ).order_by(OrderStatusHistory.created_at, OrderStatusHistory.id).all()
            return [StatusHistoryEntry.model_validate(r) for r in rows]

    def get_priority_history(self, order_id):
        with self._reading():
            rows = self.db.query(OrderPriorityHistory).filter(
                OrderPriorityHistory.order_id == order_id
            ).order_by(OrderPriorityHistory.created_at, OrderPriorityHistory.id).all()
            return [PriorityHistoryEntry.model_validate(r) for r in rows]
