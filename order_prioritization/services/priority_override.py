"""
Priority Override and Recalculation

Manual level changes by operators, and the periodic re-evaluation of open
orders with the automatic rules. Both are read-modify-write cycles on the
order's version, retried on conflict.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from order_prioritization.clock import Clock, utc_now
from order_prioritization.exceptions import (
    ConcurrencyConflict,
    OrderEngineError,
    OrderNotFound,
    PriorityOutOfRange,
    PersistenceFailure,
)
from order_prioritization.publishers.event_publisher import order_event_data, publish_safely
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    DashboardFilter,
    OrderResponse,
    PriorityHistoryEntry,
    RecalculationResult,
)
from order_prioritization.services.priority_scorer import (
    MAX_PRIORITY_LEVEL,
    MIN_PRIORITY_LEVEL,
    factors_from_order,
    fulfillment_rank,
    is_valid_level,
    priority_label,
    score_order,
)
from order_prioritization.services.retry import (
    conflict_retry,
    persistence_retry,
    persistence_retrying,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
OPEN_STATUSES = ["pending", "processing"]


@persistence_retry
def load_order(repository: OrderRepository, order_id: str) -> OrderResponse:
    order = repository.get_by_id(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order


def write_order(
    repository: OrderRepository,
    order: OrderResponse,
    patch: Dict[str, Any],
    status_entry=None,
    priority_entry=None,
) -> OrderResponse:
    """
    Conditional update of an order loaded at order.version

    A failed attempt may still have committed. If the retry then loses the
    version check, the stored row is compared with the patch: one version
    ahead and holding these exact values means the earlier attempt landed,
    and the stored order is returned instead of a conflict.
    """
    uncertain = False
    for attempt in persistence_retrying():
        with attempt:
            try:
                return repository.update_order(
                    order.id, patch, order.version,
                    status_entry=status_entry,
                    priority_entry=priority_entry,
                )
            except PersistenceFailure:
                uncertain = True
                raise
            except ConcurrencyConflict:
                if uncertain:
                    stored = _already_written(repository, order, patch)
                    if stored is not None:
                        logger.info(
                            "Order %s update at version %s had committed before the retry",
                            order.id, order.version
                        )
                        return stored
                raise


def _already_written(repository, order, patch) -> Optional[OrderResponse]:
    stored = repository.get_by_id(order.id)
    if stored is None or stored.version != order.version + 1:
        return None
    if all(getattr(stored, key) == value for key, value in patch.items()):
        return stored
    return None


def recompute_priority(order: OrderResponse) -> Dict[str, Any]:
    """
    Rescore a stored order with the automatic rules.

    Score, tags, flags and rank always follow the rules; the level only
    follows them while no manual override is in place.
    """
    result = score_order(factors_from_order(order))
    level = order.priority_level if order.manual_override else result.priority_level
    return {
        "priority_score": result.priority_score,
        "priority_level": level,
        "priority_tags": result.priority_tags,
        "is_high_value": result.is_high_value,
        "is_vip_customer": result.is_vip_customer,
        "fulfillment_priority": fulfillment_rank(level, result.priority_score),
    }


def priority_entry(
    order: OrderResponse,
    new_level: int,
    new_score: float,
    actor: str,
    is_manual: bool,
    reason: Optional[str],
    now,
) -> PriorityHistoryEntry:
    return PriorityHistoryEntry(
        order_id=order.id,
        previous_level=order.priority_level,
        new_level=new_level,
        previous_score=order.priority_score,
        new_score=new_score,
        changed_by=actor,
        is_manual=is_manual,
        reason=reason,
        created_at=now,
    )


class PriorityOverrideHandler:
    """Applies operator priority overrides"""

    def __init__(self, repository: OrderRepository, publisher=None, clock: Clock = utc_now):
        self.repository = repository
        self.publisher = publisher
        self.clock = clock

    def update_order_priority(
        self,
        order_id: str,
        new_level: int,
        manual: bool = True,
        actor: str = "admin",
        reason: Optional[str] = None,
    ) -> OrderResponse:
        """
        Set an order's priority level by hand

        Args:
            order_id: Order ID
            new_level: Level 1 (most urgent) to 5
            manual: Pin the level against automatic recomputation; False
                hands the order back to automatic scoring
            actor: Who made the change
            reason: Optional note stored with the history entry

        Returns:
            Updated order

        Raises:
            PriorityOutOfRange: If new_level is not an integer in range
            OrderNotFound: If order doesn't exist
            ConcurrencyConflict: If concurrent writers kept winning
        """
        if not is_valid_level(new_level):
            raise PriorityOutOfRange(
                "priority_level",
                f"must be an integer between {MIN_PRIORITY_LEVEL} and {MAX_PRIORITY_LEVEL}, got {new_level!r}"
            )

        previous_level, updated = self._apply(order_id, new_level, bool(manual), actor, reason)

        logger.info(
            "Order %s priority %s -> %s (%s) by %s%s",
            order_id, previous_level, new_level, priority_label(new_level), actor,
            ", manual override" if updated.manual_override else ""
        )
        publish_safely(
            self.publisher,
            "publish_order_priority_changed",
            order_event_data(updated, previous_level=previous_level, changed_by=actor,
                             is_manual=updated.manual_override),
        )
        return updated

    @conflict_retry
    def _apply(self, order_id, new_level, manual, actor, reason) -> Tuple[int, OrderResponse]:
        order = load_order(self.repository, order_id)
        now = self.clock()
        patch = {
            "priority_level": new_level,
            "fulfillment_priority": fulfillment_rank(new_level, order.priority_score),
            "manual_override": manual,
            "updated_at": now,
        }
        entry = priority_entry(
            order, new_level, order.priority_score, actor,
            is_manual=manual,
            reason=reason or ("Manual priority override" if manual else "Priority reset to automatic"),
            now=now,
        )
        return order.priority_level, write_order(self.repository, order, patch, priority_entry=entry)


class PriorityRecalculator:
    """Re-evaluates open orders with the automatic scoring rules"""

    def __init__(self, repository: OrderRepository, publisher=None, clock: Clock = utc_now):
        self.repository = repository
        self.publisher = publisher
        self.clock = clock

    def recalculate_open_orders(self, actor: str = SYSTEM_ACTOR) -> RecalculationResult:
        """Rescore every pending or processing order; one failure never stops the pass"""
        orders = self._open_orders()
        result = RecalculationResult()
        for order in orders:
            try:
                changed = self._recalculate_one(order.id, actor)
            except OrderEngineError as e:
                logger.warning("Recalculation failed for order %s: %s", order.id, e.message)
                result.failed += 1
                continue
            if changed:
                result.updated += 1
            else:
                result.unchanged += 1

        logger.info(
            "Recalculated %d open orders: %d updated, %d unchanged, %d failed",
            len(orders), result.updated, result.unchanged, result.failed
        )
        return result

    @persistence_retry
    def _open_orders(self):
        orders, _ = self.repository.select_filtered(
            DashboardFilter(status=OPEN_STATUSES, limit=None)
        )
        return orders

    @conflict_retry
    def _recalculate_one(self, order_id: str, actor: str) -> bool:
        order = load_order(self.repository, order_id)
        if order.status not in OPEN_STATUSES:
            return False

        patch = recompute_priority(order)
        if all(getattr(order, key) == value for key, value in patch.items()):
            return False

        now = self.clock()
        patch["updated_at"] = now
        entry = None
        if patch["priority_level"] != order.priority_level:
            entry = priority_entry(
                order, patch["priority_level"], patch["priority_score"], actor,
                is_manual=False, reason="Scheduled recalculation", now=now,
            )
        updated = write_order(self.repository, order, patch, priority_entry=entry)
        if entry is not None:
            publish_safely(
                self.publisher,
                "publish_order_priority_changed",
                order_event_data(updated, previous_level=order.priority_level,
                                 changed_by=actor, is_manual=False),
            )
        return True
