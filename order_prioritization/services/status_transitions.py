"""
Order status lifecycle

    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled

delivered and cancelled are terminal. Every other edge, including a
status to itself, is rejected without touching the order.
"""
import logging
from typing import Dict, Optional, Tuple

from order_prioritization.clock import Clock, utc_now
from order_prioritization.exceptions import InvalidTransition, ValidationFailure
from order_prioritization.publishers.event_publisher import order_event_data, publish_safely
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    ORDER_STATUSES,
    OrderResponse,
    StatusHistoryEntry,
)
from order_prioritization.services.priority_override import (
    SYSTEM_ACTOR,
    load_order,
    priority_entry,
    recompute_priority,
    write_order,
)
from order_prioritization.services.priority_scorer import (
    MAX_PRIORITY_LEVEL,
    MIN_PRIORITY_SCORE,
    fulfillment_rank,
)
from order_prioritization.services.retry import conflict_retry

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("processing", "cancelled"),
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered",),
    "delivered": (),
    "cancelled": (),
}

STATUS_TIMESTAMPS = {
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}


def can_transition(source: str, target: str) -> bool:
    return target in TRANSITIONS.get(source, ())


class StatusTransitionManager:
    """Validates and applies order status changes"""

    def __init__(self, repository: OrderRepository, publisher=None, clock: Clock = utc_now):
        self.repository = repository
        self.publisher = publisher
        self.clock = clock

    def update_order_status(
        self,
        order_id: str,
        new_status: str,
        actor: str = "admin",
        reason: Optional[str] = None,
    ) -> OrderResponse:
        """
        Move an order to a new status

        Records the change in status history, stamps the matching status
        timestamp and recomputes the order's priority. Cancelling drops the
        order to the lowest priority even when its level was set by hand.

        Raises:
            ValidationFailure: Unknown status value or empty actor
            InvalidTransition: Edge not allowed from the current status
            OrderNotFound: If order doesn't exist
            ConcurrencyConflict: If concurrent writers kept winning
        """
        if not isinstance(new_status, str) or new_status not in ORDER_STATUSES:
            raise ValidationFailure(
                "status", f"must be one of {', '.join(ORDER_STATUSES)}, got {new_status!r}"
            )
        if not actor:
            raise ValidationFailure("changed_by", "must not be empty")

        previous, updated = self._apply(order_id, new_status, actor, reason)

        logger.info("Order %s status %s -> %s by %s", order_id, previous.status, new_status, actor)
        publish_safely(
            self.publisher,
            "publish_order_status_changed",
            order_event_data(updated, old_status=previous.status, new_status=new_status, changed_by=actor),
        )
        if updated.priority_level != previous.priority_level:
            publish_safely(
                self.publisher,
                "publish_order_priority_changed",
                order_event_data(updated, previous_level=previous.priority_level,
                                 changed_by=SYSTEM_ACTOR, is_manual=False),
            )
        return updated

    @conflict_retry
    def _apply(self, order_id, new_status, actor, reason) -> Tuple[OrderResponse, OrderResponse]:
        order = load_order(self.repository, order_id)
        if not can_transition(order.status, new_status):
            raise InvalidTransition(order.status, new_status)

        now = self.clock()
        patch = {"status": new_status, "updated_at": now}
        if new_status in STATUS_TIMESTAMPS:
            patch[STATUS_TIMESTAMPS[new_status]] = now

        if new_status == "cancelled":
            patch.update(
                priority_score=MIN_PRIORITY_SCORE,
                priority_level=MAX_PRIORITY_LEVEL,
                manual_override=False,
                fulfillment_priority=fulfillment_rank(MAX_PRIORITY_LEVEL, MIN_PRIORITY_SCORE),
            )
            level_entry = priority_entry(
                order, MAX_PRIORITY_LEVEL, MIN_PRIORITY_SCORE, SYSTEM_ACTOR,
                is_manual=False, reason="Order cancelled", now=now,
            )
        else:
            patch.update(recompute_priority(order))
            level_entry = None
            if patch["priority_level"] != order.priority_level:
                level_entry = priority_entry(
                    order, patch["priority_level"], patch["priority_score"], SYSTEM_ACTOR,
                    is_manual=False, reason=f"Recomputed on status change to {new_status}", now=now,
                )

        status_entry = StatusHistoryEntry(
            order_id=order.id,
            previous_status=order.status,
            new_status=new_status,
            changed_by=actor,
            reason=reason,
            created_at=now,
        )
        updated = write_order(
            self.repository, order, patch,
            status_entry=status_entry,
            priority_entry=level_entry,
        )
        return order, updated
