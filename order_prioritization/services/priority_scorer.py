"""
Priority Scorer - pure order prioritization rules

No I/O, no clock, no randomness: identical factors always produce an
identical result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from order_prioritization.schemas.order import (
    PRIORITY_LABELS,
    SHIPPING_METHODS,
    SHIPPING_METHOD_ALIASES,
)

# -----------------------------
# Tunables
# -----------------------------
HIGH_VALUE_THRESHOLD = 500.0
LARGE_ORDER_THRESHOLD = 1000.0

# Continuous value factor: one point per VALUE_POINT_UNIT of total, capped
VALUE_POINT_UNIT = 50.0
VALUE_POINTS_CAP = 20.0

WEIGHTS = {
    "high_value": 15.0,
    "large_order": 10.0,
    "vip": 25.0,
    "repeat_customer": 5.0,
    "special_handling_per_item": 5.0,
}
SPECIAL_HANDLING_CAP = 15.0

SHIPPING_WEIGHTS = {
    "standard": 0.0,
    "expedited": 15.0,
    "overnight": 30.0,
    "digital": 0.0,
}
EXPEDITED_METHODS = ("expedited", "overnight")

# (minimum score, level), checked top-down
LEVEL_THRESHOLDS: Tuple[Tuple[float, int], ...] = (
    (60.0, 1),
    (40.0, 2),
    (20.0, 3),
    (10.0, 4),
)
MIN_PRIORITY_LEVEL = 1
MAX_PRIORITY_LEVEL = 5
MIN_PRIORITY_SCORE = 0.0

TAG_ORDER = (
    "VIP",
    "HIGH_VALUE",
    "LARGE_ORDER",
    "EXPEDITED",
    "SPECIAL_HANDLING",
    "REPEAT_CUSTOMER",
)


@dataclass(frozen=True)
class ItemFlags:
    is_digital: bool = False
    requires_special_handling: bool = False


@dataclass(frozen=True)
class PriorityFactors:
    """Order attributes the scorer looks at"""
    total_amount: float
    shipping_method: Optional[str] = None
    is_vip_customer: Optional[bool] = None
    is_repeat_customer: Optional[bool] = None
    items: Tuple[ItemFlags, ...] = ()


@dataclass(frozen=True)
class PriorityResult:
    priority_score: float
    priority_level: int
    priority_tags: List[str] = field(default_factory=list)
    is_high_value: bool = False
    is_vip_customer: bool = False
    fulfillment_priority: float = 0.0


# -----------------------------
# Helpers
# -----------------------------
def normalize_shipping_method(value: Optional[str]) -> str:
    """Map a raw shipping method to a known one; anything unknown is standard"""
    if not value or not isinstance(value, str):
        return "standard"
    method = value.strip().lower()
    method = SHIPPING_METHOD_ALIASES.get(method, method)
    return method if method in SHIPPING_METHODS else "standard"


def level_for_score(score: float) -> int:
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return MAX_PRIORITY_LEVEL


def fulfillment_rank(level: int, score: float) -> float:
    """
    Single sortable rank: ascending rank is level ascending, then score
    descending. score / (score + 1) stays in [0, 1) so levels never overlap.
    """
    score = max(score, MIN_PRIORITY_SCORE)
    return level - score / (score + 1.0)


def priority_label(level: int) -> str:
    return PRIORITY_LABELS.get(level, "NORMAL")


def is_valid_level(level: int) -> bool:
    return isinstance(level, int) and not isinstance(level, bool) \
        and MIN_PRIORITY_LEVEL <= level <= MAX_PRIORITY_LEVEL


def _value_points(total: float) -> float:
    if total <= 0:
        return 0.0
    return min(total / VALUE_POINT_UNIT, VALUE_POINTS_CAP)


# -----------------------------
# Main entry
# -----------------------------
def score_order(factors: PriorityFactors) -> PriorityResult:
    """
    Compute priority for an order.

    Returns a PriorityResult whose level is derived from the score through
    LEVEL_THRESHOLDS, so a higher score never yields a less urgent level.
    """
    total = factors.total_amount if factors.total_amount and factors.total_amount > 0 else 0.0
    tags = set()
    score = _value_points(total)

    is_high_value = total >= HIGH_VALUE_THRESHOLD
    if is_high_value:
        score += WEIGHTS["high_value"]
        tags.add("HIGH_VALUE")

    if total >= LARGE_ORDER_THRESHOLD:
        score += WEIGHTS["large_order"]
        tags.add("LARGE_ORDER")

    is_vip = bool(factors.is_vip_customer)
    if is_vip:
        score += WEIGHTS["vip"]
        tags.add("VIP")

    if factors.is_repeat_customer:
        score += WEIGHTS["repeat_customer"]
        tags.add("REPEAT_CUSTOMER")

    # Digital goods never wait on a carrier
    method = normalize_shipping_method(factors.shipping_method)
    all_digital = bool(factors.items) and all(item.is_digital for item in factors.items)
    if method != "digital" and not all_digital:
        score += SHIPPING_WEIGHTS[method]
        if method in EXPEDITED_METHODS:
            tags.add("EXPEDITED")

    special = sum(1 for item in factors.items if item.requires_special_handling)
    if special:
        score += min(special * WEIGHTS["special_handling_per_item"], SPECIAL_HANDLING_CAP)
        tags.add("SPECIAL_HANDLING")

    score = round(score, 2)
    level = level_for_score(score)

    return PriorityResult(
        priority_score=score,
        priority_level=level,
        priority_tags=[tag for tag in TAG_ORDER if tag in tags],
        is_high_value=is_high_value,
        is_vip_customer=is_vip,
        fulfillment_priority=fulfillment_rank(level, score),
    )


def factors_from_order(order, items: Optional[Sequence] = None) -> PriorityFactors:
    """Build scorer input from a stored order (or anything shaped like one)"""
    source_items = items if items is not None else getattr(order, "items", None) or []
    return PriorityFactors(
        total_amount=order.total_amount,
        shipping_method=order.shipping_method,
        is_vip_customer=getattr(order, "is_vip_customer", None),
        is_repeat_customer=getattr(order, "is_repeat_customer", None),
        items=tuple(
            ItemFlags(
                is_digital=bool(item.is_digital),
                requires_special_handling=bool(item.requires_special_handling),
            )
            for item in source_items
        ),
    )
