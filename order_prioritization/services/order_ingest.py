"""
Order Ingest - validation, classification and atomic creation of new orders
"""
import logging
import secrets
import string
import uuid
from typing import Any, List, Mapping, Optional, Tuple, Union

import httpx
from pydantic import ValidationError

from order_prioritization.clock import Clock, utc_now
from order_prioritization.config import settings
from order_prioritization.exceptions import PersistenceFailure, ValidationFailure
from order_prioritization.publishers.event_publisher import order_event_data, publish_safely
from order_prioritization.repositories.order_repository import OrderRepository
from order_prioritization.schemas.order import (
    OrderCreate,
    OrderItemCreate,
    OrderItemResponse,
    OrderResponse,
    PriorityHistoryEntry,
    StatusHistoryEntry,
)
from order_prioritization.services.customer_client import (
    CustomerServiceClient,
    CustomerServiceError,
)
from order_prioritization.services.priority_scorer import (
    ItemFlags,
    PriorityFactors,
    score_order,
)
from order_prioritization.services.retry import persistence_retrying

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
CUSTOMER_NAME_MAX_LENGTH = 255


def generate_order_number(now) -> str:
    """ORD-<last 8 digits of epoch millis>-<4 random chars>"""
    millis = str(int(now.timestamp() * 1000))[-8:].rjust(8, "0")
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(4))
    return f"ORD-{millis}-{suffix}"


def _field_name(loc: tuple) -> str:
    parts = []
    for part in loc:
        if isinstance(part, int) and parts:
            parts[-1] = f"{parts[-1]}[{part}]"
        else:
            parts.append(str(part))
    return ".".join(parts) or "order"


def _exceeds(difference: float, tolerance: float) -> bool:
    # Rounding hides binary float noise around the tolerance boundary
    return round(abs(difference), 6) > tolerance


class OrderIngestService:
    """Accepts new orders and stores them with their computed priority"""

    def __init__(
        self,
        repository: OrderRepository,
        customer_client: Optional[CustomerServiceClient] = None,
        publisher=None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.customer_client = customer_client
        self.publisher = publisher
        self.clock = clock
        self.tolerance = settings.TOTAL_TOLERANCE

    def create_order_with_priority(
        self, order_data: Union[OrderCreate, Mapping[str, Any]]
    ) -> OrderResponse:
        """
        Validate an order, score it and persist it in one write

        Args:
            order_data: OrderCreate model or a plain mapping of its fields

        Returns:
            The stored order with priority fields and item ids

        Raises:
            ValidationFailure: On malformed input or mismatched totals
            PersistenceFailure: If the repository keeps failing
        """
        order_in = self._parse(order_data)
        items = self._build_items(order_in.items)
        self._check_totals(order_in, items)

        is_vip, is_repeat, customer_name = self._resolve_customer(order_in)
        result = score_order(PriorityFactors(
            total_amount=order_in.total_amount,
            shipping_method=order_in.shipping_method,
            is_vip_customer=is_vip,
            is_repeat_customer=is_repeat,
            items=tuple(
                ItemFlags(item.is_digital, item.requires_special_handling)
                for item in items
            ),
        ))

        now = self.clock()
        order = OrderResponse(
            id=str(uuid.uuid4()),
            order_number=generate_order_number(now),
            customer_id=order_in.customer_id,
            customer_email=str(order_in.customer_email),
            customer_name=customer_name,
            status="pending",
            subtotal=order_in.subtotal,
            tax_amount=order_in.tax_amount,
            shipping_amount=order_in.shipping_amount,
            discount_amount=order_in.discount_amount,
            total_amount=order_in.total_amount,
            currency=order_in.currency.upper(),
            shipping_method=order_in.shipping_method,
            priority_score=result.priority_score,
            priority_level=result.priority_level,
            priority_tags=result.priority_tags,
            fulfillment_priority=result.fulfillment_priority,
            manual_override=False,
            is_high_value=result.is_high_value,
            is_vip_customer=result.is_vip_customer,
            is_repeat_customer=is_repeat,
            billing_address=order_in.billing_address,
            shipping_address=order_in.shipping_address,
            version=1,
            created_at=now,
            updated_at=now,
            items=items,
        )
        status_entry = StatusHistoryEntry(
            order_id=order.id,
            previous_status=None,
            new_status="pending",
            changed_by=SYSTEM_ACTOR,
            reason="Order created",
            created_at=now,
        )
        priority_entry = PriorityHistoryEntry(
            order_id=order.id,
            previous_level=None,
            new_level=result.priority_level,
            previous_score=None,
            new_score=result.priority_score,
            changed_by=SYSTEM_ACTOR,
            is_manual=False,
            reason="Initial priority",
            created_at=now,
        )

        created = self._persist(order, status_entry, priority_entry)
        logger.info(
            "Order %s created (%s): level %s, score %s, tags %s",
            created.id, created.order_number, created.priority_level,
            created.priority_score, ",".join(created.priority_tags) or "-"
        )
        publish_safely(self.publisher, "publish_order_created", order_event_data(created))
        return created

    def _persist(self, order, status_entry, priority_entry) -> OrderResponse:
        failed_before = False
        for attempt in persistence_retrying():
            with attempt:
                if failed_before:
                    # An earlier attempt may have committed before failing
                    stored = self.repository.get_by_id(order.id)
                    if stored is not None and stored.order_number == order.order_number:
                        logger.info("Order %s insert had committed before the retry", order.id)
                        return stored
                try:
                    return self.repository.add_order(order, status_entry, priority_entry)
                except PersistenceFailure:
                    failed_before = True
                    raise

    @staticmethod
    def _parse(order_data) -> OrderCreate:
        if isinstance(order_data, OrderCreate):
            return order_data
        if not isinstance(order_data, Mapping):
            raise ValidationFailure("order", "expected an order object")
        try:
            return OrderCreate.model_validate(dict(order_data))
        except ValidationError as e:
            error = e.errors()[0]
            raise ValidationFailure(_field_name(error["loc"]), error["msg"]) from e

    def _build_items(self, items_in: List[OrderItemCreate]) -> List[OrderItemResponse]:
        items = []
        for index, item in enumerate(items_in):
            line_total = round(item.quantity * item.unit_price, 2)
            if item.total_price is not None and _exceeds(item.total_price - line_total, self.tolerance):
                raise ValidationFailure(
                    f"items[{index}].total_price",
                    f"declared {item.total_price:.2f} but quantity * unit_price is {line_total:.2f}"
                )
            items.append(OrderItemResponse(
                **item.model_dump(exclude={"total_price"}),
                total_price=line_total,
            ))
        return items

    def _check_totals(self, order_in: OrderCreate, items: List[OrderItemResponse]) -> None:
        lines = sum(item.total_price for item in items)
        if _exceeds(order_in.subtotal - lines, self.tolerance):
            raise ValidationFailure(
                "subtotal",
                f"{order_in.subtotal:.2f} does not match item total {lines:.2f}"
            )

        expected = lines + order_in.tax_amount + order_in.shipping_amount - order_in.discount_amount
        if _exceeds(order_in.total_amount - expected, self.tolerance):
            raise ValidationFailure(
                "total_amount",
                f"{order_in.total_amount:.2f} does not match items plus adjustments {expected:.2f}"
            )

    def _resolve_customer(self, order_in: OrderCreate) -> Tuple[bool, bool, Optional[str]]:
        """VIP and repeat flags and the name from the input, else from Customer Service"""
        is_vip = order_in.is_vip_customer
        is_repeat = order_in.is_repeat_customer
        name = order_in.customer_name
        if is_vip is not None and is_repeat is not None and name:
            return is_vip, is_repeat, name
        if not order_in.customer_id or self.customer_client is None:
            return bool(is_vip), bool(is_repeat), name

        try:
            profile = self.customer_client.get_customer(order_in.customer_id)
        except (CustomerServiceError, httpx.HTTPError) as e:
            logger.warning(
                "Customer lookup failed for %s, treating as regular customer: %s",
                order_in.customer_id, e
            )
            profile = None

        if profile is not None:
            if is_vip is None:
                is_vip = profile.is_vip
            if is_repeat is None:
                is_repeat = profile.is_repeat
            if not name and profile.name:
                name = profile.name[:CUSTOMER_NAME_MAX_LENGTH]
        return bool(is_vip), bool(is_repeat), name
