import re

import pytest

from order_prioritization.exceptions import PersistenceFailure, ValidationFailure
from order_prioritization.repositories import InMemoryOrderRepository
from order_prioritization.schemas.order import OrderCreate
from order_prioritization.services.customer_client import CustomerServiceClient
from order_prioritization.services.order_ingest import OrderIngestService
from tests.conftest import BrokenPublisher, StepClock, order_payload, priced_payload


def test_create_order_scores_and_records_history(service, repo, publisher):
    order = service.create_order(order_payload(
        is_vip_customer=True, shipping_method="overnight",
    ))

    assert re.fullmatch(r"ORD-\d{8}-[A-Z0-9]{4}", order.order_number)
    assert order.status == "pending"
    assert order.version == 1
    assert order.is_vip_customer is True
    assert order.is_high_value is False
    assert "VIP" in order.priority_tags and "EXPEDITED" in order.priority_tags
    assert order.priority_level <= 3
    assert order.priority_label == "HIGH"
    assert order.items[0].total_price == 100.0
    assert order.items[0].id is not None

    stored = repo.get_by_id(order.id)
    assert stored.priority_score == order.priority_score

    status_history = repo.get_status_history(order.id)
    assert [(e.previous_status, e.new_status, e.changed_by) for e in status_history] == [
        (None, "pending", "system"),
    ]
    priority_history = repo.get_priority_history(order.id)
    assert len(priority_history) == 1
    assert priority_history[0].previous_level is None
    assert priority_history[0].new_level == order.priority_level
    assert priority_history[0].is_manual is False

    assert publisher.kinds() == ["created"]
    assert publisher.events[0][1]["order_id"] == order.id


def test_accepts_pydantic_model(service):
    order = service.create_order(OrderCreate(**order_payload()))
    assert order.total_amount == 120.0


def test_ids_are_unique(service):
    ids = {service.create_order(order_payload()).id for _ in range(5)}
    assert len(ids) == 5


def test_total_within_tolerance_is_accepted(service):
    order = service.create_order(order_payload(total_amount=120.01))
    assert order.total_amount == 120.01


@pytest.mark.parametrize("total", [120.02, 119.98, 150.0])
def test_total_mismatch_is_rejected_not_corrected(service, repo, total):
    with pytest.raises(ValidationFailure) as exc:
        service.create_order(order_payload(total_amount=total))
    assert exc.value.field == "total_amount"
    assert service.get_orders().total == 0


def test_discount_is_subtracted(service):
    order = service.create_order(order_payload(discount_amount=20.0, total_amount=100.0))
    assert order.discount_amount == 20.0


def test_subtotal_must_match_items(service):
    with pytest.raises(ValidationFailure) as exc:
        service.create_order(order_payload(subtotal=90.0, total_amount=110.0))
    assert exc.value.field == "subtotal"


def test_declared_line_total_must_match(service):
    items = [{"product_name": "Widget", "quantity": 2, "unit_price": 50.0, "total_price": 90.0}]
    with pytest.raises(ValidationFailure) as exc:
        service.create_order(order_payload(items=items))
    assert exc.value.field == "items[0].total_price"


@pytest.mark.parametrize("overrides, field", [
    ({"customer_email": "not-an-email"}, "customer_email"),
    ({"items": []}, "items"),
    ({"shipping_method": "teleport"}, "shipping_method"),
    ({"tax_amount": -1.0}, "tax_amount"),
    ({"total_amount": 0}, "total_amount"),
    ({"items": [{"product_name": "Widget", "quantity": 0, "unit_price": 50.0}]}, "items[0].quantity"),
])
def test_malformed_input_names_the_field(service, overrides, field):
    with pytest.raises(ValidationFailure) as exc:
        service.create_order(order_payload(**overrides))
    assert exc.value.field == field
    assert exc.value.kind == "validation_failure"


def test_missing_field_is_rejected(service):
    payload = order_payload()
    del payload["customer_email"]
    with pytest.raises(ValidationFailure) as exc:
        service.create_order(payload)
    assert exc.value.field == "customer_email"


def test_shipping_aliases_are_normalized(service):
    assert service.create_order(order_payload(shipping_method="express")).shipping_method == "expedited"
    assert service.create_order(order_payload(shipping_method="NEXT_DAY")).shipping_method == "overnight"


def test_customer_flags_are_looked_up_when_omitted(service, customers):
    payload = order_payload(customer_id="cust-vip")
    del payload["is_vip_customer"]
    del payload["is_repeat_customer"]
    order = service.create_order(payload)
    assert customers.calls == ["cust-vip"]
    assert order.is_vip_customer is True
    assert order.is_repeat_customer is True
    assert order.priority_tags == ["VIP", "REPEAT_CUSTOMER"]


def test_missing_customer_name_comes_from_lookup(service, customers):
    payload = order_payload(customer_id="cust-vip", customer_name=None)
    del payload["is_vip_customer"]
    order = service.create_order(payload)
    assert customers.calls == ["cust-vip"]
    assert order.customer_name == "Vera Vip"
    assert order.is_repeat_customer is False
    assert [o.id for o in service.get_orders({"search": "vera"}).orders] == [order.id]


def test_given_customer_name_is_kept(service, customers):
    payload = order_payload(customer_id="cust-vip")
    del payload["is_vip_customer"]
    order = service.create_order(payload)
    assert order.customer_name == "Jane Doe"
    assert order.is_vip_customer is True


def test_input_flags_win_over_lookup(service, customers):
    order = service.create_order(order_payload(customer_id="cust-vip"))
    assert customers.calls == []
    assert order.is_vip_customer is False


def test_unavailable_customer_service_degrades_to_regular(service):
    payload = order_payload(customer_id="cust-down")
    del payload["is_vip_customer"]
    order = service.create_order(payload)
    assert order.is_vip_customer is False
    assert "VIP" not in order.priority_tags


@pytest.mark.parametrize("body", [
    "<html>gateway</html>",
    {"is_vip": True, "total_orders": "many"},
])
def test_malformed_customer_response_degrades_to_regular(mock_customer_service, body):
    mock_customer_service["/customers/cust-1"] = (200, body)
    client = CustomerServiceClient(base_url="http://customers.test")
    ingest = OrderIngestService(InMemoryOrderRepository(), customer_client=client, clock=StepClock())
    payload = order_payload(customer_id="cust-1")
    del payload["is_vip_customer"]
    del payload["is_repeat_customer"]

    order = ingest.create_order_with_priority(payload)

    assert order.is_vip_customer is False
    assert order.is_repeat_customer is False
    assert order.customer_name == "Jane Doe"
    assert "VIP" not in order.priority_tags


def test_publisher_failure_never_fails_creation():
    repo = InMemoryOrderRepository()
    ingest = OrderIngestService(repo, publisher=BrokenPublisher(), clock=StepClock())
    order = ingest.create_order_with_priority(priced_payload(80.0))
    assert repo.get_by_id(order.id) is not None


class FlakyRepository(InMemoryOrderRepository):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    def add_order(self, order, status_entry, priority_entry):
        if self.failures:
            self.failures -= 1
            raise PersistenceFailure("connection reset")
        return super().add_order(order, status_entry, priority_entry)


def test_transient_persistence_failures_are_retried():
    repo = FlakyRepository(failures=2)
    order = OrderIngestService(repo, clock=StepClock()).create_order_with_priority(order_payload())
    assert repo.get_by_id(order.id) is not None


def test_persistent_failure_surfaces():
    repo = FlakyRepository(failures=10)
    with pytest.raises(PersistenceFailure):
        OrderIngestService(repo, clock=StepClock()).create_order_with_priority(order_payload())


class LostAckOnInsertRepository(InMemoryOrderRepository):
    def __init__(self):
        super().__init__()
        self.lost_ack = True

    def add_order(self, order, status_entry, priority_entry):
        stored = super().add_order(order, status_entry, priority_entry)
        if self.lost_ack:
            self.lost_ack = False
            raise PersistenceFailure("connection dropped after commit")
        return stored


def test_committed_insert_reported_as_failed_is_returned():
    repo = LostAckOnInsertRepository()
    order = OrderIngestService(repo, clock=StepClock()).create_order_with_priority(order_payload())

    assert repo.get_by_id(order.id).order_number == order.order_number
    assert len(repo.get_status_history(order.id)) == 1
    assert len(repo.get_priority_history(order.id)) == 1
