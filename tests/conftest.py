from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from order_prioritization.database import init_db
from order_prioritization.repositories import InMemoryOrderRepository, SqlAlchemyOrderRepository
from order_prioritization.services.customer_client import (
    CustomerProfile,
    CustomerServiceUnavailableError,
)
from order_prioritization.services.order_service import OrderService

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Every call returns a time one second after the previous one"""

    def __init__(self, start=START, step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish_order_created(self, data):
        self.events.append(("created", data))
        return True

    def publish_order_status_changed(self, data):
        self.events.append(("status_changed", data))
        return True

    def publish_order_priority_changed(self, data):
        self.events.append(("priority_changed", data))
        return True

    def kinds(self):
        return [kind for kind, _ in self.events]


class BrokenPublisher:
    def _fail(self, data):
        raise RuntimeError("broker unreachable")

    publish_order_created = _fail
    publish_order_status_changed = _fail
    publish_order_priority_changed = _fail


class FakeCustomerClient:
    def __init__(self, profiles=None, unavailable=()):
        self.profiles = profiles or {}
        self.unavailable = set(unavailable)
        self.calls = []

    def get_customer(self, customer_id):
        self.calls.append(customer_id)
        if customer_id in self.unavailable:
            raise CustomerServiceUnavailableError("Customer Service unavailable: timed out")
        return self.profiles.get(customer_id)


def order_payload(**overrides):
    """Valid order: 2 x 50.00 + 10.00 tax + 10.00 shipping = 120.00"""
    payload = {
        "customer_email": "jane@example.com",
        "customer_name": "Jane Doe",
        "subtotal": 100.0,
        "tax_amount": 10.0,
        "shipping_amount": 10.0,
        "discount_amount": 0.0,
        "total_amount": 120.0,
        "shipping_method": "standard",
        "is_vip_customer": False,
        "is_repeat_customer": False,
        "items": [
            {"product_name": "Widget", "product_sku": "W-1", "quantity": 2, "unit_price": 50.0},
        ],
    }
    payload.update(overrides)
    return payload


def priced_payload(total, **overrides):
    """Single-item order whose total is exactly ``total``"""
    items = [{"product_name": "Item", "quantity": 1, "unit_price": total}]
    return order_payload(subtotal=total, tax_amount=0.0, shipping_amount=0.0,
                         total_amount=total, items=items, **overrides)


def make_sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def sqlite_engine():
    engine = make_sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture(params=["memory", "sqlite"])
def repo(request):
    if request.param == "memory":
        yield InMemoryOrderRepository()
        return
    engine = make_sqlite_engine()
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield SqlAlchemyOrderRepository(session)
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def customers():
    return FakeCustomerClient(
        profiles={
            "cust-vip": CustomerProfile("cust-vip", is_vip=True, total_orders=12, name="Vera Vip"),
            "cust-repeat": CustomerProfile("cust-repeat", is_vip=False, total_orders=3),
            "cust-new": CustomerProfile("cust-new", is_vip=False, total_orders=1),
        },
        unavailable={"cust-down"},
    )


@pytest.fixture
def service(repo, customers, publisher, clock):
    return OrderService(repo, customer_client=customers, publisher=publisher, clock=clock)


@pytest.fixture
def mock_customer_service(monkeypatch):
    """Routes path -> (status, body); dict bodies are sent as JSON, strings as text"""
    routes = {}
    real_client = httpx.Client

    def handler(request):
        status, body = routes.get(request.url.path, (404, {"detail": "not found"}))
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    monkeypatch.setattr(
        httpx, "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return routes
