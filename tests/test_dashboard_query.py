from datetime import timedelta

import pytest

from order_prioritization.exceptions import OrderNotFound, ValidationFailure
from order_prioritization.schemas.order import DashboardFilter
from tests.conftest import START, order_payload, priced_payload


@pytest.fixture
def orders(service):
    created = [
        service.create_order(priced_payload(40.0, customer_email="ann@example.com", customer_name="Ann Lee")),
        service.create_order(priced_payload(650.0, customer_email="bob@example.com", shipping_method="expedited")),
        service.create_order(priced_payload(1200.0, customer_email="cat@example.com", is_vip_customer=True)),
        service.create_order(priced_payload(120.0, customer_email="dan@example.com", is_vip_customer=True,
                                            shipping_method="overnight")),
        service.create_order(priced_payload(40.0, customer_email="eve@example.com")),
        service.create_order(priced_payload(300.0, customer_email="fay_100%@example.com",
                                            shipping_method="digital")),
    ]
    return created


def ids(page):
    return [o.id for o in page.orders]


def test_default_sort_is_fulfillment_rank(service, orders):
    page = service.get_orders()
    assert page.total == len(orders)
    ranks = [o.fulfillment_priority for o in page.orders]
    assert ranks == sorted(ranks)
    assert page.orders[0].id == orders[2].id


def test_ties_break_on_created_at_then_id(service, orders):
    page = service.get_orders({"search": "example.com", "sort_by": "total", "limit": 10})
    low = [o for o in page.orders if o.total_amount == 40.0]
    assert [o.id for o in low] == [orders[0].id, orders[4].id]


@pytest.mark.parametrize("sort_by", ["fulfillment_priority", "priority_level", "created_at", "total"])
@pytest.mark.parametrize("sort_order", ["asc", "desc"])
def test_pages_partition_the_matching_set(service, orders, sort_by, sort_order):
    full = service.get_orders({"sort_by": sort_by, "sort_order": sort_order, "limit": None})
    pages = [
        service.get_orders({"sort_by": sort_by, "sort_order": sort_order, "limit": 4, "offset": offset})
        for offset in (0, 4, 8)
    ]

    assert all(p.total == full.total == 6 for p in pages)
    assert [len(p.orders) for p in pages] == [4, 2, 0]
    combined = ids(pages[0]) + ids(pages[1])
    assert combined == ids(full)
    assert len(set(combined)) == len(combined)


def test_repeated_queries_are_stable(service, orders):
    query = {"sort_by": "priority_level", "limit": 3}
    assert ids(service.get_orders(query)) == ids(service.get_orders(query))


def test_priority_level_sort_uses_score_within_level(service, orders):
    page = service.get_orders({"sort_by": "priority_level", "limit": None})
    keys = [(o.priority_level, -o.priority_score) for o in page.orders]
    assert keys == sorted(keys)


def test_sort_by_created_at_desc(service, orders):
    page = service.get_orders({"sort_by": "created_at", "sort_order": "desc", "limit": None})
    assert ids(page) == [o.id for o in reversed(orders)]


def test_filters_combine_with_and(service, orders):
    page = service.get_orders({"is_vip_customer": True, "shipping_method": ["overnight"]})
    assert ids(page) == [orders[3].id]

    page = service.get_orders({"is_vip_customer": True, "is_high_value": True})
    assert ids(page) == [orders[2].id]


def test_multi_valued_filters_match_any(service, orders):
    page = service.get_orders({"shipping_method": ["expedited", "digital"], "sort_by": "created_at"})
    assert ids(page) == [orders[1].id, orders[5].id]
    assert page.total == 2


def test_shipping_filter_accepts_aliases(service, orders):
    assert ids(service.get_orders({"shipping_method": ["express"]})) == [orders[1].id]
    assert ids(service.get_orders({"shipping_method": ["NEXT_DAY"]})) == [orders[3].id]
    page = service.get_orders({"shipping_method": [" Express ", "digital"], "sort_by": "created_at"})
    assert ids(page) == [orders[1].id, orders[5].id]


def test_status_and_level_filters(service, orders):
    service.update_order_status(orders[0].id, "processing", "ops")
    page = service.get_orders({"status": ["processing"]})
    assert ids(page) == [orders[0].id]

    level = orders[2].priority_level
    page = service.get_orders({"priority_level": [level]})
    assert orders[2].id in ids(page)
    assert all(o.priority_level == level for o in page.orders)


def test_search_is_case_insensitive_substring(service, orders):
    assert ids(service.get_orders({"search": "ANN LEE"})) == [orders[0].id]
    assert ids(service.get_orders({"search": "BOB@"})) == [orders[1].id]
    assert ids(service.get_orders({"search": orders[3].order_number.lower()})) == [orders[3].id]
    assert ids(service.get_orders({"search": orders[4].id[:13]})) == [orders[4].id]


def test_search_treats_wildcards_literally(service, orders):
    assert ids(service.get_orders({"search": "_100%"})) == [orders[5].id]
    assert service.get_orders({"search": "%"}).total == 1


def test_offset_past_the_end_is_empty(service, orders):
    page = service.get_orders({"offset": 100})
    assert page.orders == []
    assert page.total == 6


def test_no_matches(service, orders):
    page = service.get_orders({"search": "nobody"})
    assert page.total == 0
    assert page.orders == []


@pytest.mark.parametrize("filters, field", [
    ({"sort_by": "colour"}, "sort_by"),
    ({"sort_order": "sideways"}, "sort_order"),
    ({"limit": 0}, "limit"),
    ({"limit": 5000}, "limit"),
    ({"offset": -1}, "offset"),
    ({"priority_level": [9]}, "priority_level"),
    ({"status": ["lost"]}, "status.0"),
])
def test_bad_filters_are_validation_failures(service, filters, field):
    with pytest.raises(ValidationFailure) as exc:
        service.get_orders(filters)
    assert exc.value.field == field


def test_get_order_and_history(service, orders):
    order = service.get_order(orders[0].id)
    assert order == orders[0]

    service.update_order_priority(order.id, 2)
    history = service.get_order_history(order.id)
    assert [e.new_status for e in history.status_history] == ["pending"]
    assert [e.new_level for e in history.priority_history] == [orders[0].priority_level, 2]

    with pytest.raises(OrderNotFound):
        service.get_order("missing")
    with pytest.raises(OrderNotFound):
        service.get_order_history("missing")


def test_dashboard_summary(service, orders):
    service.update_order_status(orders[0].id, "processing", "ops")
    service.update_order_status(orders[4].id, "cancelled", "ops")

    summary = service.dashboard.get_dashboard_summary(now=START + timedelta(days=1))

    assert summary.window_days == 30
    assert summary.total_orders == 6
    assert summary.pending_orders == 4
    assert summary.processing_orders == 1
    assert summary.cancelled_orders == 1
    assert summary.urgent_orders == 1
    assert summary.high_value_orders == 2
    assert summary.express_orders == 2
    assert summary.vip_orders == 2
    assert summary.total_order_value == 2350.0
    assert summary.average_order_value == round(2350.0 / 6, 2)


def test_summary_window_excludes_old_orders(service, orders):
    summary = service.dashboard.get_dashboard_summary(now=START + timedelta(days=31))
    assert summary.total_orders == 0
    assert summary.average_order_value == 0.0


def test_filter_model_defaults():
    filters = DashboardFilter()
    assert filters.limit == 20
    assert filters.offset == 0
    assert filters.sort_by == "fulfillment_priority"
    assert filters.sort_order == "asc"
