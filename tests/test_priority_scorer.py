import pytest

from order_prioritization.services.priority_scorer import (
    ItemFlags,
    PriorityFactors,
    fulfillment_rank,
    is_valid_level,
    level_for_score,
    normalize_shipping_method,
    priority_label,
    score_order,
)


def test_vip_overnight_scenario():
    result = score_order(PriorityFactors(
        total_amount=120.0, shipping_method="overnight", is_vip_customer=True,
        items=(ItemFlags(),),
    ))
    assert result.priority_score == 57.4
    assert result.priority_level == 2
    assert result.is_high_value is False
    assert result.is_vip_customer is True
    assert result.priority_tags == ["VIP", "EXPEDITED"]


def test_large_vip_order_collects_every_tag_in_fixed_order():
    result = score_order(PriorityFactors(
        total_amount=1500.0,
        shipping_method="express",
        is_vip_customer=True,
        is_repeat_customer=True,
        items=(ItemFlags(requires_special_handling=True),),
    ))
    # 20 value + 15 high value + 10 large + 25 vip + 5 repeat + 15 expedited + 5 special
    assert result.priority_score == 95.0
    assert result.priority_level == 1
    assert result.priority_tags == [
        "VIP", "HIGH_VALUE", "LARGE_ORDER", "EXPEDITED", "SPECIAL_HANDLING", "REPEAT_CUSTOMER",
    ]


def test_unknown_inputs_degrade_to_defaults():
    result = score_order(PriorityFactors(total_amount=100.0))
    assert result.priority_score == 2.0
    assert result.priority_level == 5
    assert result.priority_tags == []
    assert result.is_vip_customer is False

    odd = score_order(PriorityFactors(total_amount=100.0, shipping_method="carrier-pigeon"))
    assert odd == result


def test_all_digital_items_skip_shipping_urgency():
    digital = score_order(PriorityFactors(
        total_amount=100.0, shipping_method="overnight",
        items=(ItemFlags(is_digital=True), ItemFlags(is_digital=True)),
    ))
    assert "EXPEDITED" not in digital.priority_tags
    assert digital.priority_score == 2.0

    mixed = score_order(PriorityFactors(
        total_amount=100.0, shipping_method="overnight",
        items=(ItemFlags(is_digital=True), ItemFlags()),
    ))
    assert mixed.priority_score == 32.0


def test_special_handling_is_capped():
    items = tuple(ItemFlags(requires_special_handling=True) for _ in range(6))
    result = score_order(PriorityFactors(total_amount=50.0, items=items))
    assert result.priority_score == 16.0
    assert "SPECIAL_HANDLING" in result.priority_tags


def test_high_value_threshold_is_inclusive():
    assert score_order(PriorityFactors(total_amount=499.99)).is_high_value is False
    assert score_order(PriorityFactors(total_amount=500.0)).is_high_value is True


@pytest.mark.parametrize("vip", [False, True])
@pytest.mark.parametrize("method", ["standard", "expedited", "overnight", "digital"])
@pytest.mark.parametrize("special", [0, 1, 4])
def test_level_is_monotone_in_total(vip, method, special):
    items = tuple(ItemFlags(requires_special_handling=i < special) for i in range(max(special, 1)))
    previous = None
    for total in [1, 25, 99.99, 250, 499.99, 500, 750, 999.99, 1000, 2500, 100000]:
        result = score_order(PriorityFactors(
            total_amount=total, shipping_method=method, is_vip_customer=vip, items=items,
        ))
        if previous is not None:
            assert result.priority_score >= previous.priority_score
            assert result.priority_level <= previous.priority_level
        previous = result


def test_scoring_is_deterministic():
    factors = PriorityFactors(total_amount=640.0, shipping_method="expedited", is_repeat_customer=True)
    assert score_order(factors) == score_order(factors)


def test_level_thresholds():
    assert level_for_score(60) == 1
    assert level_for_score(59.99) == 2
    assert level_for_score(40) == 2
    assert level_for_score(20) == 3
    assert level_for_score(10) == 4
    assert level_for_score(9.99) == 5
    assert level_for_score(0) == 5


def test_fulfillment_rank_orders_by_level_then_score():
    ranks = [
        fulfillment_rank(1, 80.0),
        fulfillment_rank(1, 60.0),
        fulfillment_rank(2, 1000.0),
        fulfillment_rank(2, 40.0),
        fulfillment_rank(5, 0.0),
    ]
    assert ranks == sorted(ranks)
    assert fulfillment_rank(5, 0.0) == 5.0


def test_helpers():
    assert normalize_shipping_method(" Next_Day ") == "overnight"
    assert normalize_shipping_method(None) == "standard"
    assert priority_label(1) == "URGENT"
    assert priority_label(5) == "LOWEST"
    assert is_valid_level(3)
    assert not is_valid_level(0)
    assert not is_valid_level(6)
    assert not is_valid_level(True)
    assert not is_valid_level(2.0)
