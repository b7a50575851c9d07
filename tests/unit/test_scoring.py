"""Unit tests for credit scoring"""

import pytest
from datetime import datetime, timedelta
from kirana_gateway.domain.models import CreditPolicy, CustomerHistory
from kirana_gateway.domain.scoring import (
    average_order_value_points,
    compute_credit_score,
    count_recent_orders,
    credit_recommendations,
    order_count_points,
    recent_activity_points,
    risk_level,
    scoring_breakdown,
    spending_points,
)


def test_new_customer_scenario():
    """3 orders, ₹500 spent, 3 this month → 100 - 15 - 20 - 5 + 5 = 65"""
    history = CustomerHistory(total_orders=3, total_spent_paise=50_000, recent_orders=3)
    assert compute_credit_score(history, CreditPolicy()) == 65


def test_floor_from_policy_applies_above_raw_score():
    history = CustomerHistory(total_orders=3, total_spent_paise=50_000, recent_orders=3)
    assert compute_credit_score(history, CreditPolicy(min_credit_score=70)) == 70


def test_negative_floor_is_treated_as_zero():
    history = CustomerHistory(total_orders=0, total_spent_paise=0, recent_orders=0)
    # 100 - 15 - 20 - 10 - 10 = 45
    assert compute_credit_score(history, CreditPolicy(min_credit_score=-20)) == 45


def test_best_customer_is_capped_at_100():
    history = CustomerHistory(total_orders=80, total_spent_paise=8_000_000, recent_orders=10)
    assert compute_credit_score(history, CreditPolicy(min_credit_score=0)) == 100


@pytest.mark.parametrize("orders", [0, 1, 4, 9, 19, 49, 50, 500])
@pytest.mark.parametrize("spent", [0, 99_999, 500_000, 1_999_999, 4_999_999, 5_000_000])
@pytest.mark.parametrize("recent", [0, 2, 3])
def test_score_is_bounded_and_deterministic(orders, spent, recent):
    history = CustomerHistory(total_orders=orders, total_spent_paise=spent, recent_orders=recent)
    policy = CreditPolicy(min_credit_score=0)

    score = compute_credit_score(history, policy)

    assert 0 <= score <= 100
    assert compute_credit_score(history, policy) == score


def test_order_count_bands():
    assert [order_count_points(n) for n in (4, 5, 9, 10, 19, 20, 49, 50)] == [-15, -8, -8, -3, -3, 0, 0, 5]


def test_spending_bands():
    values = (99_999, 100_000, 499_999, 999_999, 1_999_999, 2_000_000, 4_999_999, 5_000_000)
    assert [spending_points(v) for v in values] == [-20, -10, -10, -5, -2, 5, 5, 10]


def test_average_order_value_bands():
    assert [average_order_value_points(v) for v in (9_999, 10_000, 49_999, 50_000, 99_999, 100_000)] == [
        -10,
        -5,
        -5,
        0,
        0,
        5,
    ]


def test_recent_activity_bands():
    assert [recent_activity_points(n) for n in (0, 1, 2, 3)] == [-10, 0, 0, 5]


def test_count_recent_orders_uses_30_day_window():
    now = datetime(2024, 3, 11, 7, 0)
    dates = [now - timedelta(days=d) for d in (0, 10, 30, 31, 90)]
    assert count_recent_orders(dates, now) == 3


def test_risk_level_bands():
    assert risk_level(80) == "LOW"
    assert risk_level(79) == "MEDIUM"
    assert risk_level(60) == "MEDIUM"
    assert risk_level(59) == "HIGH"


def test_breakdown_points_sum_to_score():
    history = CustomerHistory(total_orders=12, total_spent_paise=900_000, recent_orders=1)
    breakdown = scoring_breakdown(history)

    points = (
        breakdown.order_history.points
        + breakdown.spending.points
        + breakdown.average_order_value.points
        + breakdown.recent_activity.points
    )
    assert 100 + points == compute_credit_score(history, CreditPolicy(min_credit_score=0))
    assert breakdown.order_history.impact == "Medium Risk"
    assert breakdown.recent_activity.impact == "Medium Risk"


def test_recommendations_for_low_engagement_high_risk():
    history = CustomerHistory(total_orders=2, total_spent_paise=20_000, recent_orders=0)
    types = {r.type for r in credit_recommendations(45, history)}
    assert types == {"RISK", "ENGAGEMENT"}


def test_recommendations_for_big_spender_gone_quiet():
    history = CustomerHistory(total_orders=40, total_spent_paise=1_500_000, recent_orders=0)
    types = {r.type for r in credit_recommendations(75, history)}
    assert types == {"OPPORTUNITY", "RETENTION"}
