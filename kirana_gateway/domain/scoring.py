"""Credit scoring engine - heuristic 0-100 score from a customer's order history"""

from datetime import datetime, timedelta
from typing import Iterable, List

from kirana_gateway.domain.models import (
    CreditPolicy,
    CustomerHistory,
    Recommendation,
    ScoreFactor,
    ScoringBreakdown,
)

HIGH_RISK = "High Risk"
MEDIUM_RISK = "Medium Risk"
LOW_RISK = "Low Risk"


def count_recent_orders(order_dates: Iterable[datetime], now: datetime, window_days: int = 30) -> int:
    """Number of orders placed within `window_days` before `now`"""
    cutoff = now - timedelta(days=window_days)
    return sum(1 for placed_at in order_dates if placed_at >= cutoff)


def average_order_value_paise(history: CustomerHistory) -> float:
    if history.total_orders <= 0:
        return 0.0
    return history.total_spent_paise / history.total_orders


def order_count_points(total_orders: int) -> int:
    if total_orders < 5:
        return -15
    elif total_orders < 10:
        return -8
    elif total_orders < 20:
        return -3
    elif total_orders >= 50:
        return 5
    return 0


def spending_points(total_spent_paise: int) -> int:
    if total_spent_paise < 100_000:  # ₹1,000
        return -20
    elif total_spent_paise < 500_000:  # ₹5,000
        return -10
    elif total_spent_paise < 1_000_000:  # ₹10,000
        return -5
    elif total_spent_paise < 2_000_000:  # ₹20,000
        return -2
    elif total_spent_paise >= 5_000_000:  # ₹50,000
        return 10
    return 5


def average_order_value_points(avg_order_value_paise: float) -> int:
    if avg_order_value_paise < 10_000:  # ₹100
        return -10
    elif avg_order_value_paise < 50_000:  # ₹500
        return -5
    elif avg_order_value_paise >= 100_000:  # ₹1,000
        return 5
    return 0


def recent_activity_points(recent_orders: int) -> int:
    if recent_orders == 0:
        return -10
    elif recent_orders >= 3:
        return 5
    return 0


def compute_credit_score(history: CustomerHistory, policy: CreditPolicy) -> int:
    """
    Calculate a credit score from 0 (highest risk) to 100 (lowest risk).

    Starts at 100 and applies fixed-band adjustments for order count, total
    spend, average order value and orders in the last 30 days. The result is
    clamped to [max(policy.min_credit_score, 0), 100].

    Example:
        3 orders, ₹500 spent, 1 recent order → 100 - 15 - 20 - 5 = 60
    """
    score = 100
    score += order_count_points(history.total_orders)
    score += spending_points(history.total_spent_paise)
    score += average_order_value_points(average_order_value_paise(history))
    score += recent_activity_points(history.recent_orders)

    floor = max(policy.min_credit_score, 0)
    return min(100, max(floor, score))


def scoring_breakdown(history: CustomerHistory) -> ScoringBreakdown:
    """Per-factor points and impact labels, for display alongside the score"""
    avg_value = average_order_value_paise(history)

    if history.total_orders < 5:
        orders_impact = HIGH_RISK
    elif history.total_orders < 20:
        orders_impact = MEDIUM_RISK
    else:
        orders_impact = LOW_RISK

    if history.total_spent_paise < 100_000:
        spending_impact = HIGH_RISK
    elif history.total_spent_paise < 1_000_000:
        spending_impact = MEDIUM_RISK
    else:
        spending_impact = LOW_RISK

    if avg_value < 10_000:
        value_impact = HIGH_RISK
    elif avg_value < 50_000:
        value_impact = MEDIUM_RISK
    else:
        value_impact = LOW_RISK

    if history.recent_orders == 0:
        recent_impact = HIGH_RISK
    elif history.recent_orders < 3:
        recent_impact = MEDIUM_RISK
    else:
        recent_impact = LOW_RISK

    return ScoringBreakdown(
        order_history=ScoreFactor(
            value=history.total_orders,
            points=order_count_points(history.total_orders),
            impact=orders_impact,
        ),
        spending=ScoreFactor(
            value=history.total_spent_paise,
            points=spending_points(history.total_spent_paise),
            impact=spending_impact,
        ),
        average_order_value=ScoreFactor(
            value=avg_value,
            points=average_order_value_points(avg_value),
            impact=value_impact,
        ),
        recent_activity=ScoreFactor(
            value=history.recent_orders,
            points=recent_activity_points(history.recent_orders),
            impact=recent_impact,
        ),
    )


def risk_level(score: int) -> str:
    """
    Map score to risk bands:
    - 80+:   LOW
    - 60-79: MEDIUM
    - <60:   HIGH
    """
    if score >= 80:
        return "LOW"
    elif score >= 60:
        return "MEDIUM"
    return "HIGH"


def credit_recommendations(score: int, history: CustomerHistory) -> List[Recommendation]:
    recommendations = []

    if score < 60:
        recommendations.append(
            Recommendation("RISK", "High risk customer - consider reducing credit limit", "HIGH")
        )

    if history.total_orders < 10:
        recommendations.append(
            Recommendation("ENGAGEMENT", "Low order frequency - encourage more regular purchases", "MEDIUM")
        )

    if history.total_spent_paise > 1_000_000 and score < 80:
        recommendations.append(
            Recommendation(
                "OPPORTUNITY",
                "High spending customer with moderate score - consider a credit limit increase",
                "MEDIUM",
            )
        )

    if history.recent_orders == 0 and score > 70:
        recommendations.append(
            Recommendation("RETENTION", "No recent orders from a good customer - send retention offers", "MEDIUM")
        )

    return recommendations
