"""Unit tests for next-delivery computation and delivery status rules"""

import pytest
from datetime import datetime, time, timedelta
from kirana_gateway.domain.exceptions import InvalidScheduleError, InvalidTransitionError, ValidationError
from kirana_gateway.domain.models import DeliveryStatus, Frequency
from kirana_gateway.domain.scheduling import (
    compute_next_delivery,
    delivery_charge_paise,
    ensure_delivery_transition,
    parse_delivery_days,
    parse_delivery_time,
    within_horizon,
)
from kirana_gateway.utils.date_utils import to_shop_local

MONDAY_0700 = datetime(2024, 3, 11, 7, 0)


def test_parse_delivery_time_accepts_single_digit_hour():
    assert parse_delivery_time("6:30") == time(6, 30)
    assert parse_delivery_time("23:59") == time(23, 59)


@pytest.mark.parametrize("value", ["24:00", "12:60", "7am", "", "07-30"])
def test_parse_delivery_time_rejects_bad_format(value):
    with pytest.raises(ValidationError):
        parse_delivery_time(value)


def test_parse_delivery_days_normalises_case_and_spacing():
    assert parse_delivery_days(" Monday,THURSDAY ") == frozenset({"monday", "thursday"})


@pytest.mark.parametrize("mask", [None, "", " , ", "funday"])
def test_parse_delivery_days_rejects_empty_or_unknown(mask):
    with pytest.raises(InvalidScheduleError):
        parse_delivery_days(mask)


def test_daily_before_delivery_time_is_today():
    now = datetime(2024, 3, 11, 5, 0)
    result = compute_next_delivery(Frequency.DAILY, "06:00", None, now - timedelta(days=10), now)
    assert result == datetime(2024, 3, 11, 6, 0)


def test_daily_after_delivery_time_is_tomorrow():
    result = compute_next_delivery("daily", "06:00", None, MONDAY_0700 - timedelta(days=3), MONDAY_0700)
    assert result == datetime(2024, 3, 12, 6, 0)


def test_daily_future_start_date_wins():
    start = datetime(2024, 3, 20, 0, 0)
    result = compute_next_delivery("daily", "06:00", None, start, MONDAY_0700)
    assert result == datetime(2024, 3, 20, 6, 0)


def test_weekly_started_two_weeks_ago_lands_on_next_same_weekday():
    """weekly 06:00, now Monday 07:00 → following Monday 06:00"""
    start = MONDAY_0700 - timedelta(weeks=2)
    result = compute_next_delivery("weekly", "06:00", None, start, MONDAY_0700)

    assert result == datetime(2024, 3, 18, 6, 0)
    assert result.weekday() == 0
    assert result > MONDAY_0700


def test_custom_days_lands_on_allowed_weekday():
    result = compute_next_delivery("custom", "06:00", "monday, thursday", MONDAY_0700, MONDAY_0700)
    assert result == datetime(2024, 3, 14, 6, 0)
    assert result.strftime("%A").lower() == "thursday"


@pytest.mark.parametrize("offset_hours", range(0, 24 * 7, 5))
def test_custom_days_never_leave_the_mask(offset_hours):
    now = MONDAY_0700 + timedelta(hours=offset_hours)
    result = compute_next_delivery("custom", "18:45", "monday,thursday", now - timedelta(days=30), now)

    assert result > now
    assert result.strftime("%A").lower() in {"monday", "thursday"}
    assert (result.hour, result.minute) == (18, 45)


@pytest.mark.parametrize("frequency", ["daily", "weekly"])
@pytest.mark.parametrize("offset_minutes", [0, 1, 59, 60 * 6, 60 * 23 + 59])
def test_result_is_strictly_after_now(frequency, offset_minutes):
    now = MONDAY_0700 + timedelta(minutes=offset_minutes)
    result = compute_next_delivery(frequency, "07:00", None, now - timedelta(days=45), now)
    assert result > now


def test_daily_is_within_one_day_of_now():
    for minutes in range(0, 24 * 60, 37):
        now = MONDAY_0700 + timedelta(minutes=minutes)
        result = compute_next_delivery("daily", "06:15", None, now, now)
        assert now < result <= now + timedelta(days=1)


def test_custom_without_days_is_schedule_error():
    with pytest.raises(InvalidScheduleError):
        compute_next_delivery("custom", "06:00", None, MONDAY_0700, MONDAY_0700)


def test_custom_search_is_bounded():
    with pytest.raises(InvalidScheduleError):
        compute_next_delivery("custom", "06:00", "sunday", MONDAY_0700, MONDAY_0700, max_iterations=3)


def test_unknown_frequency_is_validation_error():
    with pytest.raises(ValidationError):
        compute_next_delivery("monthly", "06:00", None, MONDAY_0700, MONDAY_0700)


def test_within_horizon():
    assert within_horizon(MONDAY_0700 + timedelta(days=30), MONDAY_0700)
    assert not within_horizon(MONDAY_0700 + timedelta(days=30, minutes=1), MONDAY_0700)
    assert not within_horizon(
        MONDAY_0700 + timedelta(days=2), MONDAY_0700, end_date=MONDAY_0700 + timedelta(days=1)
    )


def test_delivery_transitions_only_leave_scheduled():
    ensure_delivery_transition(DeliveryStatus.SCHEDULED, DeliveryStatus.DELIVERED)
    ensure_delivery_transition("SCHEDULED", "SKIPPED")

    with pytest.raises(InvalidTransitionError):
        ensure_delivery_transition(DeliveryStatus.DELIVERED, DeliveryStatus.SCHEDULED)
    with pytest.raises(InvalidTransitionError):
        ensure_delivery_transition(DeliveryStatus.CANCELLED, DeliveryStatus.DELIVERED)


def test_delivery_charge_prefers_actual_price_then_actual_quantity():
    assert delivery_charge_paise(6_000, 2, actual_quantity=3, actual_price_paise=15_000) == 15_000
    assert delivery_charge_paise(6_000, 2, actual_quantity=1.5) == 9_000
    assert delivery_charge_paise(6_000, 2) == 12_000
    assert delivery_charge_paise(6_000, 2, actual_price_paise=0) == 0


def test_to_shop_local_converts_aware_and_keeps_naive():
    aware = datetime.fromisoformat("2024-03-10T20:00:00+00:00")
    assert to_shop_local(aware, "Asia/Kolkata") == datetime(2024, 3, 11, 1, 30)

    naive = datetime(2024, 3, 11, 7, 0)
    assert to_shop_local(naive, "Asia/Kolkata") is naive
